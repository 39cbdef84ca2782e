import io
import logging
from contextlib import contextmanager

from .exceptions import BoundsException


logger = logging.getLogger(__name__)


class Stream(object):
    '''This is a simple wrapper around bytes/file objects to
    uniform their properties: random access via seek() and
    reads that never come back shorter than asked.

    The "base" argument is the absolute offset the first byte of
    the data corresponds to: a Stream over a piece of a bigger
    file keeps reporting the offsets of the file.'''
    def __init__(self, obj, base=0):
        '''Here we normalize the object in order to be accessed as a normal file object'''
        self._type = type(obj)
        self.obj = obj
        self.base = base
        self.history = []

        init_method_name = 'init_%s' % self.obj.__class__.__name__

        init_method = getattr(self, init_method_name, None)

        if init_method is None:
            raise ValueError('\'%s\' is not a source we can read from' % self._type.__name__)

        init_method()

        self.obj.seek(0, io.SEEK_END)
        self.length = self.obj.tell()
        self.obj.seek(0)

    def __repr__(self):
        return f'<{self.__class__.__name__}(type={self._type.__name__}, base=0x{self.base:x}, length={self.length})>'

    def __del__(self):
        close = getattr(getattr(self, 'obj', None), 'close', None)
        if close is not None:
            close()

    def init_str(self):
        '''We think this is a path'''
        logger.debug('opening path \'%s\'' % self.obj)
        self.obj = open(self.obj, 'rb')

    def init_bytes(self):
        '''We think these are raw bytes'''
        self.obj = io.BytesIO(self.obj)

    def init_bytearray(self):
        self.obj = io.BytesIO(bytes(self.obj))

    @property
    def end(self):
        return self.base + self.length

    def tell(self):
        return self.base + self.obj.tell()

    def seek(self, offset):
        if not isinstance(offset, int):
            raise ValueError('\'%s\' is the wrong kind of offset to use' % offset.__class__.__name__)

        if offset < self.base or offset > self.end:
            raise BoundsException(chain=[], offset=offset,
                                  expected=f'an offset between 0x{self.base:x} and 0x{self.end:x}',
                                  message='seek outside of the data')

        self.obj.seek(offset - self.base)

    def read(self, n):
        '''Read exactly n bytes or fail.'''
        offset = self.tell()
        if n < 0 or offset + n > self.end:
            raise BoundsException(chain=[], offset=offset,
                                  expected=f'{n} bytes but only {self.end - offset} remaining',
                                  message='read past the end of the data')

        return self.obj.read(n)

    def peek(self, n):
        '''Like read() but the cursor doesn't move.'''
        self.save()
        try:
            return self.read(n)
        finally:
            self.restore()

    def save(self):
        self.history.append(self.obj.tell())

    def restore(self):
        old_seek = self.history.pop()
        self.obj.seek(old_seek)

    @contextmanager
    def at(self, offset):
        '''Temporarily move the cursor to offset, restoring it at the end.'''
        self.save()
        try:
            self.seek(offset)
            yield self
        finally:
            self.restore()
