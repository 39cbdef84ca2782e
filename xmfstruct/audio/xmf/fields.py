'''
Fields specific to the XMF format: the variable length quantities used for every
size, count and pointer of the file and the strings prefixed by their length.
'''
from ... import fields
from ...core import Chunk
from ...properties import Dependency
from ...exceptions import FormatException
from .vlq import MAX_WIDTH, vlq_width, decode_vlq, encode_vlq


class VLQField(fields.Field):
    '''Unsigned integer stored in 1 to 4 bytes, see the vlq module.

    The width is not known before looking at the data: the bytes are
    inspected without consuming them and only then the quantity is read.'''

    _raw = b''

    def __init__(self, enum=None, default=0, **kw):
        self.enum = enum
        super().__init__(default=default, **kw)

    def __repr__(self):
        return f'<{self.__class__.__name__}({self.value!r})>'

    def __int__(self):
        return self.value.value if self.enum and not isinstance(self.value, int) else self.value

    def _get_size(self):
        if self._raw:
            return len(self._raw)

        return len(encode_vlq(int(self)))

    @staticmethod
    def detect_width(stream):
        # one byte at a time so that a truncated quantity is a BoundsException
        for index in range(MAX_WIDTH):
            width = vlq_width(stream.peek(index + 1))
            if width is not None:
                return width

        raise FormatException(chain=[], offset=stream.tell(),
                              expected=f'a quantity of at most {MAX_WIDTH} bytes',
                              message='variable length quantity too long')

    def unpack(self, stream):
        self.offset = stream.tell()
        self._raw = stream.read(self.detect_width(stream))
        value = decode_vlq(self._raw)

        self.value = self._to_enum(self.enum, value) if self.enum else value


class VLQPointerField(VLQField):
    '''A VLQ representing an absolute offset from the start of the file.'''

    def __repr__(self):
        return f'<{self.__class__.__name__}(0x{self.value:x})>'

    @property
    def resolver(self):
        root = self.root
        resolver = getattr(root, 'resolver', None) if root is not self else None
        if resolver is None:
            raise AttributeError('pointers can be resolved only inside an XMFFile')

        return resolver

    def resolve_node(self):
        return self.resolver.node_at(self.value)


class XMFString(Chunk):
    '''Sequence of bytes prefixed by its length.'''
    length = VLQField()
    data   = fields.StringField(Dependency('.length'))

    def __str__(self):
        return self.data.value.decode('latin1')

    @property
    def text(self):
        return str(self)
