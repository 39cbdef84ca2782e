class XMFStructException(Exception):
    '''Base class to extend in order to throw exception in xmfstruct.

    The "chain" argument represents the layers that caused the exception,
    from the innermost field up to the root; "offset" is the absolute position
    in the stream where the problem showed up and "expected" what the decoder
    was expecting to find there.
    '''

    def __init__(self, chain, offset=None, expected=None, message=None):
        self.chain = chain
        self.offset = offset
        self.expected = expected
        self.message = message
        super().__init__(message)

    @property
    def path(self):
        return '.'.join(self.chain[::-1])

    def __str__(self):
        msg = self.message or self.__class__.__name__
        if self.offset is not None:
            msg += f' at offset 0x{self.offset:x}'
        if self.expected is not None:
            msg += f' (expected {self.expected})'
        if self.chain:
            msg += f' in field \'{self.path}\''

        return msg


class UnpackException(XMFStructException):
    '''The data doesn't respect the structure we are decoding.'''
    pass


class BoundsException(UnpackException):
    pass


class FormatException(UnpackException):
    pass


class MagicException(FormatException):
    pass


class RecursionException(FormatException):
    '''Pointer chasing went deeper than allowed.'''
    pass


class SizeMismatchException(UnpackException):
    pass


class UnpackerException(XMFStructException):
    '''A node's data cannot be decompressed.

    This doesn't invalidate the structure of the file, only the content of
    the node that raised it.'''
    pass
