'''
# ID3v2

Tag format used to attach metadata (title, artist, ...) to audio data; XMF
can embed a whole tag as the value of the ID3Metadata field.

A tag is a 10 bytes header followed by frames, each one with its own header;
the sizes in the tag header (and in the frame headers from version 2.4) are
"syncsafe" integers, i.e. only the lowest 7 bits of each byte are used.

Reference to <https://id3.org/id3v2.4.0-structure>.
'''
import logging

from .. import fields
from ..core import Chunk
from ..properties import Dependency


logger = logging.getLogger(__name__)


class SyncSafeField(fields.StructField):

    def __init__(self, **kwargs):
        super().__init__('I', **kwargs)

    def _unpack(self, raw):
        value = 0
        for byte in raw:
            value = (value << 7) | (byte & 0x7f)

        return value


class ID3Frame(Chunk):
    frame_id   = fields.StringField(4)
    frame_size = fields.SelectField(Dependency('@ID3Tag.version_major'), {
        4: SyncSafeField(),
        fields.SelectField.Type.DEFAULT: fields.StructField('I'),
    })
    flags      = fields.StructField('H')
    data       = fields.StringField(Dependency('.frame_size'))

    HEADER_SIZE = 10
    TEXT_ENCODINGS = ['latin1', 'utf-16', 'utf-16-be', 'utf-8']

    def __str__(self):
        return f'{self.frame_id.value.decode("latin1")}: {self.text if self.is_text else repr(self.data.value)}'

    @property
    def is_text(self):
        return self.frame_id.value[:1] == b'T' and self.frame_id.value != b'TXXX'

    @property
    def text(self):
        '''Text frames start with a byte indicating the encoding.'''
        data = self.data.value
        encoding = self.TEXT_ENCODINGS[data[0]] if data and data[0] < len(self.TEXT_ENCODINGS) else 'latin1'

        return data[1:].decode(encoding).rstrip('\x00')


class ID3Tag(Chunk):
    magic            = fields.StringField(3, default=b'ID3', is_magic=True)
    version_major    = fields.StructField('B')
    version_revision = fields.StructField('B')
    flags            = fields.StructField('B')
    tag_size         = SyncSafeField()

    HEADER_SIZE = 10
    FLAG_EXTENDED_HEADER = 0x40

    _body = b''

    def __init__(self, *args, **kwargs):
        self.frames = []
        self.extended_header = b''
        self.padding = b''
        super().__init__(*args, **kwargs)

    def _get_size(self):
        return self.HEADER_SIZE + self.tag_size.value

    def _get_raw(self):
        return super()._get_raw() + self._body

    def get(self, frame_id):
        for frame in self.frames:
            if frame.frame_id.value == frame_id:
                return frame

        return None

    def unpack(self, stream):
        '''After the header the frames follow until the end of the tag or
        until the padding (that is made of zeros) starts.'''
        super().unpack(stream)

        end = stream.tell() + self.tag_size.value
        self._body = stream.peek(self.tag_size.value)

        if self.version_major.value < 3:
            logger.warning(f'ID3v2.{self.version_major.value} frames are not supported')
            stream.seek(end)
            return

        if self.flags.value & self.FLAG_EXTENDED_HEADER:
            self.extended_header = self._read_extended_header(stream)

        while stream.tell() + ID3Frame.HEADER_SIZE <= end and stream.peek(1) != b'\x00':
            frame = ID3Frame(father=self)
            frame.unpack(stream)
            self.frames.append(frame)

        self.padding = stream.read(end - stream.tell())

    def _read_extended_header(self, stream):
        size_field = SyncSafeField() if self.version_major.value == 4 else fields.StructField('I')
        size_field.unpack(stream)
        # the size of v2.4 includes the size itself
        remaining = size_field.value - 4 if self.version_major.value == 4 else size_field.value

        return size_field.raw + stream.read(remaining)
