'''
# Unpackers

The data of a resource node can be stored after passing through a chain of
"unpackers", i.e. compression filters: to obtain the content they are applied
in the order they are listed in the node header.

The only standard unpacker doing something is zlib, the decompression itself
is delegated to the module of the standard library.
'''
import logging
import zlib

from ...exceptions import UnpackerException
from .enum import StandardUnpackerID


logger = logging.getLogger(__name__)


def inflate(data: bytes, decoded_length: int = 0, offset=None) -> bytes:
    '''Decompress a zlib stream; anything after the end of the stream is ignored.'''
    decompressor = zlib.decompressobj()

    try:
        result = decompressor.decompress(data) + decompressor.flush()
    except zlib.error as e:
        raise UnpackerException(chain=[], offset=offset, message=f'zlib failed: {e}') from e

    if not decompressor.eof:
        raise UnpackerException(chain=[], offset=offset, message='zlib stream is truncated')

    if decoded_length and len(result) != decoded_length:
        logger.warning(f'zlib: declared length {decoded_length} but decoded {len(result)} bytes')

    return result


def apply_unpackers(data: bytes, unpackers, offset=None) -> bytes:
    for index, unpacker in enumerate(unpackers):
        if not unpacker.is_standard:
            raise UnpackerException(chain=[str(index)], offset=offset,
                                    expected='a standard unpacker',
                                    message=f'unpacker {unpacker.id_type.value} 0x{int(unpacker.unpacker_id.field):x} is not supported')

        unpacker_id = unpacker.unpacker_id.value
        logger.debug(f'applying unpacker {unpacker_id} to {len(data)} bytes')

        if unpacker_id == StandardUnpackerID.ZLIB:
            data = inflate(data, unpacker.decoded_length.value, offset=offset)

    return data
