'''
# Variable Length Quantity

Every size and pointer of an XMF file is stored as a big-endian base-128 integer:
each byte carries 7 bits of the value and uses its top bit to tell if another
byte follows. The format never uses more than 4 bytes, i.e. 28 bits.

    0x00           -> 0
    0x7f           -> 127
    0x81 0x00      -> 128
    0xff 0xff 0x7f -> 2097151
'''
from bitstring import Bits


MAX_WIDTH = 4
MAX_VALUE = (1 << (7 * MAX_WIDTH)) - 1


def vlq_width(data: bytes):
    '''Return the number of bytes of the quantity starting data, None if
    the quantity doesn't end within the first MAX_WIDTH bytes.'''
    for index, byte in enumerate(data[:MAX_WIDTH]):
        if not byte & 0x80:
            return index + 1

    return None


def decode_vlq(raw: bytes) -> int:
    bits = Bits(raw)
    payload = Bits().join([bits[index * 8 + 1:(index + 1) * 8] for index in range(len(raw))])

    return payload.uint


def encode_vlq(value: int, width: int = None) -> bytes:
    '''Encode value using the minimal number of bytes, or exactly "width" bytes
    if indicated (leading groups are zero with the continuation bit set).'''
    if not 0 <= value <= MAX_VALUE:
        raise ValueError(f'{value} cannot be encoded in {MAX_WIDTH} bytes')

    minimal_width = max(1, -(-value.bit_length() // 7))
    width = width or minimal_width

    if not minimal_width <= width <= MAX_WIDTH:
        raise ValueError(f'{value} cannot be encoded in {width} bytes')

    groups = Bits(uint=value, length=7 * width)

    return Bits().join([
        Bits(uint=int(index < width - 1), length=1) + groups[index * 7:(index + 1) * 7]
        for index in range(width)
    ]).bytes
