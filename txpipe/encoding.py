"""Binary encoders used by the transaction wire format"""

import struct
from typing import Tuple

from .errors import EncodingError

MAX_COMPACT_VALUE = 0xFFFF
MAX_COMPACT_BYTES = 3


def encode_length(length: int) -> bytes:
    """Encode length as compact-u16"""
    if length < 0 or length > MAX_COMPACT_VALUE:
        raise ValueError(f"compact-u16 value out of range: {length}")
    result = []
    while length > 0x7f:
        result.append((length & 0x7f) | 0x80)
        length >>= 7
    result.append(length)
    return bytes(result)


def decode_length(data: bytes, offset: int = 0) -> Tuple[int, int]:
    """Decode a compact-u16 at offset.

    Returns:
        (value, offset just past the encoding)

    Raises:
        EncodingError: truncated, over-long or non-canonical encodings
    """
    value = 0
    for i in range(MAX_COMPACT_BYTES):
        pos = offset + i
        if pos >= len(data):
            raise EncodingError('Truncated compact-u16')
        byte = data[pos]
        value |= (byte & 0x7f) << (7 * i)
        if byte & 0x80 == 0:
            if i > 0 and byte == 0:
                raise EncodingError('Non-canonical compact-u16 (trailing zero byte)')
            if value > MAX_COMPACT_VALUE:
                raise EncodingError('compact-u16 overflow')
            return value, pos + 1
    raise EncodingError('compact-u16 longer than 3 bytes')


def encode_u8(value: int) -> bytes:
    return struct.pack('<B', value)


def encode_u32(value: int) -> bytes:
    return struct.pack('<I', value)


def encode_u64(value: int) -> bytes:
    return struct.pack('<Q', value)


def encode_bytes(data: bytes) -> bytes:
    """compact-u16 length prefix followed by the bytes"""
    return encode_length(len(data)) + bytes(data)


class ByteReader:
    """Bounds-checked cursor over a byte buffer"""

    def __init__(self, data: bytes, offset: int = 0):
        self.data = bytes(data)
        self.offset = offset

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def read(self, size: int) -> bytes:
        if size < 0 or size > self.remaining:
            raise EncodingError(
                f"Need {size} bytes at offset {self.offset}, only {self.remaining} remain"
            )
        chunk = self.data[self.offset:self.offset + size]
        self.offset += size
        return chunk

    def read_length(self) -> int:
        value, self.offset = decode_length(self.data, self.offset)
        return value

    def read_prefixed(self, item_size: int = 1) -> bytes:
        """Read a compact-u16 count of items, then the items' bytes.

        A count whose payload would run past the end of the buffer is
        rejected rather than truncated.
        """
        count = self.read_length()
        return self.read(count * item_size)

    def read_u8(self) -> int:
        return self.read(1)[0]

    def read_u32(self) -> int:
        return struct.unpack('<I', self.read(4))[0]

    def read_u64(self) -> int:
        return struct.unpack('<Q', self.read(8))[0]

    def expect_end(self):
        if self.remaining:
            raise EncodingError(f"{self.remaining} trailing bytes after decode")
