"""
Tests for the binary encoders.

Test plan:
- compact-u16 encodes the boundary values in 1, 2 and 3 bytes, and every
  value in 0..65535 decodes back to itself
- decoding rejects truncated, non-canonical, overflowing and over-long input
- fixed-width integers are little-endian
- ByteReader refuses to read past the end of its buffer
"""

import pytest

from txpipe.encoding import (
    ByteReader,
    decode_length,
    encode_bytes,
    encode_length,
    encode_u32,
    encode_u64,
    encode_u8,
)
from txpipe.errors import EncodingError

# ---------------------------------------------------------------------------
# compact-u16
# ---------------------------------------------------------------------------


@pytest.mark.parametrize('value,encoded', [
    (0, b'\x00'),
    (1, b'\x01'),
    (127, b'\x7f'),
    (128, b'\x80\x01'),
    (255, b'\xff\x01'),
    (16383, b'\xff\x7f'),
    (16384, b'\x80\x80\x01'),
    (65535, b'\xff\xff\x03'),
])
def test_compact_length_vectors(value, encoded):
    assert encode_length(value) == encoded
    assert decode_length(encoded) == (value, len(encoded))


def test_compact_length_round_trips_every_value():
    for value in range(0x10000):
        encoded = encode_length(value)
        assert decode_length(encoded) == (value, len(encoded))
        expected_size = 1 if value < 0x80 else 2 if value < 0x4000 else 3
        assert len(encoded) == expected_size


def test_compact_length_out_of_range():
    with pytest.raises(ValueError):
        encode_length(65536)
    with pytest.raises(ValueError):
        encode_length(-1)


def test_decode_respects_offset():
    data = b'\xaa\xbb' + encode_length(300) + b'\xcc'
    assert decode_length(data, 2) == (300, 4)


@pytest.mark.parametrize('data', [
    b'',
    b'\x80',
    b'\xff\xff',
])
def test_decode_truncated(data):
    with pytest.raises(EncodingError):
        decode_length(data)


def test_decode_rejects_trailing_zero_byte():
    # 0 encoded in two bytes
    with pytest.raises(EncodingError):
        decode_length(b'\x80\x00')


def test_decode_rejects_overflow():
    with pytest.raises(EncodingError):
        decode_length(b'\xff\xff\x04')


def test_decode_rejects_more_than_three_bytes():
    with pytest.raises(EncodingError):
        decode_length(b'\x80\x80\x80\x01')


# ---------------------------------------------------------------------------
# Fixed width and prefixed bytes
# ---------------------------------------------------------------------------


def test_fixed_width_little_endian():
    assert encode_u8(3) == b'\x03'
    assert encode_u32(2) == b'\x02\x00\x00\x00'
    assert encode_u64(1 << 40) == b'\x00\x00\x00\x00\x00\x01\x00\x00'


def test_encode_bytes_prefixes_length():
    assert encode_bytes(b'abc') == b'\x03abc'
    assert encode_bytes(b'') == b'\x00'


# ---------------------------------------------------------------------------
# ByteReader
# ---------------------------------------------------------------------------


def test_reader_reads_in_sequence():
    reader = ByteReader(encode_u8(7) + encode_u32(9) + encode_u64(11) + encode_bytes(b'xy'))
    assert reader.read_u8() == 7
    assert reader.read_u32() == 9
    assert reader.read_u64() == 11
    assert reader.read_prefixed() == b'xy'
    reader.expect_end()


def test_reader_rejects_overrun():
    reader = ByteReader(b'\x01\x02')
    with pytest.raises(EncodingError):
        reader.read(3)


def test_prefixed_count_past_end_is_rejected():
    # declares 5 items of 32 bytes, carries only 4 bytes
    reader = ByteReader(encode_length(5) + b'\x00' * 4)
    with pytest.raises(EncodingError):
        reader.read_prefixed(32)


def test_expect_end_flags_trailing_bytes():
    reader = ByteReader(b'\x01\x02')
    reader.read_u8()
    with pytest.raises(EncodingError):
        reader.expect_end()
