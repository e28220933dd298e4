import io

import pytest

from bitops import BitWriter, BitReader, get_bit, set_bit

PATTERN = [
    0, 0, 1, 0, 1, 0, 0, 1,
    0, 0, 0, 0, 0, 1, 0, 1,
    1, 1, 1, 1, 1, 0, 1, 1,
]


def test_bitwriter_packs_msb_first():
    out = io.BytesIO()
    bw = BitWriter(out)
    for bit in PATTERN:
        bw.push(bit)
    assert bw.flush() == 3
    assert out.getvalue() == bytes([0x29, 0x05, 0xFB])
    assert bw.bits_written == 24


def test_bitwriter_flush_pads_partial_byte():
    out = io.BytesIO()
    bw = BitWriter(out)
    bw.extend([1, 0, 1])
    bw.flush()
    assert out.getvalue() == bytes([0b10100000])


def test_bitwriter_without_flush_keeps_tail_pending():
    out = io.BytesIO()
    bw = BitWriter(out)
    bw.extend([1] * 7)
    assert out.getvalue() == b""


def test_bitwriter_spills_full_blocks():
    out = io.BytesIO()
    bw = BitWriter(out, capacity=2)
    bw.extend([1] * 16)
    assert out.getvalue() == b"\xff\xff"
    bw.extend([0] * 8 + [1])
    assert out.getvalue() == b"\xff\xff"
    bw.flush()
    assert out.getvalue() == b"\xff\xff\x00\x80"
    assert bw.bits_written == 25


def test_bitwriter_reuses_buffer_after_spill():
    out = io.BytesIO()
    bw = BitWriter(out, capacity=1)
    bw.extend([1] * 8)
    bw.extend([0, 1])
    bw.flush()
    assert out.getvalue() == bytes([0xFF, 0b01000000])


def test_flush_with_nothing_pending_writes_nothing():
    out = io.BytesIO()
    bw = BitWriter(out)
    assert bw.flush() == 0
    assert out.getvalue() == b""


def test_bitwriter_propagates_sink_errors():
    class Broken:
        def write(self, data):
            raise OSError("disk full")

    bw = BitWriter(Broken(), capacity=1)
    bw.extend([1] * 7)
    with pytest.raises(OSError):
        bw.push(1)


def test_invalid_capacity_rejected():
    with pytest.raises(ValueError):
        BitWriter(io.BytesIO(), capacity=0)
    with pytest.raises(ValueError):
        BitReader(io.BytesIO(), block_size=0)


def test_bitreader_yields_msb_first():
    br = BitReader(io.BytesIO(bytes([41, 5, 251])))
    assert list(br) == PATTERN
    assert br.bits_read == 24


def test_bitreader_refills_small_blocks():
    data = bytes([0x29, 0x05, 0xFB])
    br = BitReader(io.BytesIO(data), block_size=1)
    assert list(br) == PATTERN


def test_bitreader_is_lazy_and_not_restartable():
    src = io.BytesIO(b"\x80\x01")
    br = BitReader(src, block_size=1)
    assert next(br) == 1
    assert src.tell() == 1
    assert list(br)[-1] == 1
    assert list(br) == []


def test_bitreader_empty_source():
    assert list(BitReader(io.BytesIO(b""))) == []


def test_set_and_get_bit():
    buf = bytearray(2)
    set_bit(buf, 0, 1)
    set_bit(buf, 2, 1)
    set_bit(buf, 9, 1)
    assert [get_bit(buf, i) for i in (0, 1, 2, 9)] == [1, 0, 1, 1]

    buf = bytearray(b"\xff\xff")
    set_bit(buf, 0, 0)
    set_bit(buf, 9, 0)
    assert buf == bytearray([0x7F, 0xBF])
    assert get_bit(b"\x05", 7) == 1
    assert get_bit(b"\x05", 6) == 0
