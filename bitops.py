from typing import BinaryIO, Iterable

BUF_SIZE = 2048  #: Size in bytes of the reader/writer block buffers


def _byte_idx_and_mask(idx: int):
    """Split an absolute bit index into a byte index and a bit mask.

    Bit 0 is the most significant bit of byte 0.

    :param idx: Absolute bit position.
    :type idx: int
    :returns: Tuple ``(byte_index, mask)``.
    :rtype: Tuple[int, int]
    """
    return idx >> 3, 0x80 >> (idx & 7)


def set_bit(buf: bytearray, idx: int, value: int) -> None:
    """Set bit ``idx`` of ``buf`` (MSB-first) to ``value``.

    :param buf: Buffer to modify in place.
    :type buf: bytearray
    :param idx: Absolute bit position.
    :type idx: int
    :param value: Truthy for 1, falsy for 0.
    :type value: int
    :returns: None
    :rtype: None
    """
    byte_idx, mask = _byte_idx_and_mask(idx)
    if value:
        buf[byte_idx] |= mask
    else:
        buf[byte_idx] &= ~mask & 0xFF


def get_bit(buf: bytes, idx: int) -> int:
    """Return bit ``idx`` of ``buf`` (MSB-first) as ``0`` or ``1``.

    :param buf: Buffer to read from.
    :type buf: bytes
    :param idx: Absolute bit position.
    :type idx: int
    :returns: The bit value.
    :rtype: int
    """
    byte_idx, mask = _byte_idx_and_mask(idx)
    return 1 if buf[byte_idx] & mask else 0


class BitWriter:
    """Bit-packing writer.

    Accumulates individual bits MSB-first into a fixed-capacity block and
    writes the block to ``sink`` whenever it fills up.

    :ivar sink: Writable binary stream receiving the packed bytes.
    :type sink: BinaryIO
    :ivar capacity: Size of the block buffer in bytes.
    :type capacity: int
    :ivar buffer: Block buffer holding pending bits.
    :type buffer: bytearray
    :ivar pos: Number of bits currently held in ``buffer``.
    :type pos: int
    :ivar bits_written: Total number of bits pushed since creation.
    :type bits_written: int
    """

    def __init__(self, sink: BinaryIO, capacity: int = BUF_SIZE):
        """Create a writer over ``sink``.

        :param sink: Writable binary stream.
        :type sink: BinaryIO
        :param capacity: Block buffer size in bytes.
        :type capacity: int
        :returns: None
        :rtype: None
        :raises ValueError: If ``capacity`` is not positive.
        """
        if capacity <= 0:
            raise ValueError(f"Invalid buffer capacity: {capacity}")
        self.sink = sink
        self.capacity = capacity
        self.buffer = bytearray(capacity)
        self.pos = 0
        self.bits_written = 0

    def push(self, bit: int) -> None:
        """Append one bit, flushing the block to ``sink`` when it is full.

        :param bit: Truthy for 1, falsy for 0.
        :type bit: int
        :returns: None
        :rtype: None
        """
        set_bit(self.buffer, self.pos, bit)
        self.pos += 1
        self.bits_written += 1
        if self.pos >= 8 * self.capacity:
            self.flush()

    def extend(self, bits: Iterable[int]) -> None:
        """Push every bit of ``bits`` in order.

        :param bits: Sequence of bits, e.g. a Huffman code.
        :type bits: Iterable[int]
        :returns: None
        :rtype: None
        """
        for bit in bits:
            self.push(bit)

    def flush(self) -> int:
        """Write out every pending bit and reset the block buffer.

        A partially filled last byte is zero-padded in its low-order bits.
        Must be called once at the end of a writing session, otherwise
        the trailing bits are lost.

        :returns: Number of bytes written to ``sink`` by this call.
        :rtype: int
        """
        used = (self.pos + 7) >> 3
        if used:
            self.sink.write(bytes(self.buffer[:used]))
            self.buffer[:used] = bytes(used)
        self.pos = 0
        return used


class BitReader:
    """Lazy MSB-first bit iterator over a binary stream.

    Bytes are pulled from ``source`` one block at a time, only when the
    current block is exhausted. The first empty read ends the iteration;
    the reader cannot be restarted.

    :ivar source: Readable binary stream.
    :type source: BinaryIO
    :ivar block_size: Number of bytes requested per refill.
    :type block_size: int
    :ivar bits_read: Number of bits yielded so far.
    :type bits_read: int
    """

    def __init__(self, source: BinaryIO, block_size: int = BUF_SIZE):
        """Create a bit reader over ``source``.

        :param source: Readable binary stream.
        :type source: BinaryIO
        :param block_size: Number of bytes requested per refill.
        :type block_size: int
        :returns: None
        :rtype: None
        :raises ValueError: If ``block_size`` is not positive.
        """
        if block_size <= 0:
            raise ValueError(f"Invalid block size: {block_size}")
        self.source = source
        self.block_size = block_size
        self.block = b""
        self.pos = 0
        self.length = 0
        self.bits_read = 0
        self.exhausted = False

    def __iter__(self):
        return self

    def __next__(self) -> int:
        if self.pos == self.length:
            if self.exhausted:
                raise StopIteration
            self.block = self.source.read(self.block_size)
            if not self.block:
                self.exhausted = True
                raise StopIteration
            self.length = 8 * len(self.block)
            self.pos = 0

        bit = get_bit(self.block, self.pos)
        self.pos += 1
        self.bits_read += 1
        return bit
