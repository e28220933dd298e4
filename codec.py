import io
import logging
import shutil
import tempfile
import time
from typing import BinaryIO, Callable, Mapping, Optional

from bitops import BUF_SIZE, BitReader, BitWriter
from errors import CodeTableError, CorruptInputError
from huffman import FrequencyTable, build_tree, dump_tree, load_tree

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


def _report(on_progress: Optional[ProgressCallback], done: int, total: int):
    """Invoke a progress callback, ignoring anything it raises.

    :param on_progress: Callback ``on_progress(done, total)`` or ``None``.
    :type on_progress: Optional[Callable[[int, int], None]]
    :param done: Units completed.
    :type done: int
    :param total: Total units.
    :type total: int
    :returns: None
    :rtype: None
    """
    if on_progress is None:
        return
    try:
        on_progress(done, total)
    except Exception:
        logger.debug("Progress callback failed", exc_info=True)


class HuffmanCodec:
    """Two-pass streaming Huffman encoder and single-pass decoder.

    Artifact layout::

        <tree as one line of JSON>\\n<payload bit count>\\n<payload bytes>

    The payload is packed MSB-first and zero-padded to a whole byte.
    An empty input encodes to an empty artifact and vice versa.

    :ivar BLOCK_SIZE: Default number of bytes per read/write block.
    :type BLOCK_SIZE: int
    :ivar SPOOL_SIZE: Default in-memory limit of the payload side buffer
        before it spills to a temporary file.
    :type SPOOL_SIZE: int
    :ivar block_size: Block size used by this instance.
    :type block_size: int
    :ivar spool_size: Side buffer limit used by this instance.
    :type spool_size: int
    """

    BLOCK_SIZE = BUF_SIZE
    SPOOL_SIZE = 1 << 20

    def __init__(
        self,
        block_size: Optional[int] = None,
        spool_size: Optional[int] = None,
    ):
        """Create a codec.

        :param block_size: Read/write block size in bytes.
        :type block_size: Optional[int]
        :param spool_size: Bytes of payload kept in memory before the side
            buffer is moved to disk.
        :type spool_size: Optional[int]
        :returns: None
        :rtype: None
        :raises ValueError: If a size is not positive.
        """
        self.block_size = self.BLOCK_SIZE if block_size is None else block_size
        self.spool_size = self.SPOOL_SIZE if spool_size is None else spool_size
        if self.block_size <= 0:
            raise ValueError(f"Invalid block size: {self.block_size}")
        if self.spool_size <= 0:
            raise ValueError(f"Invalid spool size: {self.spool_size}")

    def encode_to(
        self,
        source: BinaryIO,
        sink: BinaryIO,
        frequencies: Optional[Mapping] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """Encode everything readable from ``source`` into ``sink``.

        ``source`` is read twice, once to count byte frequencies and once
        to emit codes, with a rewind in between. A source that cannot
        seek is first copied into a temporary spool. When ``frequencies``
        is given the counting pass is skipped; it must then cover every
        byte of the source.

        :param source: Readable binary stream positioned at its start.
        :type source: BinaryIO
        :param sink: Writable binary stream for the artifact.
        :type sink: BinaryIO
        :param frequencies: Optional precomputed byte counts for ``source``.
        :type frequencies: Optional[Mapping[int, int]]
        :param on_progress: Optional callback ``on_progress(done, total)``
            receiving input bytes encoded so far.
        :type on_progress: Optional[Callable[[int, int], None]]
        :returns: Number of payload bits written.
        :rtype: int
        :raises CodeTableError: If the second pass meets a byte with no code.
        :raises OSError: If reading, writing or the temporary store fails.
        """
        if not _is_seekable(source):
            logger.debug("Source is not seekable, spooling it first")
            with tempfile.SpooledTemporaryFile(max_size=self.spool_size) as spool:
                shutil.copyfileobj(source, spool, self.block_size)
                spool.seek(0)
                return self._encode_seekable(spool, sink, frequencies, on_progress)
        return self._encode_seekable(source, sink, frequencies, on_progress)

    def _encode_seekable(self, source, sink, frequencies, on_progress) -> int:
        """Run both encoding passes over a rewindable ``source``.

        :returns: Number of payload bits written.
        :rtype: int
        """
        start = source.tell()

        if frequencies is None:
            started = time.perf_counter()
            table = FrequencyTable.from_stream(source, self.block_size)
            logger.debug(
                "Counted %d bytes (%d distinct) in %.3fs",
                table.total, len(table), time.perf_counter() - started,
            )
        else:
            table = FrequencyTable(frequencies)

        if not table:
            if frequencies is not None:
                block = source.read(self.block_size)
                if block:
                    raise CodeTableError(f"No code for byte 0x{block[0]:02x}")
            logger.debug("Empty input, nothing to encode")
            return 0

        tree = build_tree(table)
        codes = tree.codes()
        header_tree = dump_tree(tree)

        source.seek(start)
        started = time.perf_counter()
        with tempfile.SpooledTemporaryFile(max_size=self.spool_size) as payload:
            writer = BitWriter(payload, self.block_size)
            done = 0
            while True:
                block = source.read(self.block_size)
                if not block:
                    break
                for byte in block:
                    code = codes.get(byte)
                    if code is None:
                        raise CodeTableError(f"No code for byte 0x{byte:02x}")
                    writer.extend(code)
                done += len(block)
                _report(on_progress, done, table.total)
            writer.flush()
            n_bits = writer.bits_written
            logger.debug(
                "Packed %d bytes into %d bits in %.3fs",
                done, n_bits, time.perf_counter() - started,
            )

            sink.write(header_tree)
            sink.write(b"\n%d\n" % n_bits)
            payload.seek(0)
            shutil.copyfileobj(payload, sink, self.block_size)

        return n_bits

    def decode_to(
        self,
        source: BinaryIO,
        sink: BinaryIO,
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """Decode an artifact produced by :meth:`encode_to`.

        :param source: Readable binary stream holding the artifact.
        :type source: BinaryIO
        :param sink: Writable binary stream for the decoded bytes.
        :type sink: BinaryIO
        :param on_progress: Optional callback ``on_progress(done, total)``
            receiving payload bits consumed against the declared count.
        :type on_progress: Optional[Callable[[int, int], None]]
        :returns: Number of decoded bytes written.
        :rtype: int
        :raises CorruptInputError: If the header is malformed or the
            payload does not hold the declared number of bits.
        :raises OSError: If reading or writing fails.
        """
        tree_line = source.readline()
        if not tree_line:
            return 0
        if not tree_line.endswith(b"\n"):
            raise CorruptInputError("Missing header: no tree line")
        tree = load_tree(tree_line[:-1])
        if tree.is_leaf:
            raise CorruptInputError("Tree root must be an internal node")

        count_line = source.readline()
        if not count_line.endswith(b"\n"):
            raise CorruptInputError("Missing header: no bit count line")
        digits = count_line[:-1]
        if not digits or not digits.isdigit():
            raise CorruptInputError(f"Invalid bit count: {digits!r}")
        n_bits = int(digits)
        if n_bits == 0:
            raise CorruptInputError("Bit count is zero but a tree is present")
        logger.debug("Decoding %d payload bits", n_bits)

        bits = BitReader(source, self.block_size)
        out = bytearray()
        written = 0
        bits_read = 0
        while bits_read < n_bits:
            symbol, length = tree.decode_one(bits)
            bits_read += length
            if bits_read > n_bits:
                raise CorruptInputError(
                    f"Last code ends at bit {bits_read}, past declared {n_bits}"
                )
            out.append(symbol)
            if len(out) >= self.block_size:
                sink.write(out)
                written += len(out)
                out.clear()
                _report(on_progress, bits_read, n_bits)
        if out:
            sink.write(out)
            written += len(out)
        _report(on_progress, bits_read, n_bits)
        return written

    def encode(self, data: bytes) -> bytes:
        """Encode ``data`` in memory.

        :param data: Input bytes.
        :type data: bytes
        :returns: The artifact; empty for empty input.
        :rtype: bytes
        """
        out = io.BytesIO()
        self.encode_to(io.BytesIO(data), out)
        return out.getvalue()

    def decode(self, data: bytes) -> bytes:
        """Decode an in-memory artifact.

        :param data: Artifact produced by :meth:`encode`.
        :type data: bytes
        :returns: The original bytes.
        :rtype: bytes
        :raises CorruptInputError: If ``data`` is malformed.
        """
        out = io.BytesIO()
        self.decode_to(io.BytesIO(data), out)
        return out.getvalue()


def _is_seekable(stream) -> bool:
    """Return ``True`` if ``stream`` reports that it can seek."""
    seekable = getattr(stream, "seekable", None)
    return bool(seekable and seekable())


def encode(data: bytes) -> bytes:
    """Encode ``data`` with a default :class:`HuffmanCodec`."""
    return HuffmanCodec().encode(data)


def decode(data: bytes) -> bytes:
    """Decode ``data`` with a default :class:`HuffmanCodec`."""
    return HuffmanCodec().decode(data)


def encode_file(
    src_path: str,
    dst_path: str,
    on_progress: Optional[ProgressCallback] = None,
    codec: Optional[HuffmanCodec] = None,
) -> int:
    """Encode the file at ``src_path`` into ``dst_path``.

    :returns: Number of payload bits written.
    :rtype: int
    """
    codec = codec or HuffmanCodec()
    with open(src_path, "rb") as src, open(dst_path, "wb") as dst:
        return codec.encode_to(src, dst, on_progress=on_progress)


def decode_file(
    src_path: str,
    dst_path: str,
    on_progress: Optional[ProgressCallback] = None,
    codec: Optional[HuffmanCodec] = None,
) -> int:
    """Decode the artifact at ``src_path`` into ``dst_path``.

    :returns: Number of decoded bytes written.
    :rtype: int
    """
    codec = codec or HuffmanCodec()
    with open(src_path, "rb") as src, open(dst_path, "wb") as dst:
        return codec.decode_to(src, dst, on_progress=on_progress)
