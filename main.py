import argparse
import logging
import os
import sys

from codec import HuffmanCodec
from errors import HuffmanError

LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"

logger = logging.getLogger(__name__)


def get_parser():
    """Create and configure the CLI argument parser.

    :returns: Configured argument parser.
    :rtype: argparse.ArgumentParser
    """
    parser = argparse.ArgumentParser(
        prog="huffpack",
        description="Compress files using Huffman encoding",
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", help="Suppress all log output"
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (repeat for more)",
    )
    subparsers = parser.add_subparsers(
        title="subcommands", dest="cmd", required=True
    )

    encode = subparsers.add_parser(
        "encode", aliases=["e"], help="Compress a file"
    )
    encode.add_argument("input", help="File to compress")
    encode.add_argument(
        "-o", "--output", required=True, help="Output file path"
    )
    encode.add_argument(
        "-P",
        "--no-progress",
        action="store_true",
        help="Hide progress output",
    )
    encode.add_argument(
        "--spool-size",
        type=int,
        default=HuffmanCodec.SPOOL_SIZE,
        help="Bytes of encoded payload kept in memory before "
             "spilling to a temporary file "
             f"(default: {HuffmanCodec.SPOOL_SIZE})",
    )

    decode = subparsers.add_parser(
        "decode", aliases=["d"], help="Decompress a file"
    )
    decode.add_argument("input", help="File to decompress")
    decode.add_argument(
        "-o", "--output", required=True, help="Output file path"
    )
    decode.add_argument(
        "-P",
        "--no-progress",
        action="store_true",
        help="Hide progress output",
    )

    return parser


def configure_logging(verbose: int, quiet: bool) -> None:
    """Set up root logging on stderr with millisecond timestamps.

    :param verbose: Number of ``-v`` flags; 0 logs warnings, 1 info,
        2 or more debug.
    :type verbose: int
    :param quiet: Disable logging entirely.
    :type quiet: bool
    :returns: None
    :rtype: None
    """
    if quiet:
        level = logging.CRITICAL + 1
    else:
        level = {0: logging.WARNING, 1: logging.INFO}.get(verbose, logging.DEBUG)
    logging.basicConfig(
        level=level, format=LOG_FORMAT, datefmt=LOG_DATEFMT, force=True
    )


def _print_progress(line: str) -> None:
    """Render and flush a single progress line in-place (carriage return).

    :param line: The textual progress line to display.
    :type line: str
    :returns: None
    :rtype: None
    """
    sys.stdout.write("\r" + line)
    sys.stdout.flush()


def _fmt_pct(done: int, total: int) -> str:
    """Format a completion percentage string like ``12.34%``.

    :param done: Units completed.
    :type done: int
    :param total: Total units to complete.
    :type total: int
    :returns: Percentage.
    :rtype: str
    """
    if total <= 0:
        return "0%"
    pct = 100.0 * (done / float(total))
    return f"{pct:6.2f}%"


def _fmt_bytes(n: int) -> str:
    """Format a byte count into a human-readable string.

    :param n: Number of bytes.
    :type n: int
    :returns: Human-readable string.
    :rtype: str
    """
    for unit in ['', 'Ki', 'Mi', 'Gi', 'Ti']:
        if abs(n) < 1024:
            return f"{n:.2f} {unit}B"
        n /= 1024
    return f"{n:.2f} PiB"


class Progress:
    """Callable progress reporter for a single encode or decode run.

    Redraws the line only when the whole-percent value changes.

    :ivar label: Action label (e.g., "Encoding" or "Decoding").
    :type label: str
    :ivar path: Path of the file being processed.
    :type path: str
    """

    def __init__(self, label: str, path: str) -> None:
        self.label = label
        self.path = path
        self._last_reported = -1

    def __call__(self, done: int, total: int) -> None:
        if total <= 0:
            return
        percent_bucket = int((done * 100) / total)
        if percent_bucket == self._last_reported:
            return
        self._last_reported = percent_bucket
        _print_progress(f"{self.label} {self.path}  {_fmt_pct(done, total)}")


def _remove_partial(path: str) -> None:
    """Delete an output file left behind by a failed run."""
    try:
        os.remove(path)
    except FileNotFoundError:
        pass


def encode_path(
    input_path: str,
    output_path: str,
    hide_progress: bool,
    spool_size: int = HuffmanCodec.SPOOL_SIZE,
) -> int:
    """Compress ``input_path`` into ``output_path``.

    :param input_path: File to compress.
    :type input_path: str
    :param output_path: Destination file.
    :type output_path: str
    :param hide_progress: Whether to suppress progress output.
    :type hide_progress: bool
    :param spool_size: In-memory limit of the payload side buffer.
    :type spool_size: int
    :returns: Process exit status.
    :rtype: int
    """
    if not os.path.isfile(input_path):
        print(f"[!] Input file not found: {input_path}")
        return 1
    codec = HuffmanCodec(spool_size=spool_size)
    on_prog = None if hide_progress else Progress("Encoding", input_path)
    try:
        with open(input_path, "rb") as src, open(output_path, "wb") as dst:
            n_bits = codec.encode_to(src, dst, on_progress=on_prog)
    except BaseException:
        _remove_partial(output_path)
        raise
    if not hide_progress:
        sys.stdout.write("\n")
        sys.stdout.flush()

    size_before = os.path.getsize(input_path)
    size_after = os.path.getsize(output_path)
    logger.info("Encoded %s: %d payload bits", input_path, n_bits)
    print("Size before compression: ", _fmt_bytes(size_before))
    print("Size after compression: ", _fmt_bytes(size_after))
    if size_after:
        print(f"Compression ratio: {size_before / size_after:.2f}")
    return 0


def decode_path(input_path: str, output_path: str, hide_progress: bool) -> int:
    """Decompress ``input_path`` into ``output_path``.

    :param input_path: Encoded file.
    :type input_path: str
    :param output_path: Destination file.
    :type output_path: str
    :param hide_progress: Whether to suppress progress output.
    :type hide_progress: bool
    :returns: Process exit status.
    :rtype: int
    """
    if not os.path.isfile(input_path):
        print(f"[!] Input file not found: {input_path}")
        return 1
    codec = HuffmanCodec()
    on_prog = None if hide_progress else Progress("Decoding", input_path)
    try:
        with open(input_path, "rb") as src, open(output_path, "wb") as dst:
            written = codec.decode_to(src, dst, on_progress=on_prog)
    except HuffmanError as e:
        _remove_partial(output_path)
        if not hide_progress:
            sys.stdout.write("\n")
        print(f"[!] Corrupt input {input_path}: {e}")
        return 1
    except BaseException:
        _remove_partial(output_path)
        raise
    if not hide_progress:
        sys.stdout.write("\n")
        sys.stdout.flush()
    logger.info("Decoded %s: %d bytes", input_path, written)
    return 0


def main(argv=None) -> int:
    """Entry point for the CLI tool.

    :param argv: Argument list; defaults to ``sys.argv[1:]``.
    :type argv: Optional[List[str]]
    :returns: Process exit status.
    :rtype: int
    """
    parser = get_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose, args.quiet)

    if args.cmd in ["encode", "e"]:
        if args.spool_size <= 0:
            parser.error("--spool-size must be positive")
        return encode_path(
            args.input, args.output, args.no_progress, args.spool_size
        )
    return decode_path(args.input, args.output, args.no_progress)


if __name__ == "__main__":
    sys.exit(main())
