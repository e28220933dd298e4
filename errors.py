class HuffmanError(Exception):
    """Base class for errors raised by the Huffman codec."""


class CorruptInputError(HuffmanError, ValueError):
    """Encoded artifact is malformed, truncated or otherwise undecodable."""


class CodeTableError(HuffmanError, RuntimeError):
    """A symbol has no code in the table built for it.

    Raised when the second encoding pass sees data the first pass did
    not count, e.g. the source changed between the two passes.
    """
