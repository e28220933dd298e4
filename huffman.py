import heapq
import json
from collections import Counter
from collections.abc import Mapping
from typing import BinaryIO, Dict, Iterator, Optional, Tuple

from bitops import BUF_SIZE
from errors import CorruptInputError

Code = Tuple[int, ...]


class FrequencyTable(Mapping):
    """Read-only mapping from byte value to occurrence count.

    Only symbols that actually occur are present as keys.

    :ivar total: Number of symbols counted.
    :type total: int
    """

    def __init__(self, counts: Optional[Mapping] = None):
        """Create a table from a mapping of symbol to count.

        :param counts: Mapping from byte value (0-255) to count. Zero
            counts are dropped.
        :type counts: Mapping[int, int] | None
        :returns: None
        :rtype: None
        :raises ValueError: If a symbol is outside 0-255 or a count is
            negative.
        """
        table: Dict[int, int] = {}
        for symbol, count in (counts or {}).items():
            if not 0 <= symbol <= 255:
                raise ValueError(f"Symbol out of byte range: {symbol}")
            if count < 0:
                raise ValueError(f"Negative count for symbol {symbol}: {count}")
            if count:
                table[symbol] = count
        self._counts = table
        self.total = sum(table.values())

    @classmethod
    def from_bytes(cls, data: bytes) -> "FrequencyTable":
        """Count every byte of ``data``.

        :param data: Input bytes.
        :type data: bytes
        :returns: The frequency table.
        :rtype: FrequencyTable
        """
        return cls(Counter(data))

    @classmethod
    def from_stream(
        cls, source: BinaryIO, block_size: int = BUF_SIZE
    ) -> "FrequencyTable":
        """Count every byte of ``source`` in a single streaming pass.

        The stream is read in blocks of ``block_size`` bytes until an
        empty read; it is left positioned at its end.

        :param source: Readable binary stream.
        :type source: BinaryIO
        :param block_size: Number of bytes read per call.
        :type block_size: int
        :returns: The frequency table.
        :rtype: FrequencyTable
        """
        counts = Counter()
        while True:
            block = source.read(block_size)
            if not block:
                break
            counts.update(block)
        return cls(counts)

    def __getitem__(self, symbol: int) -> int:
        return self._counts[symbol]

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._counts))

    def __len__(self) -> int:
        return len(self._counts)

    def __repr__(self):
        return f"FrequencyTable({dict(sorted(self._counts.items()))!r})"


class HuffmanTree:
    """Immutable binary Huffman tree, either a :class:`Leaf` or a :class:`Node`.

    :ivar weight: Sum of the leaf weights of this subtree.
    :type weight: int
    """

    __slots__ = ("weight",)

    is_leaf = False

    def codes(self) -> Dict[int, Code]:
        """Derive the code table by a depth-first walk of the tree.

        The zero-branch of every node is visited before its one-branch.
        When a symbol is reached twice (the single-symbol tree) the
        first path wins, so that symbol's code is ``(0,)``.

        :returns: Mapping from symbol to its code, a tuple of bits.
        :rtype: Dict[int, Tuple[int, ...]]
        """
        table: Dict[int, Code] = {}
        stack = [(self, ())]
        while stack:
            node, path = stack.pop()
            if node.is_leaf:
                table.setdefault(node.symbol, path)
            else:
                stack.append((node.one, path + (1,)))
                stack.append((node.zero, path + (0,)))
        return table

    def decode_one(self, bits: Iterator[int]) -> Tuple[int, int]:
        """Walk from the root to a leaf, consuming one bit per edge.

        :param bits: Bit iterator positioned at the start of a code.
        :type bits: Iterator[int]
        :returns: Tuple ``(symbol, code_length)``.
        :rtype: Tuple[int, int]
        :raises CorruptInputError: If ``bits`` runs out mid-code.
        """
        node = self
        length = 0
        while not node.is_leaf:
            bit = next(bits, None)
            if bit is None:
                raise CorruptInputError("Payload ended in the middle of a code")
            node = node.one if bit else node.zero
            length += 1
        return node.symbol, length


class Leaf(HuffmanTree):
    """Terminal node holding a symbol and its weight."""

    __slots__ = ("symbol",)

    is_leaf = True

    def __init__(self, symbol: int, weight: int):
        self.symbol = symbol
        self.weight = weight

    def __eq__(self, other):
        if not isinstance(other, Leaf):
            return NotImplemented
        return self.symbol == other.symbol and self.weight == other.weight

    def __hash__(self):
        return hash((self.symbol, self.weight))

    def __repr__(self):
        return f"Leaf({self.symbol!r}, {self.weight!r})"


class Node(HuffmanTree):
    """Internal node owning a zero-branch and a one-branch child.

    :ivar zero: Subtree reached by a ``0`` bit.
    :type zero: HuffmanTree
    :ivar one: Subtree reached by a ``1`` bit.
    :type one: HuffmanTree
    """

    __slots__ = ("zero", "one")

    def __init__(
        self,
        zero: HuffmanTree,
        one: HuffmanTree,
        weight: Optional[int] = None,
    ):
        """Create an internal node.

        :param zero: Zero-branch child.
        :type zero: HuffmanTree
        :param one: One-branch child.
        :type one: HuffmanTree
        :param weight: Explicit weight; defaults to the sum of the
            children's weights. Only the single-symbol tree passes it.
        :type weight: int | None
        :returns: None
        :rtype: None
        """
        self.zero = zero
        self.one = one
        self.weight = zero.weight + one.weight if weight is None else weight

    def __eq__(self, other):
        if not isinstance(other, Node):
            return NotImplemented
        return (
            self.weight == other.weight
            and self.zero == other.zero
            and self.one == other.one
        )

    def __hash__(self):
        return hash((self.weight, self.zero, self.one))

    def __repr__(self):
        return f"Node({self.zero!r}, {self.one!r}, weight={self.weight!r})"


def build_tree(frequencies: Mapping) -> HuffmanTree:
    """Build a Huffman tree by greedily merging the two lightest trees.

    Leaves enter the queue in ascending symbol order and every merged
    node is numbered after all existing entries; equal weights are
    popped in that order. The first tree popped becomes the zero-branch
    of the merged node.

    :param frequencies: Mapping from symbol to a positive count.
    :type frequencies: Mapping[int, int]
    :returns: Root of the tree.
    :rtype: HuffmanTree
    :raises ValueError: If ``frequencies`` has no non-zero entry.
    """
    items = sorted((s, w) for s, w in frequencies.items() if w > 0)
    if not items:
        raise ValueError("Cannot build a Huffman tree from an empty table")

    if len(items) == 1:
        symbol, weight = items[0]
        return Node(Leaf(symbol, weight), Leaf(symbol, weight), weight=weight)

    heap = [(weight, order, Leaf(symbol, weight))
            for order, (symbol, weight) in enumerate(items)]
    heapq.heapify(heap)
    order = len(heap)

    while len(heap) > 1:
        _, _, zero = heapq.heappop(heap)
        _, _, one = heapq.heappop(heap)
        merged = Node(zero, one)
        heapq.heappush(heap, (merged.weight, order, merged))
        order += 1

    return heap[0][2]


def _tree_to_obj(tree: HuffmanTree):
    if tree.is_leaf:
        return {"Leaf": [tree.symbol, tree.weight]}
    return {
        "Node": {
            "weight": tree.weight,
            "zero": _tree_to_obj(tree.zero),
            "one": _tree_to_obj(tree.one),
        }
    }


def dump_tree(tree: HuffmanTree) -> bytes:
    """Serialize ``tree`` as one line of compact JSON.

    Leaves are ``{"Leaf":[symbol,weight]}`` and internal nodes are
    ``{"Node":{"weight":w,"zero":...,"one":...}}``.

    :param tree: Tree to serialize.
    :type tree: HuffmanTree
    :returns: ASCII JSON without any newline.
    :rtype: bytes
    """
    return json.dumps(_tree_to_obj(tree), separators=(",", ":")).encode("ascii")


def _is_count(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _obj_to_tree(obj) -> HuffmanTree:
    if not isinstance(obj, dict) or len(obj) != 1:
        raise CorruptInputError("Tree entry must be a single-key object")

    if "Leaf" in obj:
        leaf = obj["Leaf"]
        if not isinstance(leaf, list) or len(leaf) != 2:
            raise CorruptInputError("Leaf must be a [symbol, weight] pair")
        symbol, weight = leaf
        if not _is_count(symbol) or symbol > 255:
            raise CorruptInputError(f"Invalid leaf symbol: {symbol!r}")
        if not _is_count(weight):
            raise CorruptInputError(f"Invalid leaf weight: {weight!r}")
        return Leaf(symbol, weight)

    if "Node" in obj:
        node = obj["Node"]
        if not isinstance(node, dict) or set(node) != {"weight", "zero", "one"}:
            raise CorruptInputError("Node must have weight, zero and one")
        weight = node["weight"]
        if not _is_count(weight):
            raise CorruptInputError(f"Invalid node weight: {weight!r}")
        zero = _obj_to_tree(node["zero"])
        one = _obj_to_tree(node["one"])
        if zero.is_leaf and zero == one:
            expected = zero.weight
        else:
            expected = zero.weight + one.weight
        if weight != expected:
            raise CorruptInputError(
                f"Node weight {weight} does not match its children"
            )
        return Node(zero, one, weight=weight)

    raise CorruptInputError(f"Unknown tree entry: {next(iter(obj))!r}")


def load_tree(data: bytes) -> HuffmanTree:
    """Rebuild a tree serialized by :func:`dump_tree`.

    :param data: Serialized tree.
    :type data: bytes
    :returns: The reconstructed tree, equal to the one that was dumped.
    :rtype: HuffmanTree
    :raises CorruptInputError: If ``data`` is not valid JSON or does not
        describe a well-formed tree.
    """
    try:
        obj = json.loads(data)
        return _obj_to_tree(obj)
    except RecursionError:
        raise CorruptInputError("Serialized tree is nested too deeply") from None
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CorruptInputError(f"Invalid tree encoding: {e}") from e
