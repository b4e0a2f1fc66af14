from collections import Counter
import heapq
import io

import settings
from errors import Cancelled, InternalInvariantViolation, ReadError


class Node:
    """
    Huffman tree node.

    A leaf holds one byte value; an internal node owns exactly two children,
    `lo` (bit 0) and `hi` (bit 1), and the sum of their counts.
    """

    def __init__(self, byte=None, count=0, lo=None, hi=None):
        self.byte = byte
        self.count = count
        self.lo = lo
        self.hi = hi

    @property
    def is_leaf(self):
        return self.lo is None and self.hi is None

    def __lt__(self, other):
        return self.count < other.count

    def __repr__(self):
        if self.is_leaf:
            return f"Node(byte={self.byte}, count={self.count})"
        return f"Node(count={self.count})"


def count_frequencies(source, total=None, chunk_size=None, on_progress=None) -> Counter:
    """
    Count every byte of a binary file object, reading it in chunks.

    `total` is the expected length in bytes, or None when unknown. Progress
    is reported after each chunk when the length is known, and 1.0 is always
    reported at the end.
    """
    chunk_size = chunk_size or settings.CHUNK_SIZE
    freq = Counter()
    bytes_read = 0

    if on_progress:
        on_progress(0.0)
    for chunk in read_chunks(source, chunk_size):
        freq.update(chunk)
        bytes_read += len(chunk)
        if on_progress and total:
            on_progress(min(bytes_read / total, 1.0))
    if on_progress:
        on_progress(1.0)
    return freq


def read_chunks(source, chunk_size):
    """Yield chunks of `source` until EOF, converting I/O failures to ReadError."""
    while True:
        if source.closed:
            raise Cancelled("source was closed while reading")
        try:
            chunk = source.read(chunk_size)
        except ValueError as e:
            # read() on a file closed by another thread
            raise Cancelled(f"source was closed while reading: {e}") from e
        except OSError as e:
            raise ReadError(f"read failed: {e}") from e
        if not chunk:
            return
        yield chunk


def build_tree(frequencies):
    """
    Build the Huffman tree for a byte -> count mapping.

    Returns None for an empty mapping, and the lone leaf when there is a
    single distinct byte.
    """
    heap = [Node(byte, count) for byte, count in frequencies.items() if count > 0]
    if not heap:
        return None
    heapq.heapify(heap)

    while len(heap) > 1:
        try:
            lo = heapq.heappop(heap)
            hi = heapq.heappop(heap)
        except IndexError as e:
            raise InternalInvariantViolation("priority queue underflow") from e
        heapq.heappush(heap, Node(None, lo.count + hi.count, lo, hi))

    return heap[0]


def build_codes(root):
    """Walk the tree once and return the byte -> code table."""
    codebook = {}
    if root is None:
        return codebook
    if root.is_leaf:
        # A lone symbol still needs one bit per occurrence
        codebook[root.byte] = "0"
        return codebook

    stack = [(root, "")]
    while stack:
        node, prefix = stack.pop()
        if node.is_leaf:
            codebook[node.byte] = prefix
            continue
        if node.lo is None or node.hi is None:
            raise InternalInvariantViolation(f"internal node with a single child: {node!r}")
        stack.append((node.hi, prefix + "1"))
        stack.append((node.lo, prefix + "0"))
    return codebook


def invert_codes(codes):
    """Return the code -> byte table, checking that no two bytes share a code."""
    rev = {v: k for k, v in codes.items()}
    if len(rev) != len(codes):
        raise InternalInvariantViolation("two symbols were given the same code")
    return rev


def huffman_compress(data: bytes) -> bytes:
    """Compress a byte string into a container."""
    from pipeline import CompressionPipeline

    pipeline = CompressionPipeline(io.BytesIO(data), total=len(data))
    result = pipeline.run()
    if pipeline.error is not None:
        raise pipeline.error
    return result


def huffman_decompress(blob: bytes, legacy=False) -> bytes:
    """Decompress a container produced by huffman_compress()."""
    from pipeline import DecompressionPipeline

    pipeline = DecompressionPipeline(io.BytesIO(blob), legacy=legacy)
    result = pipeline.run()
    if pipeline.error is not None:
        raise pipeline.error
    return result
