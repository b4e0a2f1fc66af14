import io
import random
from collections import Counter

import pytest

from errors import Cancelled, InternalInvariantViolation, ReadError
from huffman import (Node, build_codes, build_tree, count_frequencies,
                     huffman_compress, huffman_decompress, invert_codes)


class BrokenSource(io.RawIOBase):
    def readable(self):
        return True

    def read(self, size=-1):
        raise OSError("device went away")


def random_bytes(n, alphabet=256, seed=0):
    rnd = random.Random(seed)
    return bytes(rnd.randrange(alphabet) for _ in range(n))


def skewed_bytes(n, seed=0):
    rnd = random.Random(seed)
    weights = [2 ** (i % 9) for i in range(40)]
    return bytes(rnd.choices(range(40), weights=weights, k=n))


def test_count_frequencies_scenario():
    freq = count_frequencies(io.BytesIO(b"AAAAABBBCC"))
    assert freq == {ord("A"): 5, ord("B"): 3, ord("C"): 2}


def test_count_frequencies_empty():
    assert count_frequencies(io.BytesIO(b"")) == Counter()


def test_count_frequencies_reports_progress():
    seen = []
    count_frequencies(io.BytesIO(b"x" * 10), total=10, chunk_size=3, on_progress=seen.append)
    assert seen == sorted(seen)
    assert seen[0] == 0.0
    assert seen[-1] == 1.0
    assert pytest.approx(seen[1]) == 0.3


def test_count_frequencies_unknown_length():
    seen = []
    count_frequencies(io.BytesIO(b"abcdef"), total=None, chunk_size=2, on_progress=seen.append)
    assert seen == [0.0, 1.0]


def test_count_frequencies_clamps_wrong_length():
    seen = []
    count_frequencies(io.BytesIO(b"abcdef"), total=3, chunk_size=2, on_progress=seen.append)
    assert max(seen) == 1.0


def test_count_frequencies_read_error():
    with pytest.raises(ReadError):
        count_frequencies(BrokenSource())


def test_count_frequencies_closed_source():
    src = io.BytesIO(b"abc" * 10)

    def close_after_first(p):
        if p > 0:
            src.close()

    with pytest.raises(Cancelled):
        count_frequencies(src, total=30, chunk_size=4, on_progress=close_after_first)


def test_build_tree_empty():
    assert build_tree(Counter()) is None


def test_build_tree_single_symbol():
    root = build_tree(Counter(b"ZZZZ"))
    assert root.is_leaf
    assert root.byte == ord("Z")
    assert root.count == 4


def test_build_tree_is_strict_binary():
    data = skewed_bytes(2000)
    root = build_tree(Counter(data))
    assert root.count == len(data)

    leaves = []
    stack = [root]
    while stack:
        node = stack.pop()
        if node.is_leaf:
            leaves.append(node.byte)
            continue
        assert node.lo is not None and node.hi is not None
        assert node.count == node.lo.count + node.hi.count
        stack += [node.lo, node.hi]
    assert sorted(leaves) == sorted(set(data))


def test_build_codes_scenario():
    codes = build_codes(build_tree(Counter(b"AAAAABBBCC")))
    a, b, c = codes[ord("A")], codes[ord("B")], codes[ord("C")]
    assert len(a) <= len(b) <= len(c)
    assert len(a) == 1


def test_build_codes_single_symbol_gets_one_bit():
    assert build_codes(build_tree(Counter(b"ZZZZ"))) == {ord("Z"): "0"}


def test_build_codes_empty():
    assert build_codes(None) == {}


def test_build_codes_rejects_half_internal_node():
    root = Node(None, 2, Node(1, 2), None)
    with pytest.raises(InternalInvariantViolation):
        build_codes(root)


@pytest.mark.parametrize("seed", range(5))
def test_codes_are_prefix_free(seed):
    codes = build_codes(build_tree(Counter(random_bytes(3000, seed=seed))))
    values = list(codes.values())
    for x in values:
        for y in values:
            if x != y:
                assert not y.startswith(x)


@pytest.mark.parametrize("seed", range(5))
def test_code_length_follows_frequency(seed):
    freq = Counter(skewed_bytes(5000, seed=seed))
    codes = build_codes(build_tree(freq))
    for a in freq:
        for b in freq:
            if freq[a] > freq[b]:
                assert len(codes[a]) <= len(codes[b])


def test_all_byte_values_get_codes():
    codes = build_codes(build_tree(Counter(bytes(range(256)))))
    assert len(codes) == 256
    assert all(len(code) == 8 for code in codes.values())


def test_invert_codes():
    assert invert_codes({65: "0", 66: "10"}) == {"0": 65, "10": 66}


def test_invert_codes_rejects_shared_code():
    with pytest.raises(InternalInvariantViolation):
        invert_codes({65: "01", 66: "01"})


@pytest.mark.parametrize("data", [
    b"",
    b"A",
    b"ZZZZ",
    b"AAAAABBBCC",
    bytes(range(256)),
    random_bytes(10 * 1024),
])
def test_roundtrip(data):
    assert huffman_decompress(huffman_compress(data)) == data


def test_decompress_raises_on_garbage():
    with pytest.raises(Exception):
        huffman_decompress(b"\x05")
