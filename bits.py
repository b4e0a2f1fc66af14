"""
Bit packing helpers.

Bits are carried around as strings of "0"/"1" and packed MSB-first,
the last byte being zero-padded.
"""


def pack_bits(bits: str) -> bytes:
    """Pack a bit string into bytes, MSB-first, zero-padding the last byte."""
    if not bits:
        return b""
    padding = (8 - len(bits) % 8) % 8
    bits += "0" * padding
    return int(bits, 2).to_bytes(len(bits) // 8, "big")


def unpack_bits(data: bytes, bit_count: int) -> str:
    """
    Unpack exactly `bit_count` bits from `data`.

    The padding at the end of the last byte cannot be told apart from data,
    so the caller has to say how many bits are meaningful.
    """
    if bit_count < 0 or bit_count > len(data) * 8:
        raise ValueError(f"cannot read {bit_count} bits from {len(data)} bytes")
    if not bit_count:
        return ""
    bit_str = "".join(f"{b:08b}" for b in data)
    return bit_str[:bit_count]


class BitWriter:
    """Accumulates codes and packs every complete byte as soon as it is available."""

    def __init__(self):
        self._out = bytearray()
        self._pending = ""
        self.bit_count = 0

    def write(self, bits: str):
        self._pending += bits
        self.bit_count += len(bits)
        full = len(self._pending) - len(self._pending) % 8
        if full >= 1024:
            self._out += pack_bits(self._pending[:full])
            self._pending = self._pending[full:]

    def getvalue(self) -> bytes:
        return bytes(self._out) + pack_bits(self._pending)
