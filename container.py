"""
Reading and writing the .hz container.

Layout (little-endian):

    entry_count        u16
    entry_count times:
        symbol         u8
        code_length    u8
        code bits      ceil(code_length / 8) bytes, MSB-first
    payload_bit_count  u64   (missing from the legacy layout)
    payload            packed bits, MSB-first

The legacy layout has no payload bit count, so the zero padding of the last
payload byte reads as data and may decode into phantom trailing symbols.
"""

import struct

from bits import pack_bits, unpack_bits
from errors import MalformedContainer

_COUNT = struct.Struct("<H")
_ENTRY = struct.Struct("<BB")
_BIT_COUNT = struct.Struct("<Q")

MAX_CODE_LENGTH = 255


def write_container(codes, payload, bit_count, legacy=False) -> bytes:
    """
    Serialize a byte -> code table and the packed payload.

    `payload` is already packed; `bit_count` is the number of meaningful
    bits in it.
    """
    out = bytearray(_COUNT.pack(len(codes)))
    for byte, code in codes.items():
        if not 0 < len(code) <= MAX_CODE_LENGTH:
            raise ValueError(f"code for byte {byte} has unsupported length {len(code)}")
        out += _ENTRY.pack(byte, len(code))
        out += pack_bits(code)
    if not legacy:
        out += _BIT_COUNT.pack(bit_count)
    out += payload
    return bytes(out)


def read_container(data: bytes, legacy=False):
    """
    Parse a container.

    Returns (code -> byte table, payload bits). In the legacy layout every
    payload bit is returned, padding included.
    """
    mv = memoryview(data)
    if len(mv) < _COUNT.size:
        raise MalformedContainer("container is too short for its entry count")
    (entry_count,) = _COUNT.unpack_from(mv, 0)
    i = _COUNT.size

    rev = {}
    symbols = set()
    for n in range(entry_count):
        if i + _ENTRY.size > len(mv):
            raise MalformedContainer(f"entry {n} of {entry_count} runs past the end of the container")
        byte, length = _ENTRY.unpack_from(mv, i)
        i += _ENTRY.size
        if length == 0:
            raise MalformedContainer(f"entry {n} (byte {byte}) has an empty code")
        size = (length + 7) // 8
        if i + size > len(mv):
            raise MalformedContainer(f"code of entry {n} (byte {byte}) runs past the end of the container")
        code = unpack_bits(mv[i:i + size].tobytes(), length)
        i += size

        if byte in symbols:
            raise MalformedContainer(f"byte {byte} appears twice in the code table")
        if code in rev:
            raise MalformedContainer(f"bytes {rev[code]} and {byte} share the code {code}")
        symbols.add(byte)
        rev[code] = byte

    _check_prefix_free(rev)

    if legacy:
        payload = mv[i:].tobytes()
        bit_count = len(payload) * 8
    else:
        if i + _BIT_COUNT.size > len(mv):
            raise MalformedContainer("container is too short for its payload bit count")
        (bit_count,) = _BIT_COUNT.unpack_from(mv, i)
        i += _BIT_COUNT.size
        payload = mv[i:].tobytes()
        if len(payload) != (bit_count + 7) // 8:
            raise MalformedContainer(
                f"payload holds {len(payload)} bytes but {bit_count} bits were declared")

    if not rev and payload:
        raise MalformedContainer("payload present without a code table")
    return rev, unpack_bits(payload, bit_count)


def _check_prefix_free(rev):
    # After sorting, a code that prefixes another sits right before one it prefixes
    codes = sorted(rev)
    for a, b in zip(codes, codes[1:]):
        if b.startswith(a):
            raise MalformedContainer(f"code {a} is a prefix of code {b}")
