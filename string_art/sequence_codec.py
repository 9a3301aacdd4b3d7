# string_art/sequence_codec.py
"""
Compact, URL-safe encoding of a pin sequence for sharing.

Layout (big-endian), gzip-compressed then base64url without padding:

    [version:u8][shape:u8][width:u16][height:u16][pins:u16][pin:u16]...

shape is 0 for circle, 1 for rectangle.
"""
import base64
import binascii
import gzip
import struct
import zlib
from dataclasses import dataclass
from typing import List

VERSION = 1
HEADER = struct.Struct(">BBHHH")
UINT16_MAX = 0xFFFF

SHAPE_CODES = {"circle": 0, "rectangle": 1}
SHAPE_NAMES = {code: name for name, code in SHAPE_CODES.items()}


class SequenceDecodeError(ValueError):
    pass


@dataclass
class SharedSequence:
    sequence: List[int]
    number_of_pins: int
    shape: str = "circle"
    width: int = 500
    height: int = 500


def _check_uint16(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= UINT16_MAX:
        raise ValueError(f"{name} must be a uint16 integer. Got {value!r}")


def compress_sequence(
    sequence: List[int],
    number_of_pins: int,
    shape: str = "circle",
    width: int = 500,
    height: int = 500,
) -> str:
    _check_uint16("number_of_pins", number_of_pins)
    _check_uint16("width", width)
    _check_uint16("height", height)
    if not isinstance(sequence, (list, tuple)):
        raise TypeError("sequence must be a list")
    if shape not in SHAPE_CODES:
        raise ValueError(f"Unknown shape {shape!r}")
    for i, pin in enumerate(sequence):
        _check_uint16(f"Sequence value at index {i}", pin)

    payload = HEADER.pack(VERSION, SHAPE_CODES[shape], width, height, number_of_pins)
    payload += struct.pack(f">{len(sequence)}H", *sequence)

    compressed = gzip.compress(payload, mtime=0)
    return base64.urlsafe_b64encode(compressed).decode("ascii").rstrip("=")


def decompress_sequence(encoded: str) -> SharedSequence:
    padded = encoded + "=" * (-len(encoded) % 4)
    try:
        compressed = base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, UnicodeEncodeError) as e:
        raise SequenceDecodeError(f"Invalid base64 data: {e}") from e

    try:
        data = gzip.decompress(compressed)
    except (OSError, EOFError, zlib.error) as e:
        raise SequenceDecodeError("Decompression failed: Invalid Gzip data") from e

    if len(data) < HEADER.size:
        raise SequenceDecodeError("Invalid sequence data: insufficient header length")

    version, shape_code, width, height, number_of_pins = HEADER.unpack_from(data)
    if version != VERSION:
        raise SequenceDecodeError(f"Invalid data version: expected {VERSION}, got {version}")
    if shape_code not in SHAPE_NAMES:
        raise SequenceDecodeError(f"Invalid shape type: {shape_code}")

    body = data[HEADER.size:]
    if len(body) % 2:
        raise SequenceDecodeError("Invalid sequence data: length mismatch for 16-bit sequence")

    sequence = list(struct.unpack(f">{len(body) // 2}H", body))
    return SharedSequence(
        sequence=sequence,
        number_of_pins=number_of_pins,
        shape=SHAPE_NAMES[shape_code],
        width=width,
        height=height,
    )
