"""Plainsight codec: hide bytes inside ordinary carrier text.

Every whitespace gap between two words of the carrier can carry two bits.
A bit pair is written as one zero-width code point placed right after the
gap's whitespace, so the rendered text looks exactly like the carrier.
Gaps after the payload ends are left untouched.

Embedded frame (big-endian):
    magic    : 2 bytes   -> b"PS"
    version  : 1 byte    -> 0x01
    length   : u32       payload length
    payload  : length bytes
    crc32    : u32       over payload

Decoding verifies magic, version, length and checksum, so text that was not
produced by encode() is rejected instead of yielding a wrong payload.
"""

import re
import struct
import zlib

from .exceptions import CapacityExceededError, CarrierError, PlainsightDecodeError

FRAME_MAGIC = b"PS"
FRAME_VERSION = 1
_PREFIX_FMT = ">2sBI"
_PREFIX_SIZE = struct.calcsize(_PREFIX_FMT)
_CRC_SIZE = 4
FRAME_OVERHEAD = _PREFIX_SIZE + _CRC_SIZE

# Two bits per gap: index in this tuple is the bit pair value
SYMBOLS = ("\u200b", "\u200c", "\u200d", "\u2060")
BITS_PER_GAP = 2
_SYMBOL_VALUES = {ch: i for i, ch in enumerate(SYMBOLS)}

# A gap is a whitespace run with a word on both sides
_GAP_RE = re.compile(r"(?<=\S)\s+(?=\S)")


def _gaps(carrier: str) -> list[re.Match]:
    return list(_GAP_RE.finditer(carrier))


def capacity(carrier: str) -> int:
    """
    Number of payload bytes the carrier can hold.

    Args:
        carrier: Plain text to be used as the embedding medium

    Returns:
        Payload capacity in bytes (0 if the carrier is too short for a frame)
    """
    total_bytes = (len(_gaps(carrier)) * BITS_PER_GAP) // 8
    return max(total_bytes - FRAME_OVERHEAD, 0)


def _frame(payload: bytes) -> bytes:
    prefix = struct.pack(_PREFIX_FMT, FRAME_MAGIC, FRAME_VERSION, len(payload))
    crc = struct.pack(">I", zlib.crc32(payload) & 0xFFFFFFFF)
    return prefix + payload + crc


def _to_symbols(data: bytes) -> list[str]:
    out = []
    for byte in data:
        for shift in (6, 4, 2, 0):
            out.append(SYMBOLS[(byte >> shift) & 0b11])
    return out


def encode(carrier: str, payload: bytes) -> str:
    """
    Embed payload into carrier text.

    Capacity is checked before any embedding takes place.

    Args:
        carrier: Plain text used as the medium (not modified)
        payload: Bytes to hide

    Returns:
        New text that renders like the carrier but carries the payload

    Raises:
        CarrierError: If the carrier already contains codec marks
        CapacityExceededError: If the carrier is too small
    """
    if any(ch in _SYMBOL_VALUES for ch in carrier):
        raise CarrierError("Corpus already contains zero-width characters; it may be plainsight-encoded already.")

    gaps = _gaps(carrier)
    available = capacity(carrier)
    if len(payload) > available:
        raise CapacityExceededError(needed=len(payload), available=available)

    symbols = _to_symbols(_frame(payload))

    parts = []
    cursor = 0
    for gap, symbol in zip(gaps, symbols):
        parts.append(carrier[cursor:gap.end()])
        parts.append(symbol)
        cursor = gap.end()
    parts.append(carrier[cursor:])
    return "".join(parts)


def _from_symbols(symbols: list[str]) -> bytes:
    out = bytearray()
    for i in range(0, len(symbols) - len(symbols) % 4, 4):
        byte = 0
        for ch in symbols[i:i + 4]:
            byte = (byte << 2) | _SYMBOL_VALUES[ch]
        out.append(byte)
    return bytes(out)


def decode(text: str) -> bytes:
    """
    Recover the payload embedded by encode().

    Args:
        text: Text produced by encode()

    Returns:
        The original payload bytes

    Raises:
        PlainsightDecodeError: If no valid, checksummed frame is present
    """
    data = _from_symbols([ch for ch in text if ch in _SYMBOL_VALUES])

    if len(data) < FRAME_OVERHEAD:
        raise PlainsightDecodeError()

    magic, version, length = struct.unpack(_PREFIX_FMT, data[:_PREFIX_SIZE])
    if magic != FRAME_MAGIC:
        raise PlainsightDecodeError()
    if version != FRAME_VERSION:
        raise PlainsightDecodeError(f"Unsupported plainsight frame version: {version}")

    end = _PREFIX_SIZE + length
    if len(data) < end + _CRC_SIZE:
        raise PlainsightDecodeError("Plainsight payload is truncated.")

    payload = data[_PREFIX_SIZE:end]
    (crc,) = struct.unpack(">I", data[end:end + _CRC_SIZE])
    if zlib.crc32(payload) & 0xFFFFFFFF != crc:
        raise PlainsightDecodeError("Plainsight payload checksum mismatch.")
    return payload
