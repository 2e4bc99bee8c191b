"""QR transport layer: prefix stripping, Base45 decoding and zlib inflation."""

import logging
import zlib
from typing import Optional

import base45

from .errors import FormatError

logger = logging.getLogger(__name__)

# Full certificates use HC1:, light certificates LT1:
PREFIXES = ("HC1:", "LT1:")

# Base45 alphabet
BASE45_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ $%*+-./:"


def unprefix(text: str) -> str:
    """Strip the HC1:/LT1: version prefix from QR text."""
    for prefix in PREFIXES:
        if text.startswith(prefix):
            return text[len(prefix):]
    logger.warning(f"[prefix] Unrecognized prefix {text[:4]!r}")
    raise FormatError("prefix", "data does not start with HC1: or LT1: prefix")


def find_invalid_base45(text: str) -> Optional[int]:
    """Return the index of the first character outside the Base45 alphabet."""
    for i, char in enumerate(text):
        if char not in BASE45_ALPHABET:
            return i
    return None


def base45_decode(text: str) -> bytes:
    """Decode Base45 text into raw bytes."""
    position = find_invalid_base45(text)
    if position is not None:
        char = text[position]
        logger.warning(f"[base45] Invalid character U+{ord(char):04X} at index {position}")
        raise FormatError(
            "base45",
            f"invalid character {char!r} (U+{ord(char):04X}) at index {position}",
            position=position,
        )
    if len(text) % 3 == 1:
        raise FormatError("base45", f"invalid length {len(text)}")

    try:
        decoded = base45.b45decode(text)
    except ValueError as e:
        logger.warning(f"[base45] Base45 decode failed: {e}")
        raise FormatError("base45", str(e)) from e

    logger.debug(f"[base45] Base45 decoded bytes={len(decoded)} preview={decoded[:20]!r}")
    return decoded


def decompress(compressed: bytes) -> bytes:
    """Inflate a zlib-wrapped DEFLATE stream; no output size limit is applied."""
    try:
        data = zlib.decompress(compressed)
    except zlib.error as e:
        logger.warning(f"[zlib] zlib decompress failed: {e}")
        raise FormatError("zlib", str(e)) from e

    logger.debug(f"[zlib] zlib decompressed bytes={len(data)} preview={data[:20]!r}")
    return data
