"""Base64 codec tolerant of malformed and foreign input.

Envelopes and keys travel through URLs, form fields and copy/paste, so the
decoder has to cope with URL-safe alphabets, dropped padding and stray
characters. ``decode`` is strict; ``decode_lenient`` walks a fixed chain of
recovery stages and only raises ``CorruptedBase64Error`` once all of them
have failed.
"""

from __future__ import annotations

import base64
import logging
import re
import time
from typing import Callable, Optional

from pasteriser.core.exceptions import CorruptedBase64Error

logger = logging.getLogger(__name__)

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
_LOOKUP = {c: i for i, c in enumerate(ALPHABET)}
_NON_ALPHABET = re.compile(r"[^A-Za-z0-9+/]")

CORRUPTED_MESSAGE = "Unable to decode corrupted Base64 data"


def encode(data: bytes) -> str:
    """Encode bytes to standard, padded Base64 text."""
    return base64.b64encode(bytes(data)).decode("ascii")


def _native_decode(text: str) -> bytes:
    # raises ValueError (binascii.Error or non-ASCII input) on rejection
    return base64.b64decode(text, validate=True)


def decode(text: str) -> bytes:
    """Strictly decode standard Base64; raises CorruptedBase64Error on any defect."""
    try:
        return _native_decode(text)
    except ValueError as e:
        raise CorruptedBase64Error(f"Invalid Base64 encoding: {e}") from e


def _url_safe(text: str) -> str:
    return text.replace("-", "+").replace("_", "/")


def _pad(text: str) -> str:
    return text + "=" * (-len(text) % 4)


def _strip(text: str) -> str:
    return _pad(_NON_ALPHABET.sub("", text))


# Each stage runs on the output of the previous one.
_RECOVERY_STAGES = (
    ("url-safe substitution", _url_safe),
    ("padding repair", _pad),
    ("invalid character stripping", _strip),
)


def _fallback_decode(text: str) -> bytes:
    """Decode by hand: four 6-bit values make one 24-bit group."""
    data = text.rstrip("=")
    if len(data) % 4 == 1:
        raise CorruptedBase64Error(f"{CORRUPTED_MESSAGE}: dangling character")

    out = bytearray()
    for i in range(0, len(data), 4):
        group = data[i:i + 4]
        try:
            values = [_LOOKUP[c] for c in group]
        except KeyError:
            raise CorruptedBase64Error(f"{CORRUPTED_MESSAGE}: invalid character") from None

        triple = 0
        for v in values:
            triple = (triple << 6) | v
        triple <<= 6 * (4 - len(values))

        decoded = ((triple >> 16) & 0xFF, (triple >> 8) & 0xFF, triple & 0xFF)
        out.extend(decoded[: len(values) - 1])
    return bytes(out)


def decode_lenient(text: str) -> bytes:
    """
    Decode Base64 text, repairing it if needed.

    Stages, each attempted only after the previous one fails:

    1. URL-safe substitution (``-`` to ``+``, ``_`` to ``/``)
    2. padding repair
    3. stripping of every character outside the alphabet
    4. the bit-manipulation fallback decoder

    Raises ``CorruptedBase64Error`` if the last stage fails too. Never returns
    partial output.
    """
    try:
        return _native_decode(text)
    except ValueError:
        logger.warning("Standard Base64 decoding failed, attempting recovery")

    candidate = text
    for stage, repair in _RECOVERY_STAGES:
        candidate = repair(candidate)
        if not candidate:
            # input held nothing but foreign characters
            raise CorruptedBase64Error(f"{CORRUPTED_MESSAGE}: no Base64 characters found")
        try:
            result = _native_decode(candidate)
        except ValueError:
            logger.debug("Base64 recovery stage failed: %s", stage)
            continue
        logger.warning("Recovered malformed Base64 input after %s", stage)
        return result

    logger.warning("Native Base64 decoder rejected repaired input, using fallback decoder")
    return _fallback_decode(candidate)


def decode_chunked(
    text: str,
    chunk_size: int,
    on_progress: Optional[Callable[[int, int], None]] = None,
    yield_between: bool = True,
) -> bytes:
    """
    Decode large Base64 text in 4-character-aligned chunks.

    ``on_progress(processed_chars, total_chars)`` is called after every chunk
    and the thread yields between chunks. If any chunk is rejected the whole
    text goes through :func:`decode_lenient` instead.
    """
    total = len(text)
    step = max(4, chunk_size - chunk_size % 4)
    parts = []

    for start in range(0, total, step):
        try:
            parts.append(decode(text[start:start + step]))
        except CorruptedBase64Error:
            logger.warning("Chunked Base64 decoding rejected chunk at offset %d, decoding leniently", start)
            result = decode_lenient(text)
            if on_progress:
                on_progress(total, total)
            return result

        if on_progress:
            on_progress(min(start + step, total), total)
        if yield_between:
            time.sleep(0)

    return b"".join(parts)
