"""Authenticated encryption of paste content.

Cipher: XSalsa20-Poly1305 (``nacl.secret.SecretBox``), byte-compatible with
TweetNaCl ``secretbox`` so envelopes produced by the web client decrypt here
and vice versa.

encrypt:  text -> UTF-8 -> SecretBox(key, fresh 24-byte nonce) -> envelope -> Base64
decrypt:  Base64 (lenient) -> envelope -> [PBKDF2 with envelope salt] -> SecretBox.open -> UTF-8

Progress is reported in percent. Base64 decoding and UTF-8 conversion are
chunked for large payloads and report real progress; the cipher call itself
is atomic, so the checkpoints around it are synthetic.
"""

from __future__ import annotations

import codecs
import logging
import os
import time
from typing import Optional

import nacl.exceptions
import nacl.utils
from nacl.secret import SecretBox

from pasteriser.core.config import EngineConfig, get_config
from pasteriser.core.exceptions import (
    INVALID_KEY_OR_DATA,
    AuthenticationFailedError,
    CorruptedBase64Error,
    InvalidKeyLengthError,
    InvalidSaltError,
)
from pasteriser.core.progress import NullReporter, ProgressReporter

from . import base64codec, envelope
from .kdf import (
    KEY_LENGTH,
    TAG_LENGTH,
    ciphertext_length_for,
    decode_salt,
    derive_key_bytes,
    encode_utf8,
    generate_salt,
    iterations_for,
)

logger = logging.getLogger(__name__)


def generate_key() -> str:
    """Return a fresh random 32-byte key, Base64-encoded."""
    return base64codec.encode(os.urandom(KEY_LENGTH))


def _prepare_key(key_material: str | bytes) -> bytes:
    # Base64 text from callers, raw bytes from internal use
    if not isinstance(key_material, str):
        key = bytes(key_material)
    else:
        try:
            key = base64codec.decode_lenient(key_material)
        except CorruptedBase64Error as e:
            raise CorruptedBase64Error(str(e), public_message=INVALID_KEY_OR_DATA) from e
    if len(key) != KEY_LENGTH:
        raise InvalidKeyLengthError(f"Invalid key length: {len(key)}, expected: {KEY_LENGTH}")
    return key


def _pause(config: EngineConfig) -> None:
    if config.cooperative_yield:
        time.sleep(0)


def _encode_text(
    plaintext: str,
    config: EngineConfig,
    progress: ProgressReporter,
    start: float,
    end: float,
) -> bytes:
    total = len(plaintext)
    step = config.chunk_size
    if total <= step:
        data = encode_utf8(plaintext)
        progress.report(end)
        return data

    out = bytearray()
    for offset in range(0, total, step):
        out += encode_utf8(plaintext[offset:offset + step])
        progress.report_range(start, end, min(offset + step, total), total)
        _pause(config)
    return bytes(out)


def _decode_text(
    data: bytes,
    config: EngineConfig,
    progress: ProgressReporter,
    start: float,
    end: float,
) -> str:
    # invalid sequences are replaced rather than rejected, like TextDecoder
    total = len(data)
    step = config.chunk_size
    if total <= step:
        text = data.decode("utf-8", errors="replace")
        progress.report(end)
        return text

    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    parts = []
    for offset in range(0, total, step):
        chunk_end = min(offset + step, total)
        parts.append(decoder.decode(data[offset:chunk_end], final=chunk_end == total))
        progress.report_range(start, end, chunk_end, total)
        _pause(config)
    return "".join(parts)


def _decode_envelope_text(
    envelope_text: str,
    config: EngineConfig,
    progress: ProgressReporter,
    start: float,
    end: float,
) -> bytes:
    if len(envelope_text) <= config.chunk_size:
        blob = base64codec.decode_lenient(envelope_text)
        progress.report(end)
        return blob

    return base64codec.decode_chunked(
        envelope_text,
        config.chunk_size,
        on_progress=lambda processed, total: progress.report_range(start, end, processed, total),
        yield_between=config.cooperative_yield,
    )


def _seal(data: bytes, key: bytes, salt: Optional[bytes], progress: ProgressReporter) -> str:
    nonce = nacl.utils.random(envelope.NONCE_LENGTH)
    progress.report(35)

    box = SecretBox(key)
    progress.report(40)
    encrypted = box.encrypt(data, nonce)
    progress.report(80)

    blob = envelope.assemble(nonce, encrypted.ciphertext, salt)
    progress.report(90)

    text = base64codec.encode(blob)
    progress.complete()
    return text


def _open(env: envelope.Envelope, key: bytes) -> bytes:
    if len(env.ciphertext) < TAG_LENGTH:
        # truncated below the Poly1305 tag; same failure as a bad tag
        raise AuthenticationFailedError()
    try:
        return SecretBox(key).decrypt(env.ciphertext, env.nonce)
    except nacl.exceptions.CryptoError as e:
        raise AuthenticationFailedError() from e


def encrypt(
    plaintext: str,
    key_material: str | bytes,
    is_password_derived: bool = False,
    salt: Optional[str | bytes] = None,
    *,
    progress: Optional[ProgressReporter] = None,
    config: Optional[EngineConfig] = None,
) -> str:
    """
    Encrypt ``plaintext`` with a 32-byte key and return the Base64 envelope.

    When ``is_password_derived`` is set the key came from :mod:`.kdf` and
    ``salt`` (the one it was derived with) is prepended to the envelope so the
    decryptor can re-derive it.

    Raises:
        InvalidKeyLengthError: the key does not decode to exactly 32 bytes.
        InvalidSaltError: password-derived without a valid 16-byte salt.
    """
    config = config or get_config()
    progress = progress or NullReporter()
    progress.report(0)

    key = _prepare_key(key_material)
    salt_bytes = None
    if is_password_derived:
        if salt is None:
            raise InvalidSaltError("Salt is required for password-derived encryption")
        salt_bytes = decode_salt(salt)
    progress.report(5)

    data = _encode_text(plaintext, config, progress, 5, 30)
    return _seal(data, key, salt_bytes, progress)


def encrypt_with_password(
    plaintext: str,
    password: str,
    *,
    progress: Optional[ProgressReporter] = None,
    config: Optional[EngineConfig] = None,
) -> str:
    """
    Derive a key for ``password`` with a fresh salt and encrypt in one step.

    The iteration count is classified from the ciphertext length, the same
    quantity :func:`decrypt` classifies, so both sides always agree.
    """
    config = config or get_config()
    progress = progress or NullReporter()
    progress.report(0)

    data = _encode_text(plaintext, config, progress, 0, 20)
    iterations = iterations_for(ciphertext_length_for(len(data)), config)
    salt = generate_salt()
    progress.report(25)

    key = derive_key_bytes(password, salt, iterations)
    progress.report(30)
    return _seal(data, key, salt, progress)


def decrypt(
    envelope_text: str,
    key_or_password: str | bytes,
    is_password_protected: bool = False,
    *,
    progress: Optional[ProgressReporter] = None,
    config: Optional[EngineConfig] = None,
) -> str:
    """
    Decrypt a Base64 envelope produced by :func:`encrypt`.

    ``key_or_password`` is the password when ``is_password_protected`` is set,
    the Base64 key otherwise.

    Raises:
        CorruptedBase64Error: the envelope text is beyond repair.
        MalformedEnvelopeError: too short to hold salt/nonce.
        InvalidKeyLengthError: direct key is not 32 bytes (checked before the cipher).
        AuthenticationFailedError: wrong key/password, tampering or truncation.
    """
    config = config or get_config()
    progress = progress or NullReporter()
    progress.report(0)

    blob = _decode_envelope_text(envelope_text, config, progress, 0, 40)
    env = envelope.disassemble(blob, is_password_protected)
    progress.report(45)

    if is_password_protected:
        progress.report(50)
        iterations = iterations_for(len(env.ciphertext), config)
        logger.debug("Deriving decryption key (%d iterations)", iterations)
        progress.report(55)
        key = derive_key_bytes(key_or_password, env.salt, iterations)
        progress.report(75)
    else:
        key = _prepare_key(key_or_password)
        progress.report(50)

    data = _open(env, key)
    progress.report(80)

    text = _decode_text(data, config, progress, 80, 99)
    progress.complete()
    return text
