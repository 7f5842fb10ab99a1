"""Binary envelope framing for encrypted pastes.

Layout (no header, no version byte):
- direct key:       nonce (24) || ciphertext
- password-derived: salt (16) || nonce (24) || ciphertext

Which layout applies is not recorded in the envelope; the caller stores the
``is_password_derived`` flag next to it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from nacl.secret import SecretBox

from pasteriser.core.exceptions import InvalidSaltError, MalformedEnvelopeError

from .kdf import SALT_LENGTH

NONCE_LENGTH = SecretBox.NONCE_SIZE


@dataclass(frozen=True)
class Envelope:
    nonce: bytes
    ciphertext: bytes
    salt: Optional[bytes] = None

    @property
    def is_password_derived(self) -> bool:
        return self.salt is not None

    def to_bytes(self) -> bytes:
        return assemble(self.nonce, self.ciphertext, self.salt)


def minimum_length(is_password_derived: bool) -> int:
    return NONCE_LENGTH + (SALT_LENGTH if is_password_derived else 0)


def assemble(nonce: bytes, ciphertext: bytes, salt: Optional[bytes] = None) -> bytes:
    """Concatenate [salt] || nonce || ciphertext."""
    if len(nonce) != NONCE_LENGTH:
        raise MalformedEnvelopeError(f"Invalid nonce length: {len(nonce)}. Expected: {NONCE_LENGTH} bytes")
    if salt is not None and len(salt) != SALT_LENGTH:
        raise InvalidSaltError(f"Invalid salt length: {len(salt)}. Expected: {SALT_LENGTH} bytes")

    blob = bytearray()
    if salt is not None:
        blob += salt
    blob += nonce
    blob += ciphertext
    return bytes(blob)


def disassemble(blob: bytes, is_password_derived: bool) -> Envelope:
    """Split an envelope by fixed offsets; short input raises MalformedEnvelopeError."""
    required = minimum_length(is_password_derived)
    if len(blob) < required:
        kind = "password-protected" if is_password_derived else "key-encrypted"
        raise MalformedEnvelopeError(
            f"Encrypted data is too short for {kind} format: {len(blob)} bytes, need at least {required}"
        )

    offset = 0
    salt = None
    if is_password_derived:
        salt = bytes(blob[:SALT_LENGTH])
        offset = SALT_LENGTH
    nonce = bytes(blob[offset:offset + NONCE_LENGTH])
    ciphertext = bytes(blob[offset + NONCE_LENGTH:])
    return Envelope(nonce=nonce, ciphertext=ciphertext, salt=salt)
