import logging
import os
from dataclasses import dataclass
from typing import Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from nacl.secret import SecretBox

from pasteriser.core.config import EngineConfig, get_config
from pasteriser.core.exceptions import InvalidSaltError, KeyDerivationError

from . import base64codec

logger = logging.getLogger(__name__)

KEY_LENGTH = SecretBox.KEY_SIZE
SALT_LENGTH = 16
TAG_LENGTH = SecretBox.MACBYTES


@dataclass(frozen=True)
class DerivedKey:
    """Base64-encoded key and the salt it was derived with."""

    key: str
    salt: str

    def to_dict(self) -> dict:
        return {"key": self.key, "salt": self.salt}


def encode_utf8(text: str) -> bytes:
    """UTF-8 encode, replacing lone surrogates with U+FFFD like TextEncoder."""
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError:
        # a UTF-16 round trip pairs valid surrogates and replaces the rest
        repaired = text.encode("utf-16-le", "surrogatepass").decode("utf-16-le", "replace")
        return repaired.encode("utf-8")


def generate_salt(length: int = SALT_LENGTH) -> bytes:
    """Return a cryptographically secure random salt."""
    return os.urandom(length)


def ciphertext_length_for(plaintext_length: int) -> int:
    """Ciphertext size an encoded plaintext of this many bytes will produce."""
    return plaintext_length + TAG_LENGTH


def is_large_payload(ciphertext_length: int, config: Optional[EngineConfig] = None) -> bool:
    config = config or get_config()
    return ciphertext_length > config.large_payload_threshold


def iterations_for(ciphertext_length: int, config: Optional[EngineConfig] = None) -> int:
    """
    PBKDF2 iteration count for a payload whose ciphertext is this long.

    The count is not stored in the envelope, so encryptor and decryptor must
    both classify the ciphertext length with this function.
    """
    config = config or get_config()
    if is_large_payload(ciphertext_length, config):
        return config.pbkdf2_iterations_large
    return config.pbkdf2_iterations


def derive_key_bytes(
    password: bytes | str,
    salt: bytes,
    iterations: int,
    key_len: int = KEY_LENGTH,
) -> bytes:
    """
    Derive a raw key from a password using PBKDF2-HMAC-SHA256.
    Returns exactly ``key_len`` bytes or raises KeyDerivationError.

    The empty password is accepted; the web client derives with it too.
    """
    if isinstance(password, str):
        password = encode_utf8(password)

    try:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=key_len,
            salt=salt,
            iterations=iterations,
        )
        key = kdf.derive(password)
    except Exception as e:
        logger.error("PBKDF2 key derivation failed: %s", type(e).__name__)
        raise KeyDerivationError(f"Failed to derive key from password: {e}") from e

    if len(key) != key_len:
        raise KeyDerivationError(f"Derived key has {len(key)} bytes, expected {key_len}")
    return key


def decode_salt(salt: str | bytes) -> bytes:
    """Accept a raw or Base64 salt and check its length."""
    raw = base64codec.decode_lenient(salt) if isinstance(salt, str) else bytes(salt)
    if len(raw) != SALT_LENGTH:
        raise InvalidSaltError(f"Invalid salt length: {len(raw)}. Expected: {SALT_LENGTH} bytes")
    return raw


def derive_key(
    password: str,
    salt: Optional[str | bytes] = None,
    is_large_file: bool = False,
    config: Optional[EngineConfig] = None,
) -> DerivedKey:
    """
    Derive a key for ``password``, generating a fresh salt unless one is given.

    ``is_large_file`` selects the reduced iteration count; callers that know the
    payload should use :func:`iterations_for` via :func:`derive_key_for_payload`.
    Returns key and salt Base64-encoded for transport.
    """
    config = config or get_config()
    # an empty salt counts as absent
    salt_bytes = decode_salt(salt) if salt else generate_salt()
    iterations = config.pbkdf2_iterations_large if is_large_file else config.pbkdf2_iterations

    key = derive_key_bytes(password, salt_bytes, iterations)
    return DerivedKey(key=base64codec.encode(key), salt=base64codec.encode(salt_bytes))


def derive_key_for_payload(
    password: str,
    ciphertext_length: int,
    salt: Optional[str | bytes] = None,
    config: Optional[EngineConfig] = None,
) -> DerivedKey:
    """Derive with the iteration count classified from the ciphertext length."""
    config = config or get_config()
    return derive_key(
        password,
        salt,
        is_large_file=is_large_payload(ciphertext_length, config),
        config=config,
    )
