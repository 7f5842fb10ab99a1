"""Security helpers: Base64, KDF, envelope framing and authenticated encryption.

This package provides the content-protection engine for pasteriser:
- resilient Base64 decoding with staged recovery
- PBKDF2-HMAC-SHA256 key derivation with a size-dependent iteration count
- salt/nonce/ciphertext envelope framing
- XSalsa20-Poly1305 (NaCl secretbox) encryption/decryption of text
"""

from .base64codec import encode as encode_base64, decode as decode_base64, decode_lenient
from .kdf import DerivedKey, generate_salt, derive_key, derive_key_for_payload, iterations_for
from .envelope import Envelope, assemble, disassemble
from .crypto import (
    generate_key,
    encrypt,
    encrypt_with_password,
    decrypt,
)
