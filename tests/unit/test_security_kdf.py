"""Unit tests for the Key Derivation Function (KDF) module."""

import base64

import pytest
from unittest.mock import patch

from pasteriser.core.config import EngineConfig
from pasteriser.core.exceptions import InvalidSaltError, KeyDerivationError
from pasteriser.security.kdf import (
    DerivedKey,
    ciphertext_length_for,
    derive_key,
    derive_key_bytes,
    derive_key_for_payload,
    encode_utf8,
    generate_salt,
    is_large_payload,
    iterations_for,
)


@pytest.fixture
def fast_config():
    """Low iteration counts so tests stay quick."""
    return EngineConfig(
        pbkdf2_iterations=1000,
        pbkdf2_iterations_large=500,
        large_payload_threshold=1024,
    )


def test_generate_salt_defaults():
    """Ensure salt generation returns bytes of the default length (16)."""
    salt = generate_salt()
    assert isinstance(salt, bytes)
    assert len(salt) == 16


def test_generate_salt_custom_length():
    """Ensure salt generation respects the length parameter."""
    salt = generate_salt(length=32)
    assert len(salt) == 32
    assert isinstance(salt, bytes)


def test_derive_key_bytes_known_vector():
    """PBKDF2-HMAC-SHA256 test vector from RFC 7914 (P="passwd", S="salt", c=1)."""
    key = derive_key_bytes(b"passwd", b"salt", iterations=1, key_len=64)
    assert key.hex().startswith("55ac046e56e3089fec1691c22544b605")
    assert len(key) == 64


def test_derive_key_bytes_string_and_bytes_agree():
    """Passing the same password as string or bytes yields the same key."""
    salt = generate_salt()
    key_from_str = derive_key_bytes("pässword123", salt, iterations=10)
    key_from_bytes = derive_key_bytes("pässword123".encode("utf-8"), salt, iterations=10)

    assert key_from_str == key_from_bytes
    assert len(key_from_str) == 32


def test_derive_key_bytes_empty_password():
    """The empty password is a valid (if weak) password."""
    salt = generate_salt()
    key = derive_key_bytes("", salt, iterations=10)
    assert len(key) == 32
    assert key == derive_key_bytes(b"", salt, iterations=10)
    assert key != derive_key_bytes(" ", salt, iterations=10)


def test_encode_utf8_replaces_lone_surrogates():
    assert encode_utf8("h\u00e9llo") == "h\u00e9llo".encode("utf-8")
    assert encode_utf8("ab\ud800cd") == "ab\ufffdcd".encode("utf-8")
    # a surrogate pair split into code points still forms one character
    assert encode_utf8("\ud83d\ude00") == "\U0001f600".encode("utf-8")


def test_derive_key_bytes_wraps_primitive_failure():
    """Any failure in the slow hash surfaces as KeyDerivationError with the cause attached."""
    with patch("pasteriser.security.kdf.PBKDF2HMAC", side_effect=RuntimeError("backend exploded")):
        with pytest.raises(KeyDerivationError) as excinfo:
            derive_key_bytes("password", generate_salt(), iterations=10)
    assert isinstance(excinfo.value.__cause__, RuntimeError)


# ==============================================================================
# Tests: Iteration policy
# ==============================================================================

def test_ciphertext_length_adds_tag():
    assert ciphertext_length_for(0) == 16
    assert ciphertext_length_for(10) == 26


def test_iterations_for_threshold(fast_config):
    """At the threshold the payload is still small; one byte more is large."""
    assert iterations_for(0, fast_config) == 1000
    assert iterations_for(1024, fast_config) == 1000
    assert iterations_for(1025, fast_config) == 500
    assert not is_large_payload(1024, fast_config)
    assert is_large_payload(1025, fast_config)


def test_iterations_for_defaults():
    config = EngineConfig()
    assert iterations_for(10, config) == 300_000
    assert iterations_for(1_000_001, config) == 100_000


# ==============================================================================
# Tests: derive_key (transport form)
# ==============================================================================

def test_derive_key_returns_base64(fast_config):
    derived = derive_key("correct horse", config=fast_config)

    assert isinstance(derived, DerivedKey)
    assert len(base64.b64decode(derived.key)) == 32
    assert len(base64.b64decode(derived.salt)) == 16
    assert derived.to_dict() == {"key": derived.key, "salt": derived.salt}


def test_derive_key_same_salt_same_key(fast_config):
    first = derive_key("password", config=fast_config)
    second = derive_key("password", salt=first.salt, config=fast_config)
    other = derive_key("Password", salt=first.salt, config=fast_config)

    assert second == first
    assert other.key != first.key


def test_derive_key_accepts_raw_salt(fast_config):
    salt = b"\xaa" * 16
    derived = derive_key("password", salt=salt, config=fast_config)
    assert derived.salt == base64.b64encode(salt).decode("ascii")


def test_derive_key_empty_salt_generates_one(fast_config):
    first = derive_key("password", salt="", config=fast_config)
    second = derive_key("password", salt="", config=fast_config)

    assert len(base64.b64decode(first.salt)) == 16
    assert first.salt != second.salt


def test_derive_key_rejects_bad_salt_length(fast_config):
    with pytest.raises(InvalidSaltError, match="Invalid salt length"):
        derive_key("password", salt=base64.b64encode(b"short").decode(), config=fast_config)


def test_derive_key_large_file_uses_reduced_iterations(fast_config):
    with patch("pasteriser.security.kdf.derive_key_bytes", return_value=b"k" * 32) as mock_kdf:
        derive_key("password", is_large_file=True, config=fast_config)
        assert mock_kdf.call_args[0][2] == 500

        derive_key("password", config=fast_config)
        assert mock_kdf.call_args[0][2] == 1000


def test_derive_key_for_payload_classifies_size(fast_config):
    with patch("pasteriser.security.kdf.derive_key_bytes", return_value=b"k" * 32) as mock_kdf:
        derive_key_for_payload("password", 5000, config=fast_config)
        assert mock_kdf.call_args[0][2] == 500

        derive_key_for_payload("password", 100, config=fast_config)
        assert mock_kdf.call_args[0][2] == 1000
