"""
Exceptions for the pasteriser engine
This is placed such that there is a general error catcher
"""

# Shared by key-length and authentication failures so a caller cannot tell
# a wrong password apart from a tampered envelope.
INVALID_KEY_OR_DATA = "Decryption failed - invalid key or corrupted data"


class PasteriserError(Exception):
    # general container for errors
    code = "PasteriserError"

    @property
    def public_message(self) -> str:
        # text that may cross the worker boundary
        return str(self)


class CryptoError(PasteriserError):
    # raised when a cryptographic step fails in some way (see subclasses)
    code = "CryptoError"


class InvalidKeyLengthError(CryptoError):
    # raised before any cipher call when a key is not exactly 32 bytes
    code = "InvalidKeyLength"

    @property
    def public_message(self) -> str:
        return INVALID_KEY_OR_DATA


class InvalidSaltError(CryptoError):
    # raised when a supplied salt is missing or has the wrong length
    code = "InvalidSalt"


class MalformedEnvelopeError(CryptoError):
    # raised when an envelope is too short to hold its salt/nonce
    code = "MalformedEnvelope"


class CorruptedBase64Error(CryptoError):
    # raised when every Base64 recovery stage failed
    code = "CorruptedBase64"

    def __init__(self, message: str, public_message: str | None = None):
        super().__init__(message)
        # set when the bad text was key material
        self._public_message = public_message

    @property
    def public_message(self) -> str:
        return self._public_message or str(self)


class KeyDerivationError(CryptoError):
    # raised when the password KDF fails (wraps the cause)
    code = "KeyDerivationFailed"


class AuthenticationFailedError(CryptoError):
    # raised on MAC mismatch: wrong key/password, tampering or truncation
    code = "AuthenticationFailed"

    def __init__(self, message: str = INVALID_KEY_OR_DATA):
        super().__init__(message)

    @property
    def public_message(self) -> str:
        return INVALID_KEY_OR_DATA


class ProtocolError(PasteriserError):
    # raised for malformed worker messages
    code = "ProtocolError"


class UnknownOperationError(ProtocolError):
    # raised when a request names an operation the worker does not know
    code = "UnknownOperation"


class InvalidRequestError(ProtocolError):
    # raised when a request is missing required parameters
    code = "InvalidRequest"


class WorkerError(PasteriserError):
    # raised when the worker stopped or failed unexpectedly
    code = "WorkerError"


_ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        PasteriserError,
        CryptoError,
        InvalidKeyLengthError,
        InvalidSaltError,
        MalformedEnvelopeError,
        CorruptedBase64Error,
        KeyDerivationError,
        AuthenticationFailedError,
        ProtocolError,
        UnknownOperationError,
        InvalidRequestError,
        WorkerError,
    )
}


def error_from_code(code: str | None, message: str) -> PasteriserError:
    """Rebuild a typed error from a failure response; unknown codes map to WorkerError."""
    cls = _ERRORS_BY_CODE.get(code or "", WorkerError)
    return cls(message)
