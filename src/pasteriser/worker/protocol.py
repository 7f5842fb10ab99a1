"""
Message types exchanged between a caller and the crypto worker.

Wire shapes (plain dicts, JSON-compatible):

    request   {"operation": "deriveKey"|"encrypt"|"decrypt", "params": {...}, "requestId": str}
    progress  {"progress": {"operation", "total", "processed", "percent", "requestId"}}
    result    {"success": bool, "result"?: any, "error"?: str, "errorCode"?: str, "requestId": str}

Requests are parsed into one dataclass per operation; an unknown operation
tag is rejected at parse time with UnknownOperationError.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Mapping, Optional, Union

from pasteriser.core.exceptions import (
    InvalidRequestError,
    PasteriserError,
    ProtocolError,
    UnknownOperationError,
)


def _require_str(params: Mapping[str, Any], name: str, allow_empty: bool = True) -> str:
    value = params.get(name)
    if not isinstance(value, str) or (not allow_empty and value == ""):
        raise InvalidRequestError(f"Parameter '{name}' is required and must be a string")
    return value


def _optional_str(params: Mapping[str, Any], name: str) -> Optional[str]:
    value = params.get(name)
    if value is not None and not isinstance(value, str):
        raise InvalidRequestError(f"Parameter '{name}' must be a string")
    return value


def _flag(params: Mapping[str, Any], name: str) -> bool:
    return bool(params.get(name, False))


@dataclass(frozen=True)
class DeriveKeyRequest:
    operation: ClassVar[str] = "deriveKey"

    request_id: str
    password: str = field(repr=False)
    salt: Optional[str] = None
    is_large_file: bool = False
    report_progress: bool = False

    @classmethod
    def from_params(cls, request_id: str, params: Mapping[str, Any]) -> "DeriveKeyRequest":
        return cls(
            request_id=request_id,
            password=_require_str(params, "password"),
            salt=_optional_str(params, "salt"),
            is_large_file=_flag(params, "isLargeFile"),
            report_progress=_flag(params, "reportProgress"),
        )

    def params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "password": self.password,
            "isLargeFile": self.is_large_file,
            "reportProgress": self.report_progress,
        }
        if self.salt is not None:
            params["salt"] = self.salt
        return params

    def to_message(self) -> Dict[str, Any]:
        return {"operation": self.operation, "params": self.params(), "requestId": self.request_id}


@dataclass(frozen=True)
class EncryptRequest:
    operation: ClassVar[str] = "encrypt"

    request_id: str
    data: str = field(repr=False)
    key: Optional[str] = field(default=None, repr=False)
    password: Optional[str] = field(default=None, repr=False)
    is_password_derived: bool = False
    salt: Optional[str] = None
    report_progress: bool = False

    @classmethod
    def from_params(cls, request_id: str, params: Mapping[str, Any]) -> "EncryptRequest":
        key = _optional_str(params, "key")
        password = _optional_str(params, "password")
        if (key is None) == (password is None):
            raise InvalidRequestError("Exactly one of 'key' or 'password' is required for encryption")
        return cls(
            request_id=request_id,
            data=_require_str(params, "data"),
            key=key,
            password=password,
            is_password_derived=_flag(params, "isPasswordDerived"),
            salt=_optional_str(params, "salt"),
            report_progress=_flag(params, "reportProgress"),
        )

    def params(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "data": self.data,
            "isPasswordDerived": self.is_password_derived,
            "reportProgress": self.report_progress,
        }
        for name in ("key", "password", "salt"):
            value = getattr(self, name)
            if value is not None:
                params[name] = value
        return params

    def to_message(self) -> Dict[str, Any]:
        return {"operation": self.operation, "params": self.params(), "requestId": self.request_id}


@dataclass(frozen=True)
class DecryptRequest:
    operation: ClassVar[str] = "decrypt"

    request_id: str
    encrypted: str = field(repr=False)
    key: str = field(repr=False)
    is_password_protected: bool = False
    report_progress: bool = False

    @classmethod
    def from_params(cls, request_id: str, params: Mapping[str, Any]) -> "DecryptRequest":
        is_password_protected = _flag(params, "isPasswordProtected")
        return cls(
            request_id=request_id,
            encrypted=_require_str(params, "encrypted"),
            # the empty string is a valid password, never a valid key
            key=_require_str(params, "key", allow_empty=is_password_protected),
            is_password_protected=is_password_protected,
            report_progress=_flag(params, "reportProgress"),
        )

    def params(self) -> Dict[str, Any]:
        return {
            "encrypted": self.encrypted,
            "key": self.key,
            "isPasswordProtected": self.is_password_protected,
            "reportProgress": self.report_progress,
        }

    def to_message(self) -> Dict[str, Any]:
        return {"operation": self.operation, "params": self.params(), "requestId": self.request_id}


Request = Union[DeriveKeyRequest, EncryptRequest, DecryptRequest]

REQUEST_TYPES = {cls.operation: cls for cls in (DeriveKeyRequest, EncryptRequest, DecryptRequest)}
OPERATIONS = tuple(REQUEST_TYPES)


def parse_request(message: Any) -> Request:
    """Turn an inbound message into its typed request; raises ProtocolError subclasses."""
    if not isinstance(message, Mapping):
        raise InvalidRequestError("Worker message must be a mapping")

    request_id = message.get("requestId")
    if not isinstance(request_id, str) or not request_id:
        raise InvalidRequestError("Worker message is missing 'requestId'")

    operation = message.get("operation")
    cls = REQUEST_TYPES.get(operation)
    if cls is None:
        raise UnknownOperationError(f"Unknown operation: {operation}")

    params = message.get("params")
    if params is None:
        params = {}
    if not isinstance(params, Mapping):
        raise InvalidRequestError("Worker message 'params' must be a mapping")
    return cls.from_params(request_id, params)


@dataclass(frozen=True)
class ProgressEvent:
    request_id: str
    operation: str
    processed: int
    total: int = 100

    @property
    def percent(self) -> int:
        if self.total <= 0:
            return 100
        return int(self.processed * 100 / self.total)

    def to_message(self) -> Dict[str, Any]:
        return {
            "progress": {
                "operation": self.operation,
                "total": self.total,
                "processed": self.processed,
                "percent": self.percent,
                "requestId": self.request_id,
            }
        }


@dataclass(frozen=True)
class Response:
    request_id: Optional[str]
    success: bool
    result: Any = field(default=None, repr=False)
    error: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def ok(cls, request_id: str, result: Any) -> "Response":
        return cls(request_id=request_id, success=True, result=result)

    @classmethod
    def failure(cls, request_id: Optional[str], error: PasteriserError) -> "Response":
        return cls(request_id=request_id, success=False, error=error.public_message, error_code=error.code)

    def to_message(self) -> Dict[str, Any]:
        message: Dict[str, Any] = {"success": self.success, "requestId": self.request_id}
        if self.success:
            message["result"] = self.result
        else:
            message["error"] = self.error
            if self.error_code:
                message["errorCode"] = self.error_code
        return message


Event = Union[ProgressEvent, Response]


def parse_event(message: Any) -> Event:
    """Turn an outbound worker message into a ProgressEvent or Response."""
    if not isinstance(message, Mapping):
        raise ProtocolError("Worker event must be a mapping")

    progress = message.get("progress")
    if progress is not None:
        if not isinstance(progress, Mapping):
            raise ProtocolError("Malformed progress event")
        return ProgressEvent(
            request_id=progress.get("requestId"),
            operation=progress.get("operation", ""),
            processed=int(progress.get("processed", 0)),
            total=int(progress.get("total", 100)),
        )

    if "success" not in message:
        raise ProtocolError("Worker event is neither progress nor result")
    return Response(
        request_id=message.get("requestId"),
        success=bool(message["success"]),
        result=message.get("result"),
        error=message.get("error"),
        error_code=message.get("errorCode"),
    )
