"""
Crypto worker: runs engine operations off the caller's thread.

``handle_message`` is the whole request lifecycle and does not depend on
threads: it parses a request, runs it while emitting progress events, and
always emits exactly one result message. ``CryptoWorker`` drives it from a
dedicated thread, one request at a time in arrival order.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Mapping, Optional

from pasteriser.core.config import EngineConfig, get_config
from pasteriser.core.exceptions import PasteriserError, UnknownOperationError, WorkerError
from pasteriser.core.progress import NullReporter, ProgressReporter
from pasteriser.security import crypto, kdf

from .channel import CLOSED, Channel
from .protocol import (
    DecryptRequest,
    DeriveKeyRequest,
    EncryptRequest,
    ProgressEvent,
    Request,
    Response,
    parse_request,
)

logger = logging.getLogger(__name__)

Emit = Callable[[Dict[str, Any]], None]


def execute(request: Request, progress: ProgressReporter, config: EngineConfig) -> Any:
    """Run one typed request against the engine and return its result payload."""
    if isinstance(request, DeriveKeyRequest):
        # a single PBKDF2 call; nothing to chunk
        progress.report(10)
        derived = kdf.derive_key(
            request.password,
            request.salt,
            is_large_file=request.is_large_file,
            config=config,
        )
        return derived.to_dict()

    if isinstance(request, EncryptRequest):
        if request.password is not None:
            return crypto.encrypt_with_password(
                request.data, request.password, progress=progress, config=config
            )
        return crypto.encrypt(
            request.data,
            request.key,
            request.is_password_derived,
            request.salt,
            progress=progress,
            config=config,
        )

    if isinstance(request, DecryptRequest):
        return crypto.decrypt(
            request.encrypted,
            request.key,
            request.is_password_protected,
            progress=progress,
            config=config,
        )

    raise UnknownOperationError(f"Unknown operation: {getattr(request, 'operation', request)!r}")


def _make_reporter(request: Request, emit: Emit) -> ProgressReporter:
    if not request.report_progress:
        return NullReporter()

    def sink(percent: int) -> None:
        emit(ProgressEvent(request.request_id, request.operation, percent).to_message())

    return ProgressReporter(sink)


def handle_message(message: Any, emit: Emit, config: Optional[EngineConfig] = None) -> Response:
    """
    Process one inbound message and emit its progress events and result.

    No exception escapes: failures become ``{"success": False, ...}`` responses
    carrying only the error's public message and code.
    """
    config = config or get_config()
    request_id = message.get("requestId") if isinstance(message, Mapping) else None
    operation = message.get("operation") if isinstance(message, Mapping) else None

    try:
        request = parse_request(message)
        logger.debug("Running %s request %s", request.operation, request.request_id)
        progress = _make_reporter(request, emit)
        progress.report(0)
        result = execute(request, progress, config)
        progress.complete()
        response = Response.ok(request.request_id, result)
    except PasteriserError as e:
        logger.warning("%s request %s failed: %s", operation, request_id, e)
        response = Response.failure(request_id, e)
    except Exception as e:
        # message text of foreign errors may echo inputs; log the type only
        logger.error("Unexpected %s in %s request %s", type(e).__name__, operation, request_id)
        response = Response.failure(request_id, WorkerError(f"{operation} failed unexpectedly"))

    emit(response.to_message())
    return response


class CryptoWorker:
    """Consumes requests from ``inbox`` on its own thread and answers on ``outbox``."""

    def __init__(
        self,
        inbox: Channel,
        outbox: Channel,
        config: Optional[EngineConfig] = None,
        name: str = "pasteriser-crypto-worker",
    ):
        self.inbox = inbox
        self.outbox = outbox
        self.config = config or get_config()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        logger.debug("Starting crypto worker thread")
        self._thread.start()

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def _run(self) -> None:
        try:
            while True:
                message = self.inbox.receive()
                if message is CLOSED:
                    break
                handle_message(message, self.outbox.send, self.config)
        finally:
            # lets the receiving side finish its loop
            self.outbox.close()
            logger.debug("Crypto worker thread stopped")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop after every request already queued has been answered."""
        self.inbox.close()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout)
