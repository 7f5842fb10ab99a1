"""Caller-side manager for the crypto worker.

The manager owns one worker thread (started lazily, stopped again after
``idle_timeout`` seconds without pending requests) and a dispatcher thread
that routes worker events back to callers by ``requestId``:

- progress events go to the request's progress callback, if any
- the result resolves the request's ``concurrent.futures.Future``
- events for unknown or already finished ids are ignored

Cancellation is not supported: futures are marked running on submission, so
``Future.cancel()`` returns False. Callers that stop caring about a request
simply stop waiting on its future. For asyncio callers,
``asyncio.wrap_future(manager.submit(...))`` gives an awaitable.
"""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from pasteriser.core.config import EngineConfig, get_config
from pasteriser.core.exceptions import ProtocolError, WorkerError, error_from_code
from pasteriser.security.kdf import DerivedKey

from .channel import CLOSED, Channel
from .protocol import ProgressEvent, parse_event
from .worker import CryptoWorker, handle_message

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


@dataclass
class _Pending:
    future: Future
    progress_callback: Optional[ProgressCallback] = None


class WorkerManager:
    def __init__(self, config: Optional[EngineConfig] = None, use_worker: bool = True):
        self.config = config or get_config()
        self.use_worker = use_worker
        self._lock = threading.Lock()
        self._pending: Dict[str, _Pending] = {}
        self._worker: Optional[CryptoWorker] = None
        self._inbox: Optional[Channel] = None
        self._dispatcher: Optional[threading.Thread] = None
        self._idle_timer: Optional[threading.Timer] = None
        self._closed = False

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        operation: str,
        params: Dict[str, Any],
        progress_callback: Optional[ProgressCallback] = None,
    ) -> Future:
        """
        Send ``operation`` to the worker and return a future for its result.

        ``progress_callback`` receives :class:`ProgressEvent` objects on the
        dispatcher thread (or inline when ``use_worker`` is False).
        """
        request_id = uuid.uuid4().hex
        message = {
            "operation": operation,
            "params": {**params, "reportProgress": progress_callback is not None},
            "requestId": request_id,
        }
        future: Future = Future()
        future.set_running_or_notify_cancel()

        with self._lock:
            if self._closed:
                raise WorkerError("Worker manager has been shut down")
            self._pending[request_id] = _Pending(future, progress_callback)
            inbox = None
            if self.use_worker:
                self._cancel_idle_timer()
                inbox = self._ensure_worker()

        if inbox is None:
            # no thread: run on the caller's thread, routing events directly
            handle_message(message, self._route, self.config)
        else:
            # outside the lock: a full inbox must not block the dispatcher
            inbox.send(message)
        return future

    # ------------------------------------------------------------------
    # Blocking helpers
    # ------------------------------------------------------------------

    def derive_key(
        self,
        password: str,
        salt: Optional[str] = None,
        is_large_file: bool = False,
        progress_callback: Optional[ProgressCallback] = None,
        timeout: Optional[float] = None,
    ) -> DerivedKey:
        params: Dict[str, Any] = {"password": password, "isLargeFile": is_large_file}
        if salt is not None:
            params["salt"] = salt
        result = self.submit("deriveKey", params, progress_callback).result(timeout)
        return DerivedKey(key=result["key"], salt=result["salt"])

    def encrypt(
        self,
        data: str,
        key: str,
        is_password_derived: bool = False,
        salt: Optional[str] = None,
        progress_callback: Optional[ProgressCallback] = None,
        timeout: Optional[float] = None,
    ) -> str:
        params: Dict[str, Any] = {"data": data, "key": key, "isPasswordDerived": is_password_derived}
        if salt is not None:
            params["salt"] = salt
        return self.submit("encrypt", params, progress_callback).result(timeout)

    def encrypt_with_password(
        self,
        data: str,
        password: str,
        progress_callback: Optional[ProgressCallback] = None,
        timeout: Optional[float] = None,
    ) -> str:
        params = {"data": data, "password": password}
        return self.submit("encrypt", params, progress_callback).result(timeout)

    def decrypt(
        self,
        encrypted: str,
        key: str,
        is_password_protected: bool = False,
        progress_callback: Optional[ProgressCallback] = None,
        timeout: Optional[float] = None,
    ) -> str:
        params = {"encrypted": encrypted, "key": key, "isPasswordProtected": is_password_protected}
        return self.submit("decrypt", params, progress_callback).result(timeout)

    # ------------------------------------------------------------------
    # Event routing
    # ------------------------------------------------------------------

    def _route(self, message: Dict[str, Any]) -> None:
        event = parse_event(message)

        if isinstance(event, ProgressEvent):
            with self._lock:
                pending = self._pending.get(event.request_id)
            if pending is None:
                logger.debug("Ignoring progress for unknown request %s", event.request_id)
                return
            if pending.progress_callback is not None:
                try:
                    pending.progress_callback(event)
                except Exception:
                    logger.exception("Progress callback failed for request %s", event.request_id)
            return

        with self._lock:
            pending = self._pending.pop(event.request_id, None)
            if not self._pending:
                self._schedule_idle_timer()
        if pending is None:
            logger.debug("Ignoring result for unknown request %s", event.request_id)
            return

        if event.success:
            pending.future.set_result(event.result)
        else:
            pending.future.set_exception(error_from_code(event.error_code, event.error or "Operation failed"))

    def _dispatch_loop(self, outbox: Channel) -> None:
        while True:
            message = outbox.receive()
            if message is CLOSED:
                break
            try:
                self._route(message)
            except ProtocolError as e:
                logger.error("Dropping malformed worker event: %s", e)

    # ------------------------------------------------------------------
    # Worker lifecycle (callers hold self._lock)
    # ------------------------------------------------------------------

    def _ensure_worker(self) -> Channel:
        if self._worker is None or not self._worker.is_alive():
            inbox = Channel(self.config.queue_size)
            outbox = Channel()
            self._worker = CryptoWorker(inbox, outbox, self.config)
            self._worker.start()
            self._dispatcher = threading.Thread(
                target=self._dispatch_loop,
                args=(outbox,),
                name="pasteriser-dispatcher",
                daemon=True,
            )
            self._dispatcher.start()
            self._inbox = inbox
        return self._inbox

    def _detach_worker(self):
        worker, dispatcher = self._worker, self._dispatcher
        self._worker = None
        self._dispatcher = None
        self._inbox = None
        return worker, dispatcher

    def _schedule_idle_timer(self) -> None:
        if not self.use_worker or self._worker is None or self._closed:
            return
        if self.config.idle_timeout <= 0:
            return
        self._cancel_idle_timer()
        timer = threading.Timer(self.config.idle_timeout, self._terminate_if_idle)
        timer.daemon = True
        self._idle_timer = timer
        timer.start()

    def _cancel_idle_timer(self) -> None:
        if self._idle_timer is not None:
            self._idle_timer.cancel()
            self._idle_timer = None

    def _terminate_if_idle(self) -> None:
        with self._lock:
            if self._pending or self._worker is None:
                return
            self._idle_timer = None
            worker, dispatcher = self._detach_worker()
        logger.debug("Stopping idle crypto worker")
        self._stop(worker, dispatcher)

    @staticmethod
    def _stop(worker: Optional[CryptoWorker], dispatcher: Optional[threading.Thread], timeout=None) -> None:
        if worker is not None:
            worker.stop(timeout)
        if dispatcher is not None and dispatcher is not threading.current_thread():
            dispatcher.join(timeout)

    @property
    def worker_running(self) -> bool:
        with self._lock:
            return self._worker is not None and self._worker.is_alive()

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """
        Stop the worker once queued requests are answered.

        Requests still unanswered afterwards fail with WorkerError.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._cancel_idle_timer()
            worker, dispatcher = self._detach_worker()

        self._stop(worker, dispatcher, timeout)

        with self._lock:
            leftovers = list(self._pending.values())
            self._pending.clear()
        for pending in leftovers:
            pending.future.set_exception(WorkerError("Worker stopped before the request completed"))

    def __enter__(self) -> "WorkerManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()


# module-level default manager
_default_manager: Optional[WorkerManager] = None
_default_manager_lock = threading.Lock()


def get_manager() -> WorkerManager:
    global _default_manager
    with _default_manager_lock:
        if _default_manager is None or _default_manager._closed:
            _default_manager = WorkerManager()
        return _default_manager
