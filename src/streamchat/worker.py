"""Background request worker.

Each context owns exactly one worker thread.  The caller publishes a
request into a single-slot mailbox and signals a condition; the worker
runs connect -> send -> stream -> finalize for it and reports the outcome
through the context state and the request's callbacks.

Network I/O always happens outside the lock.  Callbacks fire from the
worker thread, never while the lock is held.
"""

from __future__ import annotations

import logging
import socket
import threading
from typing import Any, Callable

from streamchat.buffers import ResponseAccumulator, TokenBuffer
from streamchat.capabilities import ModelCapabilities
from streamchat.config import ChatConfig
from streamchat.errors import ChatError, ContextClosedError
from streamchat.history import MessageHistory
from streamchat.stream_parser import ChunkedStreamParser, LineReader
from streamchat.transport import (
    build_chat_payload,
    build_http_request,
    open_connection,
    send_request,
)
from streamchat.types import PendingRequest, RequestCallbacks, RequestPhase

_logger = logging.getLogger(__name__)


class ContextState:
    """All state shared between the caller and the worker.

    Every attribute is read and written under ``lock``.  ``work_ready`` wakes
    the worker when a request is published or shutdown is requested;
    ``finished`` wakes callers waiting for a request to reach a terminal
    phase.
    """

    def __init__(self, config: ChatConfig, think: bool = True) -> None:
        self.lock = threading.Lock()
        self.work_ready = threading.Condition(self.lock)
        self.finished = threading.Condition(self.lock)

        self.host = config.host
        self.port = config.port
        self.model = config.model
        self.timeout = config.timeout
        self.api_path = config.api_path
        self.output_filters = list(config.output_filters)
        self.think = think
        self.tools: list[dict[str, Any]] | None = None
        self.capabilities: ModelCapabilities | None = None

        self.history = MessageHistory()
        self.tokens = TokenBuffer()
        self.response = ResponseAccumulator()
        self.thinking = ResponseAccumulator()
        self.tool_calls: list[dict[str, Any]] = []

        self.pending: PendingRequest | None = None
        self.phase = RequestPhase.IDLE
        self.done = True
        self.error: str | None = None
        self.error_kind: str | None = None
        self.shutdown = False
        self.active_sock: socket.socket | None = None


class RequestWorker:
    """Single background thread servicing one context's mailbox."""

    def __init__(self, state: ContextState) -> None:
        self._state = state
        self._thread = threading.Thread(
            target=self._run, daemon=True, name="chat-worker")

    def start(self) -> None:
        self._thread.start()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the thread to exit; ``False`` if it is still alive."""
        self._thread.join(timeout=timeout)
        return not self._thread.is_alive()

    @property
    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def is_current_thread(self) -> bool:
        return threading.current_thread() is self._thread

    # ------------------------------------------------------------------
    # Worker loop
    # ------------------------------------------------------------------

    def _run(self) -> None:
        state = self._state
        while True:
            with state.lock:
                while state.pending is None and not state.shutdown:
                    state.work_ready.wait()
                request = state.pending
                state.pending = None
                if state.shutdown:
                    break
                state.phase = RequestPhase.SENDING

            try:
                self._execute(request)
            except Exception as e:
                _logger.exception("Unexpected error in chat worker")
                self._finish(request.callbacks, ChatError(f"unexpected worker error: {e}"))

        if request is not None:
            _logger.warning("Dropping pending request: context closed")
            self._finish(request.callbacks, ContextClosedError("context closed before request started"))
        _logger.debug("Chat worker exiting")

    def _execute(self, request: PendingRequest) -> None:
        state = self._state
        with state.lock:
            if request.message is not None:
                state.history.append("user", request.message, images=request.images)
            messages = state.history.to_payload()
            host, port, timeout = state.host, state.port, state.timeout
            model, path, think = state.model, state.api_path, state.think
            filters = list(state.output_filters)
            tools = list(state.tools) if state.tools else None

        _logger.info("Sending chat request to %s:%d (model=%s, %d messages)",
                     host, port, model, len(messages))
        error: ChatError | None = None
        sock: socket.socket | None = None
        try:
            body = build_chat_payload(model, messages, think, tools)
            with state.lock:
                if state.shutdown:
                    raise ContextClosedError("context closed before connecting")
            sock = open_connection(host, port, timeout)
            with state.lock:
                state.active_sock = sock
                if state.shutdown:
                    shutdown_socket(sock)
            send_request(sock, build_http_request(host, port, path, body))
            with state.lock:
                state.phase = RequestPhase.STREAMING
            self._stream(sock, request.callbacks, filters)
            with state.lock:
                state.phase = RequestPhase.FINALIZING
        except ChatError as e:
            _logger.warning("Chat request failed: %s", e.format())
            error = e
        finally:
            if sock is not None:
                with state.lock:
                    state.active_sock = None
                sock.close()

        self._finish(request.callbacks, error)

    def _stream(
        self,
        sock: socket.socket,
        callbacks: RequestCallbacks,
        output_filters: list[str],
    ) -> None:
        state = self._state
        parser = ChunkedStreamParser(LineReader(sock.recv), output_filters)
        count = 0
        in_thinking = False
        for event in parser.events():
            if event.thinking:
                if not in_thinking:
                    in_thinking = True
                    _invoke("on_thinking_start", callbacks.on_thinking_start)
                with state.lock:
                    state.thinking.append(event.thinking)
                _invoke("on_thinking", callbacks.on_thinking, event.thinking)
            if event.content:
                if in_thinking:
                    in_thinking = False
                    _invoke("on_thinking_end", callbacks.on_thinking_end)
                with state.lock:
                    state.response.append(event.content)
                    state.tokens.push(event.content)
                _invoke("on_token", callbacks.on_token, event.content)
                count += 1
            if event.tool_calls:
                with state.lock:
                    state.tool_calls.extend(event.tool_calls)
                _invoke("on_tool_calls", callbacks.on_tool_calls, list(event.tool_calls))
        if in_thinking:
            _invoke("on_thinking_end", callbacks.on_thinking_end)
        _logger.debug("Stream ended after %d tokens (status=%s)", count, parser.status_code)

    def _finish(self, callbacks: RequestCallbacks, error: ChatError | None) -> None:
        """Move to a terminal phase, then fire exactly one of done/error."""
        state = self._state
        with state.lock:
            if error is None:
                full_response = state.response.text
                if full_response or state.tool_calls:
                    state.history.append("assistant", full_response, tool_calls=state.tool_calls)
                state.phase = RequestPhase.COMPLETED
            else:
                full_response = ""
                state.error = error.format()
                state.error_kind = error.kind
                state.phase = RequestPhase.FAILED
            state.pending = None
            state.done = True
            state.finished.notify_all()
            message = state.error

        if error is None:
            _logger.info("Chat request completed (%d chars)", len(full_response))
            _invoke("on_done", callbacks.on_done, full_response)
        else:
            _invoke("on_error", callbacks.on_error, message)


def _invoke(name: str, callback: Callable[..., Any] | None, *args: Any) -> None:
    if callback is None:
        return
    try:
        callback(*args)
    except Exception:
        _logger.exception("%s callback raised", name)


def shutdown_socket(sock: socket.socket) -> None:
    """Unblock a pending recv/send on *sock* from another thread."""
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError as e:
        _logger.debug("Socket shutdown failed: %s", e)
