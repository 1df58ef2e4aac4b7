"""Public chat context: one conversation, one connection config, one worker."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, AsyncIterator, Iterable

from streamchat.capabilities import ModelCapabilities, check_model_capabilities
from streamchat.config import ChatConfig, resolve_timeout
from streamchat.errors import (
    BusyError,
    ContextClosedError,
    RequestFailedError,
    WorkerStartError,
)
from streamchat.types import (
    DoneCallback,
    ErrorCallback,
    HookCallback,
    Message,
    PendingRequest,
    RequestCallbacks,
    RequestPhase,
    TokenCallback,
    ToolCallsCallback,
)
from streamchat.worker import ContextState, RequestWorker, shutdown_socket

_logger = logging.getLogger(__name__)


def _resolve_think(config: ChatConfig) -> tuple[bool, ModelCapabilities | None]:
    if config.thinking_mode == "always":
        return True, None
    if config.thinking_mode == "never":
        return False, None
    caps = check_model_capabilities(config.host, config.port, config.model)
    return caps.thinking, caps


class ChatContext:
    """Streaming chat conversation backed by a single background worker.

    At most one request is in flight at a time.  Tokens can be consumed
    through ``on_token`` callbacks, by polling ``poll_tokens()``, by
    blocking in ``submit_blocking()``, or with ``async for`` over
    ``astream()``.

    Usage::

        with ChatContext("localhost", 11434, "qwen3:8b") as ctx:
            reply = ctx.submit_blocking("Hello", on_token=print)
    """

    def __init__(
        self,
        host: str | None = None,
        port: int = 0,
        model: str | None = None,
        *,
        timeout: int = 0,
        thinking_mode: str | None = None,
        output_filters: list[str] | None = None,
        config: ChatConfig | None = None,
    ) -> None:
        base = config or ChatConfig()
        overrides: dict[str, Any] = {}
        if host:
            overrides["host"] = host
        if port and port > 0:
            overrides["port"] = port
        if model:
            overrides["model"] = model
        if timeout and timeout > 0:
            overrides["timeout"] = timeout
        if thinking_mode is not None:
            overrides["thinking_mode"] = thinking_mode
        if output_filters is not None:
            overrides["output_filters"] = list(output_filters)
        if overrides:
            self.config = ChatConfig.model_validate({**base.model_dump(), **overrides})
        else:
            self.config = base

        think, capabilities = _resolve_think(self.config)
        self._state = ContextState(self.config, think=think)
        self._state.capabilities = capabilities
        self._closed = False
        self._worker = RequestWorker(self._state)
        try:
            self._worker.start()
        except RuntimeError as e:
            raise WorkerStartError(f"could not start worker thread: {e}") from e
        _logger.debug("Chat context created for %s:%d (model=%s)",
                      self.config.host, self.config.port, self.config.model)

    @classmethod
    def from_config(cls, config: ChatConfig) -> ChatContext:
        return cls(config=config)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self, timeout: float | None = None) -> bool:
        """Stop the worker and wait for it to exit.

        A request still streaming is cut short by shutting down its socket;
        it completes with whatever content arrived.  A request that was
        published but not yet picked up fails with a ``Closed`` error.

        Returns ``False`` if the worker did not stop within *timeout*.
        """
        state = self._state
        with state.lock:
            if self._closed:
                return not self._worker.is_alive
            self._closed = True
            state.shutdown = True
            state.work_ready.notify_all()
            sock = state.active_sock
        if sock is not None:
            shutdown_socket(sock)

        if self._worker.is_current_thread():
            # Closed from inside a callback; the loop exits on its own
            return False
        stopped = self._worker.join(timeout)
        if not stopped:
            _logger.warning("Chat worker did not stop within %ss", timeout)
        return stopped

    @property
    def closed(self) -> bool:
        with self._state.lock:
            return self._closed

    def __enter__(self) -> ChatContext:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def submit_async(
        self,
        message: str | None,
        on_token: TokenCallback | None = None,
        on_done: DoneCallback | None = None,
        on_error: ErrorCallback | None = None,
        on_thinking: TokenCallback | None = None,
        *,
        on_thinking_start: HookCallback | None = None,
        on_thinking_end: HookCallback | None = None,
        on_tool_calls: ToolCallsCallback | None = None,
        images: Iterable[str] | None = None,
    ) -> None:
        """Hand *message* to the worker and return immediately.

        With ``message=None`` nothing is appended and the current history is
        sent as is; use it to continue after adding ``tool`` results.

        Raises ``BusyError`` if the previous request has not finished; the
        previous request's state is left untouched in that case.
        """
        state = self._state
        with state.lock:
            if self._closed:
                raise ContextClosedError("context is closed")
            if not state.done:
                raise BusyError("a request is already in progress")
            state.response.reset()
            state.thinking.reset()
            state.tokens.clear()
            state.tool_calls = []
            state.error = None
            state.error_kind = None
            state.pending = PendingRequest(
                message=message,
                callbacks=RequestCallbacks(
                    on_token=on_token,
                    on_done=on_done,
                    on_error=on_error,
                    on_thinking=on_thinking,
                    on_thinking_start=on_thinking_start,
                    on_thinking_end=on_thinking_end,
                    on_tool_calls=on_tool_calls,
                ),
                images=tuple(images or ()),
            )
            state.done = False
            state.phase = RequestPhase.IDLE
            state.work_ready.notify()

    def submit_blocking(
        self,
        message: str | None,
        on_token: TokenCallback | None = None,
        timeout: float | None = None,
    ) -> str | None:
        """Send *message* and wait for the full response.

        Returns the response text, or ``None`` if the request failed (or
        *timeout* expired first).  ``on_token`` still fires per token.
        Must not be called from a callback: those run on the worker thread,
        which is the thread that would have to finish the request.
        """
        if self._worker.is_current_thread():
            raise RuntimeError("submit_blocking cannot be called from a chat callback")
        finished = threading.Event()
        outcome: dict[str, str] = {}

        def _on_done(text: str) -> None:
            outcome["response"] = text
            finished.set()

        def _on_error(_message: str) -> None:
            finished.set()

        self.submit_async(message, on_token=on_token, on_done=_on_done, on_error=_on_error)
        if not finished.wait(timeout):
            _logger.warning("Blocking chat request did not finish within %ss", timeout)
            return None
        return outcome.get("response")

    async def astream(self, message: str) -> AsyncIterator[str]:
        """Async iterator over the tokens of one request.

        Raises ``RequestFailedError`` when the request ends in failure.
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[tuple[str, str]] = asyncio.Queue()

        def _push(kind: str, value: str) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, (kind, value))

        self.submit_async(
            message,
            on_token=lambda t: _push("token", t),
            on_done=lambda r: _push("done", r),
            on_error=lambda e: _push("error", e),
        )
        while True:
            kind, value = await queue.get()
            if kind == "token":
                yield value
            elif kind == "error":
                raise RequestFailedError(value)
            else:
                return

    def poll_tokens(self) -> list[str]:
        """Drain the tokens buffered since the last poll."""
        with self._state.lock:
            return self._state.tokens.drain()

    def is_done(self) -> bool:
        with self._state.lock:
            return self._state.done

    def wait(self, timeout: float | None = None) -> bool:
        """Block until no request is in flight; ``False`` on timeout."""
        state = self._state
        with state.lock:
            return state.finished.wait_for(lambda: state.done, timeout)

    @property
    def phase(self) -> RequestPhase:
        with self._state.lock:
            return self._state.phase

    def get_response(self) -> str | None:
        """Full text of the last completed request, else ``None``."""
        with self._state.lock:
            if self._state.phase is not RequestPhase.COMPLETED or not self._state.done:
                return None
            return self._state.response.text

    def get_tool_calls(self) -> list[dict[str, Any]] | None:
        """Tool calls requested by the model in the last request, if any."""
        with self._state.lock:
            return list(self._state.tool_calls) or None

    def get_thinking(self) -> str | None:
        with self._state.lock:
            return self._state.thinking.text or None

    def get_error(self) -> str | None:
        with self._state.lock:
            return self._state.error

    @property
    def error_kind(self) -> str | None:
        with self._state.lock:
            return self._state.error_kind

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def clear_history(self) -> None:
        with self._state.lock:
            self._state.history.clear()

    def history_count(self) -> int:
        with self._state.lock:
            return len(self._state.history)

    def history_at(self, index: int) -> Message:
        """Return message *index*; ``HistoryIndexError`` if out of range."""
        with self._state.lock:
            return self._state.history.at(index)

    def history(self) -> list[Message]:
        with self._state.lock:
            return self._state.history.snapshot()

    def add_message(self, role: str, content: str, images: Iterable[str] | None = None) -> Message:
        """Append to history without sending anything."""
        with self._state.lock:
            return self._state.history.append(role, content, images=images or ())

    def set_system_message(self, content: str) -> None:
        with self._state.lock:
            self._state.history.set_system_message(content)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def set_timeout(self, seconds: int) -> None:
        """Read timeout for future requests; non-positive restores the default."""
        with self._state.lock:
            self._state.timeout = resolve_timeout(seconds)

    def set_tools(self, tools: list[dict[str, Any]] | None) -> None:
        """Tool definitions sent with every later request; ``None`` clears them."""
        with self._state.lock:
            self._state.tools = list(tools) if tools else None

    def info(self) -> dict[str, Any]:
        state = self._state
        with state.lock:
            return {
                "host": state.host,
                "port": state.port,
                "model": state.model,
                "timeout": state.timeout,
                "think": state.think,
                "capabilities": state.capabilities,
            }
