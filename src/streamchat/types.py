"""Shared data types for streamchat."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Callable

TokenCallback = Callable[[str], object]
DoneCallback = Callable[[str], object]
ErrorCallback = Callable[[str], object]
ToolCallsCallback = Callable[[list[dict[str, Any]]], object]
HookCallback = Callable[[], object]


@dataclass(frozen=True)
class Message:
    """One entry of the conversation history.

    ``images`` (base64 strings) and ``tool_calls`` are only sent when
    non-empty.
    """

    role: str  # "user", "assistant", "system", "tool" by convention
    content: str
    images: tuple[str, ...] = ()
    tool_calls: tuple[dict[str, Any], ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.images:
            data["images"] = list(self.images)
        if self.tool_calls:
            data["tool_calls"] = list(self.tool_calls)
        return data


class RequestPhase(enum.Enum):
    """Lifecycle of the request currently owned by a context."""

    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RequestPhase.COMPLETED, RequestPhase.FAILED)


@dataclass
class StreamEvent:
    """One decoded event line from the response stream."""

    content: str = ""
    thinking: str = ""
    done: bool = False
    tool_calls: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class RequestCallbacks:
    """Per-request notification hooks, invoked from the worker thread.

    Bind any caller state with a closure or ``functools.partial``.
    ``on_thinking_start``/``on_thinking_end`` take no arguments and bracket
    a run of reasoning fragments.
    """

    on_token: TokenCallback | None = None
    on_done: DoneCallback | None = None
    on_error: ErrorCallback | None = None
    on_thinking: TokenCallback | None = None
    on_thinking_start: HookCallback | None = None
    on_thinking_end: HookCallback | None = None
    on_tool_calls: ToolCallsCallback | None = None


@dataclass
class PendingRequest:
    """The single-slot mailbox entry handed from caller to worker.

    ``message`` is ``None`` for a follow-up request after tool results
    were added to history; no user message is appended then.
    """

    message: str | None
    callbacks: RequestCallbacks
    images: tuple[str, ...] = ()
