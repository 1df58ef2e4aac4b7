"""Exception hierarchy for streamchat.

Every error carries a short ``kind`` tag.  Failures that happen on the
worker thread are never raised to the caller; the worker formats them as
``"<kind>: <detail>"`` and hands the text to ``on_error`` instead.
"""

from __future__ import annotations


class ChatError(Exception):
    """Base class for all streamchat errors."""

    kind = "ChatError"

    def format(self) -> str:
        detail = str(self)
        return f"{self.kind}: {detail}" if detail else self.kind


class BusyError(ChatError):
    """A request is already in flight on this context."""

    kind = "Busy"


class ChatConnectionError(ChatError):
    """Could not open a TCP connection to the server."""

    kind = "ConnectionError"


class SendError(ChatError):
    """Writing the HTTP request to the socket failed."""

    kind = "SendError"


class RequestBuildError(ChatError):
    """The request payload could not be serialized."""

    kind = "RequestBuildError"


class HistoryIndexError(ChatError, IndexError):
    """History index outside ``0 .. count-1``."""

    kind = "OutOfRange"


class ContextClosedError(ChatError):
    """The context has been closed."""

    kind = "Closed"


class WorkerStartError(ChatError):
    """The background worker thread could not be started."""

    kind = "WorkerStartError"


class RequestFailedError(ChatError):
    """A streamed request ended in the failed state."""

    kind = "RequestFailed"
