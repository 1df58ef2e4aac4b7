"""Streaming chat client with a single background request worker."""

from streamchat.capabilities import ModelCapabilities, check_model_capabilities, is_server_running
from streamchat.config import ChatConfig, load_config
from streamchat.context import ChatContext
from streamchat.errors import (
    BusyError,
    ChatConnectionError,
    ChatError,
    ContextClosedError,
    HistoryIndexError,
    RequestBuildError,
    RequestFailedError,
    SendError,
    WorkerStartError,
)
from streamchat.stream_parser import ChunkedStreamParser, LineReader
from streamchat.types import Message, RequestPhase, StreamEvent

__all__ = [
    "BusyError",
    "ChatConfig",
    "ChatConnectionError",
    "ChatContext",
    "ChatError",
    "ChunkedStreamParser",
    "ContextClosedError",
    "HistoryIndexError",
    "LineReader",
    "Message",
    "ModelCapabilities",
    "RequestBuildError",
    "RequestFailedError",
    "RequestPhase",
    "SendError",
    "StreamEvent",
    "WorkerStartError",
    "check_model_capabilities",
    "is_server_running",
    "load_config",
]
