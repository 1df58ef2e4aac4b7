"""Minimal HTTP/1.1 request framing over a fresh TCP connection.

One connection per request, ``Connection: close``; no pooling, redirects,
compression or TLS.
"""

from __future__ import annotations

import json
import logging
import socket
from typing import Any

from streamchat.errors import ChatConnectionError, RequestBuildError, SendError

_logger = logging.getLogger(__name__)


def build_chat_payload(
    model: str,
    messages: list[dict[str, Any]],
    think: bool = True,
    tools: list[dict[str, Any]] | None = None,
) -> bytes:
    """Serialize a streamed chat request body; ``tools`` only when non-empty."""
    payload: dict[str, Any] = {
        "model": model,
        "stream": True,
    }
    if think:
        payload["think"] = True
    payload["messages"] = messages
    if tools:
        payload["tools"] = tools
    try:
        return json.dumps(payload, ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise RequestBuildError(f"failed to create request: {e}") from e


def build_http_request(host: str, port: int, path: str, body: bytes) -> bytes:
    head = (
        f"POST {path} HTTP/1.1\r\n"
        f"Host: {host}:{port}\r\n"
        "Content-Type: application/json\r\n"
        f"Content-Length: {len(body)}\r\n"
        "Connection: close\r\n"
        "\r\n"
    )
    return head.encode("ascii") + body


def open_connection(host: str, port: int, timeout: float) -> socket.socket:
    """Connect to *host*:*port*; *timeout* bounds connect, send and each read."""
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except OSError as e:
        raise ChatConnectionError(f"connection to {host}:{port} failed: {e}") from e
    sock.settimeout(timeout)
    _logger.debug("Connected to %s:%d", host, port)
    return sock


def send_request(sock: socket.socket, data: bytes) -> None:
    try:
        sock.sendall(data)
    except OSError as e:
        raise SendError(f"send failed: {e}") from e
