"""Incremental parser for a raw streaming chat response.

The server answers with an HTTP header block followed by newline-delimited
JSON events.  When the response uses chunked transfer-encoding, the chunk
length lines are interleaved with the JSON lines; rather than running a
full chunked decoder, short all-hex lines are recognised and skipped.

Known limitation: a bare line of fewer than 8 hex digits is always taken
for chunk framing.  Content is always delivered inside a JSON object line,
so only framing lines take that shape in practice.
"""

from __future__ import annotations

import json
import logging
import re
import string
from typing import Callable, Iterable, Iterator

from streamchat.types import StreamEvent

_logger = logging.getLogger(__name__)

_HEX_DIGITS = frozenset(string.hexdigits)
_MAX_CHUNK_SIZE_LEN = 8  # chunk-size lines are shorter than this
_STATUS_RE = re.compile(r"^HTTP/\d(?:\.\d)?\s+(\d{3})")


class LineReader:
    """Buffered line reader over a ``recv(n) -> bytes`` callable.

    Lines are returned without the trailing ``\\n`` and with every ``\\r``
    removed.  End of stream, a read timeout, or a socket error all end the
    stream quietly; any partial data buffered at that point is returned as
    one final short line.
    """

    def __init__(self, recv: Callable[[int], bytes], bufsize: int = 4096) -> None:
        self._recv = recv
        self._bufsize = bufsize
        self._buf = bytearray()
        self._eof = False

    @property
    def exhausted(self) -> bool:
        return self._eof and not self._buf

    def readline(self) -> str | None:
        """Return the next line, or ``None`` once the stream has ended."""
        while True:
            idx = self._buf.find(b"\n")
            if idx >= 0:
                raw = bytes(self._buf[:idx])
                del self._buf[:idx + 1]
                return self._decode(raw)

            if self._eof:
                if not self._buf:
                    return None
                raw = bytes(self._buf)
                self._buf.clear()
                return self._decode(raw)

            try:
                data = self._recv(self._bufsize)
            except OSError as e:  # includes socket timeouts
                _logger.debug("Stream read ended: %s", e)
                data = b""
            if not data:
                self._eof = True
                continue
            self._buf.extend(data)

    def __iter__(self) -> Iterator[str]:
        while True:
            line = self.readline()
            if line is None:
                return
            yield line

    @staticmethod
    def _decode(raw: bytes) -> str:
        return raw.replace(b"\r", b"").decode("utf-8", errors="replace")


def is_chunk_size_line(line: str) -> bool:
    """True for a chunked-transfer length marker such as ``1a3``."""
    return 0 < len(line) < _MAX_CHUNK_SIZE_LEN and all(c in _HEX_DIGITS for c in line)


def parse_event_line(line: str) -> StreamEvent | None:
    """Decode one JSON event line; ``None`` when it is not a usable event."""
    if not line.startswith("{"):
        return None
    try:
        data = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None

    event = StreamEvent(done=data.get("done") is True)
    message = data.get("message")
    if isinstance(message, dict):
        content = message.get("content")
        if isinstance(content, str):
            event.content = content
        thinking = message.get("thinking")
        if isinstance(thinking, str):
            event.thinking = thinking
        tool_calls = message.get("tool_calls")
        if isinstance(tool_calls, list):
            event.tool_calls = [tc for tc in tool_calls if isinstance(tc, dict)]
    return event


class ChunkedStreamParser:
    """Turn a raw HTTP response stream into content/thinking events."""

    def __init__(
        self,
        reader: LineReader | Iterable[str],
        output_filters: Iterable[str] = (),
    ) -> None:
        self._lines = iter(reader)
        self._filters = [re.compile(p) for p in output_filters]
        self.status_code: int | None = None
        self.headers_complete = False

    def skip_headers(self) -> bool:
        """Consume the header block.

        Returns ``False`` if the stream ended before the blank line that
        terminates the headers.
        """
        for line in self._lines:
            if self.status_code is None:
                m = _STATUS_RE.match(line)
                if m:
                    self.status_code = int(m.group(1))
                    if not 200 <= self.status_code < 300:
                        _logger.warning("Server answered with status line %r", line)
            if line == "":
                self.headers_complete = True
                return True
        return False

    def events(self) -> Iterator[StreamEvent]:
        """Yield events from the body, stopping after the ``done`` event."""
        if not self.headers_complete and not self.skip_headers():
            return
        for line in self._lines:
            if not line or is_chunk_size_line(line):
                continue
            event = parse_event_line(line)
            if event is None:
                continue
            if event.content and self._filters:
                event.content = self._apply_filters(event.content)
            yield event
            if event.done:
                return

    def tokens(self) -> Iterator[str]:
        """Yield the non-empty content fragments only."""
        for event in self.events():
            if event.content:
                yield event.content

    def _apply_filters(self, text: str) -> str:
        for pattern in self._filters:
            text = pattern.sub("", text)
        return text
