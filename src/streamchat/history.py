"""Ordered conversation history."""

from __future__ import annotations

from typing import Any, Iterable, Iterator

from streamchat.errors import HistoryIndexError
from streamchat.types import Message


class MessageHistory:
    """Append-only sequence of messages, cleared only explicitly.

    Not thread-safe on its own; ``ChatContext`` guards it with its lock.
    """

    def __init__(self) -> None:
        self._messages: list[Message] = []

    def append(
        self,
        role: str,
        content: str,
        images: Iterable[str] = (),
        tool_calls: Iterable[dict[str, Any]] = (),
    ) -> Message:
        msg = Message(role=role, content=content,
                      images=tuple(images or ()), tool_calls=tuple(tool_calls or ()))
        self._messages.append(msg)
        return msg

    def set_system_message(self, content: str) -> None:
        """Replace a leading system message, or insert one at the front."""
        msg = Message(role="system", content=content)
        if self._messages and self._messages[0].role == "system":
            self._messages[0] = msg
        else:
            self._messages.insert(0, msg)

    def at(self, index: int) -> Message:
        if index < 0 or index >= len(self._messages):
            raise HistoryIndexError(
                f"history index {index} out of range (0..{len(self._messages) - 1})")
        return self._messages[index]

    def clear(self) -> None:
        self._messages.clear()

    def snapshot(self) -> list[Message]:
        return list(self._messages)

    def to_payload(self) -> list[dict[str, str]]:
        return [m.to_dict() for m in self._messages]

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))
