"""Token buffer and response accumulator."""

from __future__ import annotations

from collections import deque


class TokenBuffer:
    """FIFO of tokens waiting for a polling caller."""

    def __init__(self) -> None:
        self._tokens: deque[str] = deque()

    def push(self, token: str) -> None:
        self._tokens.append(token)

    def drain(self) -> list[str]:
        """Return every buffered token in emission order and empty the buffer."""
        tokens = list(self._tokens)
        self._tokens.clear()
        return tokens

    def clear(self) -> None:
        self._tokens.clear()

    def __len__(self) -> int:
        return len(self._tokens)


class ResponseAccumulator:
    """Growable text buffer for the response of the current request."""

    def __init__(self) -> None:
        self._parts: list[str] = []
        self._length = 0

    def append(self, fragment: str) -> None:
        self._parts.append(fragment)
        self._length += len(fragment)

    def reset(self) -> None:
        self._parts.clear()
        self._length = 0

    @property
    def text(self) -> str:
        if len(self._parts) > 1:
            # Collapse so repeated reads stay cheap
            self._parts = ["".join(self._parts)]
        return self._parts[0] if self._parts else ""

    def __len__(self) -> int:
        return self._length

    def __bool__(self) -> bool:
        return self._length > 0
