"""Tests for MessageHistory, TokenBuffer and ResponseAccumulator."""

import pytest

from streamchat.buffers import ResponseAccumulator, TokenBuffer
from streamchat.errors import HistoryIndexError
from streamchat.history import MessageHistory
from streamchat.types import Message, RequestPhase


class TestMessageHistory:
    def test_append_and_index(self):
        h = MessageHistory()
        h.append("user", "hi")
        h.append("assistant", "hello")
        assert len(h) == 2
        assert h.at(0) == Message("user", "hi")
        assert h.at(1).role == "assistant"

    def test_out_of_range(self):
        h = MessageHistory()
        h.append("user", "hi")
        with pytest.raises(HistoryIndexError):
            h.at(1)
        with pytest.raises(HistoryIndexError):
            h.at(-1)

    def test_out_of_range_is_index_error(self):
        with pytest.raises(IndexError):
            MessageHistory().at(0)

    def test_clear(self):
        h = MessageHistory()
        h.append("user", "a")
        h.clear()
        assert len(h) == 0

    def test_payload(self):
        h = MessageHistory()
        h.append("system", "be brief")
        h.append("user", "hi")
        assert h.to_payload() == [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hi"},
        ]

    def test_payload_includes_images_and_tool_calls_only_when_set(self):
        h = MessageHistory()
        h.append("user", "what is this?", images=["aGVsbG8="])
        h.append("assistant", "", tool_calls=[{"function": {"name": "look"}}])
        h.append("tool", "a cat")
        assert h.to_payload() == [
            {"role": "user", "content": "what is this?", "images": ["aGVsbG8="]},
            {"role": "assistant", "content": "", "tool_calls": [{"function": {"name": "look"}}]},
            {"role": "tool", "content": "a cat"},
        ]

    def test_set_system_message_inserts_and_replaces(self):
        h = MessageHistory()
        h.append("user", "hi")
        h.set_system_message("first")
        assert h.at(0) == Message("system", "first")
        h.set_system_message("second")
        assert len(h) == 2
        assert h.at(0).content == "second"

    def test_messages_are_immutable(self):
        msg = MessageHistory().append("user", "x")
        with pytest.raises(AttributeError):
            msg.content = "y"  # type: ignore[misc]


class TestTokenBuffer:
    def test_drain_in_order(self):
        buf = TokenBuffer()
        for t in ("a", "b", "c"):
            buf.push(t)
        assert buf.drain() == ["a", "b", "c"]

    def test_drain_is_idempotent(self):
        buf = TokenBuffer()
        buf.push("x")
        assert buf.drain() == ["x"]
        assert buf.drain() == []
        assert len(buf) == 0

    def test_clear(self):
        buf = TokenBuffer()
        buf.push("x")
        buf.clear()
        assert buf.drain() == []


class TestResponseAccumulator:
    def test_append_and_text(self):
        acc = ResponseAccumulator()
        assert not acc
        acc.append("Hel")
        acc.append("lo")
        assert acc.text == "Hello"
        assert len(acc) == 5
        acc.append("!")
        assert acc.text == "Hello!"

    def test_reset(self):
        acc = ResponseAccumulator()
        acc.append("data")
        acc.reset()
        assert acc.text == ""
        assert len(acc) == 0


class TestRequestPhase:
    def test_terminal_phases(self):
        assert RequestPhase.COMPLETED.is_terminal
        assert RequestPhase.FAILED.is_terminal
        assert not RequestPhase.STREAMING.is_terminal
        assert not RequestPhase.IDLE.is_terminal
