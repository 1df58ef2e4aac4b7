"""Tests for the request worker state machine."""

from __future__ import annotations

import threading

from fake_server import ndjson_reply

from streamchat.config import ChatConfig
from streamchat.types import PendingRequest, RequestCallbacks, RequestPhase
from streamchat.worker import ContextState, RequestWorker

WAIT = 10


def _publish(state: ContextState, message: str, callbacks: RequestCallbacks) -> None:
    with state.lock:
        state.pending = PendingRequest(message=message, callbacks=callbacks)
        state.done = False
        state.work_ready.notify()


def _stop(state: ContextState, worker: RequestWorker) -> None:
    with state.lock:
        state.shutdown = True
        state.work_ready.notify_all()
    assert worker.join(WAIT)


class TestRequestWorker:
    def test_pending_request_failed_on_shutdown(self):
        state = ContextState(ChatConfig())
        errors: list[str] = []
        state.pending = PendingRequest("hi", RequestCallbacks(on_error=errors.append))
        state.done = False
        state.shutdown = True

        worker = RequestWorker(state)
        worker.start()
        assert worker.join(WAIT)

        assert errors == ["Closed: context closed before request started"]
        assert state.phase is RequestPhase.FAILED
        assert state.done
        assert state.pending is None
        assert len(state.history) == 0

    def test_phases_and_terminal_ordering(self, server):
        gate = threading.Event()
        server.queue(ndjson_reply("tok", gate=gate))
        state = ContextState(ChatConfig(host=server.host, port=server.port, timeout=5))
        worker = RequestWorker(state)
        worker.start()

        streaming = threading.Event()
        observed: dict[str, object] = {}
        finished = threading.Event()

        def on_token(_t: str) -> None:
            with state.lock:
                observed["phase_during_stream"] = state.phase
            streaming.set()

        def on_done(text: str) -> None:
            with state.lock:
                observed["done_flag"] = state.done
                observed["phase_at_done"] = state.phase
                observed["history_len"] = len(state.history)
            observed["text"] = text
            finished.set()

        _publish(state, "hello", RequestCallbacks(on_token=on_token, on_done=on_done))
        assert streaming.wait(WAIT)
        assert observed["phase_during_stream"] is RequestPhase.STREAMING
        gate.set()
        assert finished.wait(WAIT)

        assert observed["done_flag"] is True
        assert observed["phase_at_done"] is RequestPhase.COMPLETED
        assert observed["history_len"] == 2
        assert observed["text"] == "tok"
        _stop(state, worker)

    def test_worker_serves_successive_requests(self, server):
        server.queue(ndjson_reply("first"), ndjson_reply("second"))
        state = ContextState(ChatConfig(host=server.host, port=server.port, timeout=5))
        worker = RequestWorker(state)
        worker.start()

        results: list[str] = []
        for message in ("a", "b"):
            finished = threading.Event()

            def on_done(text: str, finished: threading.Event = finished) -> None:
                results.append(text)
                finished.set()

            _publish(state, message, RequestCallbacks(on_done=on_done))
            assert finished.wait(WAIT)

        assert results == ["first", "second"]
        assert [m.role for m in state.history] == ["user", "assistant", "user", "assistant"]
        _stop(state, worker)
