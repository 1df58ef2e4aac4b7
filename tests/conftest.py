"""Shared fixtures for streamchat tests."""

from __future__ import annotations

import socket

import pytest

from fake_server import FakeChatServer


@pytest.fixture
def server():
    srv = FakeChatServer()
    yield srv
    srv.close()


@pytest.fixture
def closed_port() -> int:
    """A localhost port with nothing listening on it."""
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port
