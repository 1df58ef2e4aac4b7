"""Tests for the model capability lookup with mocked httpx responses."""

from __future__ import annotations

from unittest.mock import patch

import httpx
import pytest

from streamchat import capabilities
from streamchat.capabilities import (
    ModelCapabilities,
    check_model_capabilities,
    is_server_running,
)


@pytest.fixture(autouse=True)
def _fresh_cache():
    capabilities.clear_cache()
    yield
    capabilities.clear_cache()


def _mock_response(data: dict, status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code=status_code,
        json=data,
        request=httpx.Request("POST", "http://test/api/show"),
    )


class TestCheckModelCapabilities:
    def test_reported_capabilities(self):
        resp = _mock_response({"capabilities": ["completion", "thinking", "tools"]})
        with patch("streamchat.capabilities.httpx.post", return_value=resp) as mock_post:
            caps = check_model_capabilities("localhost", 11434, "qwen3:8b")
        assert caps == ModelCapabilities(thinking=True, vision=False, tools=True)
        args, kwargs = mock_post.call_args
        assert args[0] == "http://localhost:11434/api/show"
        assert kwargs["json"] == {"model": "qwen3:8b"}

    def test_name_heuristics_without_capabilities(self):
        resp = _mock_response({"details": {"family": "qwen3"}})
        with patch("streamchat.capabilities.httpx.post", return_value=resp):
            assert check_model_capabilities("h", 1, "qwen3:8b").thinking
            assert not check_model_capabilities("h", 1, "qwen3-coder:30b").thinking
            assert check_model_capabilities("h", 1, "deepseek-r1:7b").thinking
            assert check_model_capabilities("h", 1, "nemotron-3-nano").thinking
            assert not check_model_capabilities("h", 1, "ministral-3:14b").thinking

    def test_vision_from_projector_info(self):
        resp = _mock_response({"projector_info": {"clip.has_vision_encoder": True}})
        with patch("streamchat.capabilities.httpx.post", return_value=resp):
            caps = check_model_capabilities("h", 1, "llama3.2-vision")
        assert caps.vision
        assert not caps.tools

    def test_vision_from_model_families(self):
        resp = _mock_response({"details": {"families": ["llama", "clip"]}})
        with patch("streamchat.capabilities.httpx.post", return_value=resp):
            assert check_model_capabilities("h", 1, "llava:7b").vision

    def test_text_only_families_have_no_vision(self):
        resp = _mock_response({"capabilities": ["completion"], "details": {"families": ["llama"]}})
        with patch("streamchat.capabilities.httpx.post", return_value=resp):
            assert not check_model_capabilities("h", 1, "llama3").vision

    def test_results_are_cached(self):
        resp = _mock_response({"capabilities": ["vision"]})
        with patch("streamchat.capabilities.httpx.post", return_value=resp) as mock_post:
            check_model_capabilities("h", 1, "m")
            caps = check_model_capabilities("h", 1, "m")
        assert caps.vision
        assert mock_post.call_count == 1

    def test_connect_error_not_cached(self):
        with patch("streamchat.capabilities.httpx.post",
                   side_effect=httpx.ConnectError("refused")) as mock_post:
            assert check_model_capabilities("h", 1, "m") == ModelCapabilities()
            check_model_capabilities("h", 1, "m")
        assert mock_post.call_count == 2

    def test_http_error_status(self):
        resp = _mock_response({"error": "model not found"}, status_code=404)
        with patch("streamchat.capabilities.httpx.post", return_value=resp):
            assert check_model_capabilities("h", 1, "qwq") == ModelCapabilities()


class TestIsServerRunning:
    def test_running(self):
        resp = httpx.Response(200, text="Ollama is running",
                              request=httpx.Request("GET", "http://h:1"))
        with patch("streamchat.capabilities.httpx.get", return_value=resp):
            assert is_server_running("h", 1)

    def test_unreachable(self):
        with patch("streamchat.capabilities.httpx.get",
                   side_effect=httpx.ConnectError("refused")):
            assert not is_server_running("h", 1)
