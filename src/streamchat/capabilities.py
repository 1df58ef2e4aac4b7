"""Query an Ollama server for model capabilities."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

import httpx

_logger = logging.getLogger(__name__)

_SHOW_TIMEOUT = 5  # seconds

_cache: dict[str, "ModelCapabilities"] = {}
_cache_lock = threading.Lock()


@dataclass(frozen=True)
class ModelCapabilities:
    thinking: bool = False
    vision: bool = False
    tools: bool = False


def _base_url(host: str, port: int) -> str:
    return f"http://{host}:{port}"


def is_server_running(host: str, port: int, timeout: float = 3) -> bool:
    """Check if the server is reachable."""
    try:
        resp = httpx.get(_base_url(host, port), timeout=timeout)
        return resp.status_code == 200
    except (httpx.ConnectError, httpx.TimeoutException, OSError):
        return False


def _is_thinking_model_name(model: str) -> bool:
    """Known reasoning model families, for servers that don't report capabilities."""
    name = model.lower()
    if "qwq" in name or "nemotron" in name:
        return True
    if "deepseek" in name and ("r1" in name or "reason" in name):
        return True
    # Fine-tuned qwen3 variants (coder, embedding) do not think
    if "qwen3" in name and "coder" not in name and "embed" not in name:
        return True
    return False


def _has_vision_details(info: dict) -> bool:
    """Older servers only hint at vision through the projector or model families."""
    if info.get("projector_info"):
        return True
    details = info.get("details")
    families = details.get("families") if isinstance(details, dict) else None
    if isinstance(families, list):
        return any(
            isinstance(f, str) and ("clip" in f or "llava" in f) for f in families)
    return False


def check_model_capabilities(host: str, port: int, model: str) -> ModelCapabilities:
    """Ask ``/api/show`` what *model* supports.

    Successful answers are cached per ``host:port/model``.  When the server
    cannot be reached every capability is reported as absent and nothing is
    cached.
    """
    key = f"{host}:{port}/{model}"
    with _cache_lock:
        cached = _cache.get(key)
    if cached is not None:
        return cached

    try:
        resp = httpx.post(
            f"{_base_url(host, port)}/api/show",
            json={"model": model},
            timeout=_SHOW_TIMEOUT,
        )
    except (httpx.HTTPError, OSError) as e:
        _logger.warning("Capability lookup for %s failed: %s", key, e)
        return ModelCapabilities()

    if resp.status_code != 200:
        _logger.warning("Capability lookup for %s returned %d", key, resp.status_code)
        return ModelCapabilities()

    try:
        info = resp.json()
    except ValueError:
        info = {}
    reported = info.get("capabilities") if isinstance(info, dict) else None

    if isinstance(reported, list):
        caps = ModelCapabilities(
            thinking="thinking" in reported,
            vision="vision" in reported or _has_vision_details(info),
            tools="tools" in reported,
        )
    else:
        caps = ModelCapabilities(
            thinking=_is_thinking_model_name(model),
            vision=_has_vision_details(info) if isinstance(info, dict) else False,
        )

    _logger.debug("Capabilities for %s: %s", key, caps)
    with _cache_lock:
        _cache[key] = caps
    return caps


def clear_cache() -> None:
    with _cache_lock:
        _cache.clear()
