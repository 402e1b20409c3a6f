from __future__ import annotations

import os

from dotenv import load_dotenv

from .contracts import HarnessSettings
from .http_store import TRANSPORT_PRESETS, TransportConfig, transport_config_from_preset

env_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), ".env")
load_dotenv(env_path)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


DEFAULT_MAX_POLL_ATTEMPTS = 5
DEFAULT_POLL_BACKOFF_MS = 1500
DEFAULT_MAX_CONCURRENT_CELLS = 4
DEFAULT_TRANSPORT_TIMEOUT_MS = 20000
DEFAULT_STORE_PRESET = "utf8_form"

LOG_LEVEL = os.getenv("ROUNDTRIP_LOG_LEVEL", "INFO").strip().upper() or "INFO"


def load_harness_settings() -> HarnessSettings:
    """Harness knobs from the environment; out-of-range values are clamped."""
    timeout_ms = _env_int("ROUNDTRIP_TRANSPORT_TIMEOUT_MS", DEFAULT_TRANSPORT_TIMEOUT_MS)
    return HarnessSettings(
        max_poll_attempts=max(1, _env_int("ROUNDTRIP_MAX_POLL_ATTEMPTS", DEFAULT_MAX_POLL_ATTEMPTS)),
        poll_backoff_ms=max(0, _env_int("ROUNDTRIP_POLL_BACKOFF_MS", DEFAULT_POLL_BACKOFF_MS)),
        max_concurrent_cells=max(1, _env_int("ROUNDTRIP_MAX_CONCURRENT_CELLS", DEFAULT_MAX_CONCURRENT_CELLS)),
        # 0 (or less) turns the per-attempt timeout off.
        transport_timeout_ms=timeout_ms if timeout_ms > 0 else None,
    )


def load_transport_config() -> TransportConfig | None:
    base_url = os.getenv("ROUNDTRIP_STORE_URL", "").strip()
    if not base_url:
        return None
    preset = os.getenv("ROUNDTRIP_STORE_PRESET", DEFAULT_STORE_PRESET).strip().lower()
    if preset not in TRANSPORT_PRESETS:
        preset = DEFAULT_STORE_PRESET
    overrides: dict = {}
    token = os.getenv("ROUNDTRIP_STORE_TOKEN", "").strip()
    if token:
        overrides["headers"] = {"Authorization": f"Bearer {token}"}
    timeout_ms = _env_int("ROUNDTRIP_TRANSPORT_TIMEOUT_MS", DEFAULT_TRANSPORT_TIMEOUT_MS)
    if timeout_ms > 0:
        overrides["timeout_seconds"] = timeout_ms / 1000.0
    return transport_config_from_preset(preset, base_url=base_url, **overrides)
