"""Client configuration: server URL, exclude patterns, upload size limit, poll interval."""

import json
import os
from pathlib import Path
from typing import Any, Dict, List

DEFAULT_BASE_URL = "http://localhost:8080"
DEFAULT_EXCLUDE_PATTERNS = [
    "node_modules/**",
    ".git/**",
    "dist/**",
    "build/**",
    "out/**",
    "*.log",
]
DEFAULT_MAX_UPLOAD_BYTES = 1024 * 1024
DEFAULT_POLL_INTERVAL_SECONDS = 2.0


def _config_dir() -> Path:
    """Platform-specific config directory (no admin). SHARELINK_CONFIG_DIR overrides."""
    override = os.environ.get("SHARELINK_CONFIG_DIR", "").strip()
    if override:
        return Path(override)
    if os.name == "nt":
        base = os.environ.get("APPDATA", os.path.expanduser("~"))
        return Path(base) / "ShareLink"
    if os.environ.get("XDG_CONFIG_HOME"):
        return Path(os.environ["XDG_CONFIG_HOME"]) / "sharelink"
    return Path.home() / ".config" / "sharelink"


def get_config_path() -> Path:
    """Path to config.json."""
    d = _config_dir()
    d.mkdir(parents=True, exist_ok=True)
    return d / "config.json"


def get_log_path() -> Path:
    d = _config_dir()
    d.mkdir(parents=True, exist_ok=True)
    return d / "sharelink.log"


def _load() -> Dict[str, Any]:
    path = get_config_path()
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def _save(key: str, value: Any) -> None:
    data = _load()
    data[key] = value
    get_config_path().write_text(json.dumps(data, indent=2), encoding="utf-8")


def get_base_url() -> str:
    """Server URL: SHARELINK_BASE_URL, then config file, then localhost."""
    env = os.environ.get("SHARELINK_BASE_URL", "").strip()
    if env:
        return env.rstrip("/")
    return (str(_load().get("base_url") or "").strip() or DEFAULT_BASE_URL).rstrip("/")


def set_base_url(url: str) -> None:
    _save("base_url", (url or "").strip())


def get_exclude_patterns() -> List[str]:
    patterns = _load().get("exclude_patterns")
    if isinstance(patterns, list) and all(isinstance(p, str) for p in patterns):
        return patterns
    return list(DEFAULT_EXCLUDE_PATTERNS)


def set_exclude_patterns(patterns: List[str]) -> None:
    _save("exclude_patterns", list(patterns))


def get_max_upload_bytes() -> int:
    """Files larger than this are skipped when uploading a workspace."""
    value = _load().get("max_upload_bytes")
    return value if isinstance(value, int) and value > 0 else DEFAULT_MAX_UPLOAD_BYTES


def get_poll_interval() -> float:
    value = _load().get("poll_interval_seconds")
    if isinstance(value, (int, float)) and value > 0:
        return float(value)
    return DEFAULT_POLL_INTERVAL_SECONDS
