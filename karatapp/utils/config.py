"""Environment-backed settings for Karatapp, read through python-dotenv.

Values come from the process environment first and from ``<project root>/.env``
second. Modules call the named accessors at the bottom (``supabase_url()``,
``cache_dir()``, ...) at the moment they need a value, so tests can
monkeypatch the environment without reloading anything.
"""

import os
from pathlib import Path
from typing import Callable, TypeVar

from dotenv import load_dotenv

T = TypeVar("T")

_env_loaded = False


def _project_root() -> Path:
    """Directory holding the karatapp package and the optional .env file."""
    return Path(__file__).resolve().parent.parent.parent


def load_config(force: bool = False) -> None:
    """Read ``.env`` once. Variables already in the environment are kept."""
    global _env_loaded
    if _env_loaded and not force:
        return
    load_dotenv(_project_root() / ".env", override=False)
    _env_loaded = True


def _raw(key: str) -> str:
    load_config()
    return os.getenv(key, "").strip()


def get_required(key: str) -> str:
    """
    Value of ``key``; blank counts as missing.

    Raises:
        ValueError: The variable is not set.
    """
    val = _raw(key)
    if not val:
        raise ValueError(f"{key} is not set. Add it to .env or export it before starting Karatapp.")
    return val


def get_optional(key: str, default: str = "") -> str:
    return _raw(key) or default


def _parsed(key: str, default: T, parse: Callable[[str], T]) -> T:
    raw = _raw(key)
    if not raw:
        return default
    try:
        return parse(raw)
    except ValueError:
        return default


def get_optional_int(key: str, default: int) -> int:
    """Integer value of ``key``; ``default`` when unset or not a number."""
    return _parsed(key, default, int)


def get_optional_float(key: str, default: float) -> float:
    return _parsed(key, default, float)


# --- named settings ---

def supabase_url() -> str:
    """Required: project URL, e.g. https://abc.supabase.co (no trailing slash)."""
    return get_required("SUPABASE_URL").rstrip("/")


def supabase_anon_key() -> str:
    """Required: anon (public) API key."""
    return get_required("SUPABASE_ANON_KEY")


def kata_images_bucket() -> str:
    return get_optional("KATA_IMAGES_BUCKET", "kata_images")


def ohyo_images_bucket() -> str:
    return get_optional("OHYO_IMAGES_BUCKET", "ohyo_images")


def kata_videos_bucket() -> str:
    return get_optional("KATA_VIDEOS_BUCKET", "kata_videos")


def forum_images_bucket() -> str:
    return get_optional("FORUM_IMAGES_BUCKET", "forum_images")


def signed_url_expiry() -> int:
    """Optional: signed URL lifetime in seconds. Default 7200 (2 hours)."""
    return get_optional_int("SIGNED_URL_EXPIRY", 7200)


def http_timeout() -> float:
    """Optional: per-request HTTP timeout in seconds. Default 10."""
    return get_optional_float("HTTP_TIMEOUT_SECONDS", 10.0)


def offline_cache_hours() -> int:
    """Optional: how long cached content stays valid offline. Default 24."""
    return get_optional_int("OFFLINE_CACHE_HOURS", 24)


def cache_dir() -> Path:
    """Optional: offline cache directory. Default data/cache under project root."""
    raw = get_optional("CACHE_DIR", "")
    return Path(raw) if raw else _project_root() / "data" / "cache"


def settings_path() -> Path:
    """Optional: accessibility settings file. Default data/settings.json."""
    raw = get_optional("SETTINGS_PATH", "")
    return Path(raw) if raw else _project_root() / "data" / "settings.json"


def project_root() -> Path:
    """Project root directory."""
    return _project_root()
