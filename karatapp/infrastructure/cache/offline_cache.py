"""
Disk-backed JSON cache used as the offline fallback for backend reads.

Each entry is one file under the cache directory holding the payload and the
time it was stored. Offline fallbacks read through ``get_valid``, which treats
entries older than the validity window (or a caller's tighter limit) as
missing; ``get`` returns a payload regardless of age.
"""

from __future__ import annotations

import hashlib
import json
import time
from pathlib import Path
from typing import Any

from karatapp.utils.config import cache_dir, offline_cache_hours
from karatapp.utils.logger import get_logger

logger = get_logger(__name__)


def cache_key(*parts: Any) -> str:
    """Stable file name for a logical key, e.g. cache_key("kata_images", 12)."""
    raw = "|".join(str(p) for p in parts)
    h = hashlib.sha256(raw.encode()).hexdigest()[:16]
    prefix = str(parts[0]) if parts else "entry"
    safe_prefix = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in prefix)[:32]
    return f"{safe_prefix}_{h}.json"


class OfflineCache:
    """
    Args:
        directory: Where entries live; defaults to CACHE_DIR.
        validity_hours: How long an entry counts as fresh; defaults to OFFLINE_CACHE_HOURS.
        clock: Time source returning epoch seconds (tests pass a fake).
    """

    def __init__(
        self,
        directory: Path | None = None,
        validity_hours: float | None = None,
        clock: Any = time.time,
    ) -> None:
        self._dir = Path(directory) if directory is not None else cache_dir()
        hours = validity_hours if validity_hours is not None else offline_cache_hours()
        self._validity_seconds = float(hours) * 3600
        self._clock = clock

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, key: str) -> Path:
        return self._dir / key

    def _read(self, key: str) -> dict[str, Any] | None:
        path = self._path(key)
        if not path.is_file():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                entry = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Offline cache read failed for %s: %s", key, e)
            return None
        if not isinstance(entry, dict) or "payload" not in entry:
            return None
        return entry

    def put(self, key: str, payload: Any) -> None:
        """Store ``payload`` (JSON-serialisable). Failures are logged, never raised."""
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            tmp = self._path(key + ".tmp")
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump({"stored_at": self._clock(), "payload": payload}, f, ensure_ascii=False, indent=2)
            tmp.replace(self._path(key))
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Offline cache write failed for %s: %s", key, e)

    def get(self, key: str) -> Any | None:
        """Payload regardless of age, or None."""
        entry = self._read(key)
        return None if entry is None else entry["payload"]

    def is_valid(self, key: str, max_age_seconds: float | None = None) -> bool:
        """Whether the entry is younger than the validity window (and ``max_age_seconds`` if given)."""
        entry = self._read(key)
        if entry is None:
            return False
        try:
            age = self._clock() - float(entry.get("stored_at", 0))
        except (TypeError, ValueError):
            return False
        limit = self._validity_seconds
        if max_age_seconds is not None:
            limit = min(limit, float(max_age_seconds))
        return 0 <= age < limit

    def get_valid(self, key: str, max_age_seconds: float | None = None) -> Any | None:
        """Payload if still fresh; expired entries are removed."""
        if not self.is_valid(key, max_age_seconds):
            if self._path(key).exists():
                self.remove(key)
            return None
        return self.get(key)

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Offline cache delete failed for %s: %s", key, e)

    def clear(self) -> int:
        """Remove every entry; returns how many files were deleted."""
        if not self._dir.is_dir():
            return 0
        removed = 0
        for path in self._dir.glob("*.json"):
            try:
                path.unlink()
                removed += 1
            except OSError as e:
                logger.warning("Offline cache delete failed for %s: %s", path.name, e)
        return removed
