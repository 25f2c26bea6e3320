"""
Media file rules: supported formats, size limits, ordered file names, validation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

VIDEO_FORMATS: tuple[str, ...] = ("mp4", "mov", "avi", "mkv", "webm", "m4v")
IMAGE_FORMATS: tuple[str, ...] = ("jpg", "jpeg", "png", "gif", "webp", "heic")

MAX_VIDEO_BYTES = 50 * 1024 * 1024
MAX_IMAGE_BYTES = 10 * 1024 * 1024

ORDER_WIDTH = 3

# "<entity>_<NNN>_<kind>.<ext>", e.g. "12_003_image.jpg"
_ORDERED_NAME_RE = re.compile(r"^(?P<entity>[^_/]+)_(?P<order>\d+)_(?P<kind>[a-z]+)\.[A-Za-z0-9]+$")
# Legacy "kata_<entity>_<i>_<millis>.jpg" names written by older clients.
_LEGACY_NAME_RE = re.compile(r"^[a-z]+_[^_]+_(?P<order>\d+)_\d+\.[A-Za-z0-9]+$")


def file_extension(path: str) -> str | None:
    name = path.rsplit("/", 1)[-1]
    if "." not in name:
        return None
    return name.rsplit(".", 1)[-1].lower() or None


def is_video_file(path: str) -> bool:
    return file_extension(path) in VIDEO_FORMATS


def is_image_file(path: str) -> bool:
    return file_extension(path) in IMAGE_FORMATS


def media_kind(path: str) -> str | None:
    if is_image_file(path):
        return "image"
    if is_video_file(path):
        return "video"
    return None


def format_file_size(num_bytes: int) -> str:
    if num_bytes < 1024:
        return f"{num_bytes} B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.1f} KB"
    if num_bytes < 1024 * 1024 * 1024:
        return f"{num_bytes / (1024 * 1024):.1f} MB"
    return f"{num_bytes / (1024 * 1024 * 1024):.1f} GB"


def format_duration(duration: timedelta | float) -> str:
    """MM:SS, or HH:MM:SS when at least one hour."""
    total = int(duration.total_seconds() if isinstance(duration, timedelta) else duration)
    hours, rem = divmod(total, 3600)
    minutes, seconds = divmod(rem, 60)
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def quality_label(num_bytes: int) -> str:
    """Rough quality estimate from file size."""
    if num_bytes < 5 * 1024 * 1024:
        return "Low"
    if num_bytes < 25 * 1024 * 1024:
        return "Medium"
    if num_bytes < 50 * 1024 * 1024:
        return "High"
    return "Very High"


def ordered_file_name(entity_id: Any, order: int, original_name: str, kind: str = "image") -> str:
    """Build a name that sorts by order index, e.g. ordered_file_name(12, 3, "a.PNG") -> "12_003_image.png"."""
    default_ext = "mp4" if kind == "video" else "jpg"
    ext = file_extension(original_name) or default_ext
    return f"{entity_id}_{order:0{ORDER_WIDTH}d}_{kind}.{ext}"


def parse_order_index(name: str) -> int | None:
    """Order index encoded in a stored file name, or None if the name carries none."""
    base = name.rsplit("/", 1)[-1]
    m = _ORDERED_NAME_RE.match(base) or _LEGACY_NAME_RE.match(base)
    if not m:
        return None
    return int(m.group("order"))


def is_valid_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def file_name_from_url(url: str) -> str | None:
    """Last path segment of a URL (query string ignored)."""
    try:
        path = urlparse(url).path
    except ValueError:
        return None
    segment = path.rstrip("/").rsplit("/", 1)[-1]
    return unquote(segment) or None


@dataclass
class ValidationResult:
    is_valid: bool = False
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    size_bytes: int | None = None
    size_label: str | None = None
    quality: str | None = None


def validate_file_for_upload(path: Path | str, kind: str | None = None) -> ValidationResult:
    """
    Check that a local file can be uploaded as an image or video.

    Args:
        path: Local file path.
        kind: "image" or "video"; inferred from the extension when None.

    Returns:
        ValidationResult; errors stop at the first failed check.
    """
    result = ValidationResult()
    p = Path(path)
    if not p.is_file():
        result.errors.append(f"File does not exist: {p}")
        return result

    kind = kind or media_kind(p.name)
    formats = VIDEO_FORMATS if kind == "video" else IMAGE_FORMATS
    ext = file_extension(p.name)
    if kind is None or ext not in formats:
        result.errors.append(
            f"Unsupported file format. Supported formats: {', '.join(VIDEO_FORMATS + IMAGE_FORMATS if kind is None else formats)}"
        )
        return result

    size = p.stat().st_size
    if size == 0:
        result.errors.append(f"File is empty: {p.name}")
        return result
    limit = MAX_VIDEO_BYTES if kind == "video" else MAX_IMAGE_BYTES
    if size > limit:
        result.errors.append(f"File is too large. Maximum size: {format_file_size(limit)}")
        return result
    if size > limit * 0.8:
        result.warnings.append("Large file may take longer to upload and load")

    result.is_valid = True
    result.size_bytes = size
    result.size_label = format_file_size(size)
    result.quality = quality_label(size) if kind == "video" else None
    return result
