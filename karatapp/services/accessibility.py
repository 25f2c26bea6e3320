"""
Accessibility preferences: font size, dyslexia-friendly text, high contrast and
text-to-speech settings. Persisted as a small JSON file (SETTINGS_PATH).
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any

from karatapp.utils.config import settings_path
from karatapp.utils.logger import get_logger

logger = get_logger(__name__)

SPEECH_RATE_RANGE = (0.1, 1.0)
SPEECH_PITCH_RANGE = (0.5, 2.0)
DYSLEXIA_LETTER_SPACING = 1.2
DYSLEXIA_LINE_HEIGHT = 1.3


class FontSize(str, Enum):
    SMALL = "small"
    NORMAL = "normal"
    LARGE = "large"
    EXTRA_LARGE = "extraLarge"

    @property
    def scale(self) -> float:
        return _FONT_SCALES[self]

    def next(self) -> "FontSize":
        """Cycle small -> normal -> large -> extra large -> small."""
        members = list(FontSize)
        return members[(members.index(self) + 1) % len(members)]


_FONT_SCALES = {
    FontSize.SMALL: 0.85,
    FontSize.NORMAL: 1.0,
    FontSize.LARGE: 1.2,
    FontSize.EXTRA_LARGE: 1.5,
}


def _clamp(value: float, bounds: tuple[float, float]) -> float:
    low, high = bounds
    return max(low, min(high, float(value)))


@dataclass(frozen=True)
class AccessibilitySettings:
    font_size: FontSize = FontSize.NORMAL
    dyslexia_friendly: bool = False
    high_contrast: bool = False
    tts_enabled: bool = False
    speech_rate: float = 0.5
    speech_pitch: float = 1.0
    use_headphones: bool = True

    @property
    def font_scale(self) -> float:
        return self.font_size.scale

    def with_changes(self, **changes: Any) -> "AccessibilitySettings":
        """Copy with changes applied; rate and pitch are clamped to their ranges."""
        if "font_size" in changes:
            changes["font_size"] = FontSize(changes["font_size"])
        if "speech_rate" in changes:
            changes["speech_rate"] = _clamp(changes["speech_rate"], SPEECH_RATE_RANGE)
        if "speech_pitch" in changes:
            changes["speech_pitch"] = _clamp(changes["speech_pitch"], SPEECH_PITCH_RANGE)
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["font_size"] = self.font_size.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AccessibilitySettings":
        """Unknown keys are ignored; invalid values fall back to defaults."""
        base = cls()
        try:
            font_size = FontSize(data.get("font_size", base.font_size.value))
        except ValueError:
            font_size = base.font_size

        def number(key: str, default: float, bounds: tuple[float, float]) -> float:
            try:
                return _clamp(data.get(key, default), bounds)
            except (TypeError, ValueError):
                return default

        return cls(
            font_size=font_size,
            dyslexia_friendly=bool(data.get("dyslexia_friendly", base.dyslexia_friendly)),
            high_contrast=bool(data.get("high_contrast", base.high_contrast)),
            tts_enabled=bool(data.get("tts_enabled", base.tts_enabled)),
            speech_rate=number("speech_rate", base.speech_rate, SPEECH_RATE_RANGE),
            speech_pitch=number("speech_pitch", base.speech_pitch, SPEECH_PITCH_RANGE),
            use_headphones=bool(data.get("use_headphones", base.use_headphones)),
        )

    def text_style(self, base_size: float = 16.0) -> dict[str, float]:
        """Font size, letter spacing and line height to apply to body text."""
        style = {"font_size": round(base_size * self.font_scale, 2), "letter_spacing": 0.0, "line_height": 1.0}
        if self.dyslexia_friendly:
            style["letter_spacing"] = DYSLEXIA_LETTER_SPACING
            style["line_height"] = DYSLEXIA_LINE_HEIGHT
        return style


def load_settings(path: Path | None = None) -> AccessibilitySettings:
    """Settings from disk; defaults when the file is missing or unreadable."""
    path = Path(path) if path is not None else settings_path()
    if not path.is_file():
        return AccessibilitySettings()
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable settings file %s: %s", path, e)
        return AccessibilitySettings()
    if not isinstance(data, dict):
        return AccessibilitySettings()
    return AccessibilitySettings.from_dict(data)


def save_settings(settings: AccessibilitySettings, path: Path | None = None) -> Path:
    path = Path(path) if path is not None else settings_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(settings.to_dict(), f, indent=2)
    logger.debug("Saved accessibility settings to %s", path)
    return path
