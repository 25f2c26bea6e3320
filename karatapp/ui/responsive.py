"""
Width-based layout rules: screen classes, grid columns, content width, font scale.

The page has no device metrics in Streamlit, so callers pass the viewport
width (and orientation) they want to lay out for.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Optional, TypeVar

T = TypeVar("T")

MOBILE_BREAKPOINT = 600
FOLDABLE_BREAKPOINT = 840
LARGE_FOLDABLE_BREAKPOINT = 1000
TABLET_BREAKPOINT = 1024
DESKTOP_BREAKPOINT = 1440


class ScreenSize(str, Enum):
    MOBILE = "mobile"
    TABLET = "tablet"
    FOLDABLE = "foldable"
    LARGE_FOLDABLE = "largeFoldable"
    DESKTOP = "desktop"
    LARGE_DESKTOP = "largeDesktop"


def screen_size(width: float) -> ScreenSize:
    if width < MOBILE_BREAKPOINT:
        return ScreenSize.MOBILE
    if width < FOLDABLE_BREAKPOINT:
        return ScreenSize.TABLET
    if width < LARGE_FOLDABLE_BREAKPOINT:
        return ScreenSize.FOLDABLE
    if width < TABLET_BREAKPOINT:
        return ScreenSize.LARGE_FOLDABLE
    if width < DESKTOP_BREAKPOINT:
        return ScreenSize.DESKTOP
    return ScreenSize.LARGE_DESKTOP


def responsive_value(
    width: float,
    mobile: T,
    tablet: Optional[T] = None,
    foldable: Optional[T] = None,
    large_foldable: Optional[T] = None,
    desktop: Optional[T] = None,
    large_desktop: Optional[T] = None,
) -> T:
    """
    Pick the value for ``width``'s screen class.

    A missing value falls back to the next smaller class that has one, down to ``mobile``.
    """
    cascade = [mobile, tablet, foldable, large_foldable, desktop, large_desktop]
    idx = list(ScreenSize).index(screen_size(width))
    for value in reversed(cascade[: idx + 1]):
        if value is not None:
            return value
    return mobile


def grid_columns(width: float, landscape: bool = False, max_columns: Optional[int] = None) -> int:
    columns = responsive_value(
        width,
        mobile=2 if landscape else 1,
        tablet=3 if landscape else 2,
        foldable=2,
        large_foldable=3,
        desktop=3,
        large_desktop=4,
    )
    if max_columns is not None:
        columns = max(1, min(columns, max_columns))
    return columns


def max_content_width(width: float, dual_screen: bool = False) -> float:
    return responsive_value(
        width,
        mobile=math.inf,
        tablet=800.0,
        foldable=600.0 if dual_screen else 700.0,
        large_foldable=800.0 if dual_screen else 900.0,
        desktop=1000.0,
        large_desktop=1200.0,
    )


def font_scale(width: float) -> float:
    return responsive_value(width, mobile=1.0, tablet=1.1, desktop=1.2, large_desktop=1.3)


def responsive_font_size(width: float, base_size: float, accessibility_scale: float = 1.0) -> float:
    """Base size scaled for the screen class and the user's font-size preference."""
    return round(base_size * font_scale(width) * accessibility_scale, 2)
