"""
Tests for the pure HTML/CSS helpers in views: accessibility_css, _comment_html.
"""

from __future__ import annotations

from datetime import datetime, timezone

from karatapp.services.accessibility import AccessibilitySettings, FontSize
from karatapp.ui.views import _comment_html, accessibility_css


def test_accessibility_css_default() -> None:
    css = accessibility_css(AccessibilitySettings(), viewport_width=1280)
    assert "font-size: 19.2px;" in css
    assert "OpenDyslexic" not in css
    assert "background-color: #000" not in css


def test_accessibility_css_dyslexia_and_contrast() -> None:
    settings = AccessibilitySettings(font_size=FontSize.LARGE, dyslexia_friendly=True, high_contrast=True)
    css = accessibility_css(settings, viewport_width=400)
    assert "font-size: 19.2px;" in css
    assert "letter-spacing: 1.2px;" in css
    assert "OpenDyslexic" in css
    assert "background-color: #000" in css


def test_comment_html_indents_and_escapes() -> None:
    when = datetime(2024, 5, 1, 10, 5, tzinfo=timezone.utc)
    out = _comment_html("<b>Anna</b>", when, "x < y", depth=2)
    assert "margin-left:48px" in out
    assert "&lt;b&gt;Anna&lt;/b&gt;" in out
    assert "x &lt; y" in out
    assert "01-05-2024 10:05" in out


def test_comment_html_indent_is_capped() -> None:
    assert "margin-left:144px" in _comment_html("a", "now", "c", depth=20)
