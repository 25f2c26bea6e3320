"""Streamlit render helpers for catalog cards, forum posts and comment threads."""

from __future__ import annotations

import html
from typing import Any, Iterable, Sequence

import streamlit as st

from karatapp.domains.comment_threading import ThreadedComment, iter_threads
from karatapp.domains.models import ContentItem, ForumPost
from karatapp.services.accessibility import AccessibilitySettings
from karatapp.ui.responsive import grid_columns, responsive_font_size
from karatapp.utils.error_messages import user_friendly_message
from karatapp.utils.logger import get_logger

logger = get_logger(__name__)

INDENT_PX_PER_LEVEL = 24
MAX_INDENT_LEVEL = 6


def accessibility_css(settings: AccessibilitySettings, viewport_width: float = 1280) -> str:
    """CSS block applying font scale, dyslexia spacing and high contrast."""
    style = settings.text_style()
    size = responsive_font_size(viewport_width, 16.0, settings.font_scale)
    rules = [
        f"font-size: {size}px;",
        f"letter-spacing: {style['letter_spacing']}px;",
        f"line-height: {style['line_height'] * 1.5};",
    ]
    if settings.dyslexia_friendly:
        rules.append("font-family: 'OpenDyslexic', 'Comic Sans MS', sans-serif;")
    css = f".stMarkdown p, .stMarkdown li {{ {' '.join(rules)} }}"
    if settings.high_contrast:
        css += " .stApp { background-color: #000; color: #fff; } .stMarkdown a { color: #ff0; }"
    return f"<style>{css}</style>"


def apply_accessibility(settings: AccessibilitySettings, viewport_width: float = 1280) -> None:
    st.markdown(accessibility_css(settings, viewport_width), unsafe_allow_html=True)


def show_error(error: BaseException, context: str = "") -> None:
    """Log the technical error and show the user-facing message."""
    logger.error("%s%s", f"{context}: " if context else "", error)
    st.error(user_friendly_message(error))


def render_content_card(item: ContentItem) -> None:
    st.subheader(item.name)
    if item.style:
        st.caption(item.style)
    if item.image_urls:
        st.image(item.image_urls[0], use_container_width=True)
        if len(item.image_urls) > 1:
            with st.expander(f"Alle afbeeldingen ({len(item.image_urls)})"):
                st.image(list(item.image_urls[1:]), width=160)
    if item.description:
        st.markdown(item.description)
    for url in item.video_urls:
        st.video(url)


def render_content_grid(items: Sequence[ContentItem], viewport_width: float = 1280, landscape: bool = True) -> None:
    if not items:
        st.info("Geen resultaten gevonden.")
        return
    columns = grid_columns(viewport_width, landscape=landscape)
    for start in range(0, len(items), columns):
        cols = st.columns(columns)
        for col, item in zip(cols, items[start : start + columns]):
            with col:
                with st.container(border=True):
                    render_content_card(item)


def _comment_html(author: str, created: Any, content: str, depth: int) -> str:
    indent = min(depth, MAX_INDENT_LEVEL) * INDENT_PX_PER_LEVEL
    when = created.strftime("%d-%m-%Y %H:%M") if hasattr(created, "strftime") else str(created)
    return (
        f'<div style="margin-left:{indent}px;border-left:2px solid #ddd;padding-left:8px;margin-bottom:8px">'
        f"<strong>{html.escape(author)}</strong> <small>{when}</small><br>"
        f"{html.escape(content)}</div>"
    )


def render_comment_threads(threads: Iterable[ThreadedComment[Any]]) -> None:
    """Comments depth-first, replies indented under their parent."""
    rendered = 0
    for node in iter_threads(threads):
        c = node.comment
        st.markdown(_comment_html(c.author_name, c.created_at, c.content, node.depth), unsafe_allow_html=True)
        rendered += 1
    if rendered == 0:
        st.caption("Nog geen reacties.")


def render_post_header(post: ForumPost) -> None:
    badges = []
    if post.is_pinned:
        badges.append("📌")
    if post.is_locked:
        badges.append("🔒")
    prefix = " ".join(badges)
    st.markdown(f"### {prefix} {post.title}".strip())
    st.caption(
        f"{post.category.display_name} · {post.author_name} · {post.created_at.strftime('%d-%m-%Y %H:%M')}"
        f" · {post.comment_count} reacties"
    )


def render_post(post: ForumPost, threads: Iterable[ThreadedComment[Any]] = ()) -> None:
    render_post_header(post)
    st.markdown(post.content)
    if post.image_urls:
        st.image(list(post.image_urls), width=240)
    st.divider()
    render_comment_threads(threads)
