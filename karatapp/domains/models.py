"""
Domain records for Karatapp: content entries, forum posts and comments, interactions, roles.

Rows come from the backend as JSON dicts; ``from_row`` tolerates missing
optional columns and ``to_row`` produces the writable subset.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any


_FRACTION_RE = re.compile(r"\.(\d+)(?=(?:[+-]\d{2}(?::?\d{2})?)?$)")
_HOUR_OFFSET_RE = re.compile(r"(\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?[+-]\d{2})$")


def _pad_fraction(match: re.Match[str]) -> str:
    return "." + match.group(1)[:6].ljust(6, "0")


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse an ISO-8601 timestamp (with ``Z`` or offset); None when absent or invalid.

    Postgres trims trailing zeros from fractional seconds and may send a bare
    hour offset, e.g. ``2024-05-01T10:00:56.12345+00``; both are normalised first.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _HOUR_OFFSET_RE.sub(r"\1:00", text)
    text = _FRACTION_RE.sub(_pad_fraction, text)
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _str_list(value: Any) -> list[str]:
    if not value:
        return []
    return [str(v) for v in value]


class ForumCategory(str, Enum):
    GENERAL = "general"
    KATA_REQUESTS = "kataRequests"
    TECHNIQUES = "techniques"
    EVENTS = "events"
    FEEDBACK = "feedback"

    @property
    def display_name(self) -> str:
        return _FORUM_CATEGORY_NAMES[self]

    @classmethod
    def parse(cls, value: Any) -> "ForumCategory":
        for cat in cls:
            if cat.value == value or cat.name == value:
                return cat
        return cls.GENERAL


_FORUM_CATEGORY_NAMES = {
    ForumCategory.GENERAL: "Algemene Discussie",
    ForumCategory.KATA_REQUESTS: "Kata Verzoeken",
    ForumCategory.TECHNIQUES: "Technieken & Tips",
    ForumCategory.EVENTS: "Evenementen & Aankondigingen",
    ForumCategory.FEEDBACK: "App Feedback",
}


class OhyoCategory(str, Enum):
    ALL = "all"
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    OTHER = "other"

    @property
    def display_name(self) -> str:
        return _OHYO_CATEGORY_NAMES[self]

    @classmethod
    def from_style(cls, style: str) -> "OhyoCategory":
        """First category whose display name occurs in the style text; OTHER otherwise."""
        lower = (style or "").lower()
        for cat in cls:
            if cat in (cls.ALL, cls.OTHER):
                continue
            if cat.display_name.lower() in lower:
                return cat
        return cls.OTHER


_OHYO_CATEGORY_NAMES = {
    OhyoCategory.ALL: "Alle",
    OhyoCategory.BASIC: "Basis",
    OhyoCategory.INTERMEDIATE: "Gemiddeld",
    OhyoCategory.ADVANCED: "Gevorderd",
    OhyoCategory.OTHER: "Andere",
}


class UserRole(str, Enum):
    USER = "user"
    MEDIATOR = "mediator"
    HOST = "host"

    @classmethod
    def parse(cls, value: Any) -> "UserRole":
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.USER

    @property
    def can_moderate(self) -> bool:
        return self in (UserRole.MEDIATOR, UserRole.HOST)


@dataclass
class ContentItem:
    """A kata or ohyo entry. Both tables share this shape."""

    id: int
    name: str
    description: str = ""
    style: str = ""
    created_at: datetime = field(default_factory=utc_now)
    image_urls: list[str] = field(default_factory=list)
    video_urls: list[str] = field(default_factory=list)
    order: int = 0

    @classmethod
    def from_row(cls, row: dict[str, Any]):
        created = parse_timestamp(row.get("created_at")) or parse_timestamp(row.get("Time")) or utc_now()
        return cls(
            id=int(row["id"]),
            name=row.get("name") or "",
            description=row.get("description") or "",
            style=row.get("style") or "",
            created_at=created,
            image_urls=_str_list(row.get("image_urls")),
            video_urls=_str_list(row.get("video_urls")),
            order=int(row.get("order") or 0),
        )

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "style": self.style,
            "created_at": self.created_at.isoformat(),
            "video_urls": list(self.video_urls),
            "order": self.order,
        }

    def copy_with(self, **changes: Any):
        return replace(self, **changes)


@dataclass
class Kata(ContentItem):
    pass


@dataclass
class Ohyo(ContentItem):
    @property
    def category(self) -> OhyoCategory:
        return OhyoCategory.from_style(self.style)


@dataclass
class ForumComment:
    id: int
    post_id: int
    content: str
    author_id: str
    author_name: str
    created_at: datetime
    updated_at: datetime
    author_avatar: str | None = None
    image_urls: list[str] = field(default_factory=list)
    file_urls: list[str] = field(default_factory=list)
    parent_comment_id: int | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ForumComment":
        created = parse_timestamp(row.get("created_at")) or utc_now()
        parent = row.get("parent_comment_id")
        return cls(
            id=int(row["id"]),
            post_id=int(row["post_id"]),
            content=row.get("content") or "",
            author_id=str(row.get("author_id") or ""),
            author_name=row.get("author_name") or "Anonymous User",
            author_avatar=row.get("author_avatar"),
            image_urls=_str_list(row.get("image_urls")),
            file_urls=_str_list(row.get("file_urls")),
            created_at=created,
            updated_at=parse_timestamp(row.get("updated_at")) or created,
            parent_comment_id=int(parent) if parent is not None else None,
        )

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "post_id": self.post_id,
            "content": self.content,
            "author_id": self.author_id,
            "author_name": self.author_name,
            "author_avatar": self.author_avatar,
            "image_urls": list(self.image_urls),
            "file_urls": list(self.file_urls),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "parent_comment_id": self.parent_comment_id,
        }


@dataclass
class ForumPost:
    id: int
    title: str
    content: str
    author_id: str
    author_name: str
    category: ForumCategory
    created_at: datetime
    updated_at: datetime
    author_avatar: str | None = None
    image_urls: list[str] = field(default_factory=list)
    file_urls: list[str] = field(default_factory=list)
    is_pinned: bool = False
    is_locked: bool = False
    comment_count: int = 0
    likes_count: int | None = None
    comments: list[ForumComment] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ForumPost":
        created = parse_timestamp(row.get("created_at")) or utc_now()
        comments = [ForumComment.from_row(c) for c in row.get("comments") or []]
        return cls(
            id=int(row["id"]),
            title=row.get("title") or "",
            content=row.get("content") or "",
            author_id=str(row.get("author_id") or ""),
            author_name=row.get("author_name") or "Anonymous",
            author_avatar=row.get("author_avatar"),
            image_urls=_str_list(row.get("image_urls")),
            file_urls=_str_list(row.get("file_urls")),
            category=ForumCategory.parse(row.get("category")),
            created_at=created,
            updated_at=parse_timestamp(row.get("updated_at")) or created,
            is_pinned=bool(row.get("is_pinned") or False),
            is_locked=bool(row.get("is_locked") or False),
            comment_count=int(row.get("comment_count") or len(comments)),
            likes_count=row.get("likes_count"),
            comments=comments,
        )

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "author_id": self.author_id,
            "author_name": self.author_name,
            "author_avatar": self.author_avatar,
            "image_urls": list(self.image_urls),
            "file_urls": list(self.file_urls),
            "category": self.category.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "is_pinned": self.is_pinned,
            "is_locked": self.is_locked,
            "comment_count": self.comment_count,
            "likes_count": self.likes_count,
        }


@dataclass
class ContentComment:
    """Comment on a kata or ohyo; ``target_id`` is the kata_id/ohyo_id column."""

    id: int
    target_id: int
    content: str
    author_id: str
    author_name: str
    created_at: datetime
    updated_at: datetime
    author_avatar: str | None = None
    parent_comment_id: int | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any], target_column: str = "kata_id") -> "ContentComment":
        created = parse_timestamp(row.get("created_at")) or utc_now()
        parent = row.get("parent_comment_id")
        return cls(
            id=int(row["id"]),
            target_id=int(row.get(target_column) or 0),
            content=row.get("content") or "",
            author_id=str(row.get("author_id") or ""),
            author_name=row.get("author_name") or "Anonymous User",
            author_avatar=row.get("author_avatar"),
            created_at=created,
            updated_at=parse_timestamp(row.get("updated_at")) or created,
            parent_comment_id=int(parent) if parent is not None else None,
        )


@dataclass
class Like:
    id: int
    user_id: str
    target_type: str
    target_id: int
    created_at: datetime
    user_name: str = "Unknown User"

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Like":
        return cls(
            id=int(row["id"]),
            user_id=str(row.get("user_id") or ""),
            target_type=row.get("target_type") or "",
            target_id=int(row.get("target_id") or 0),
            created_at=parse_timestamp(row.get("created_at")) or utc_now(),
            user_name=row.get("user_name") or "Unknown User",
        )


@dataclass
class Favorite:
    id: int
    user_id: str
    target_type: str
    target_id: int
    created_at: datetime

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Favorite":
        return cls(
            id=int(row["id"]),
            user_id=str(row.get("user_id") or ""),
            target_type=row.get("target_type") or "",
            target_id=int(row.get("target_id") or 0),
            created_at=parse_timestamp(row.get("created_at")) or utc_now(),
        )
