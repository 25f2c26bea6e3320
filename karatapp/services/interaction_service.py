"""
Comments on kata/ohyo entries, likes and favorites.

Likes and favorites share one shape: a row per (user_id, target_type,
target_id) in the ``likes`` / ``favorites`` tables. Toggling inserts the row
when absent and deletes it when present.
"""

from __future__ import annotations

import time
from typing import Any, Callable

from karatapp.domains.comment_threading import ThreadedComment, build_threads
from karatapp.domains.models import ContentComment, Favorite, Like, utc_now
from karatapp.infrastructure.backend.supabase_client import BackendError, SupabaseClient
from karatapp.services.auth_service import display_name
from karatapp.services.role_service import RoleService, require_user
from karatapp.utils.logger import get_logger
from karatapp.utils.retry import execute_with_config, network_retry_config

logger = get_logger(__name__)

LIKES_TABLE = "likes"
FAVORITES_TABLE = "favorites"

TARGET_TYPES = ("kata", "ohyo", "forum_post")
COMMENT_TABLES = {"kata": ("kata_comments", "kata_id"), "ohyo": ("ohyo_comments", "ohyo_id")}


def _check_target(target_type: str) -> str:
    if target_type not in TARGET_TYPES:
        raise ValueError(f"Unknown target type {target_type!r}; expected one of {', '.join(TARGET_TYPES)}")
    return target_type


def _comment_table(target_type: str) -> tuple[str, str]:
    try:
        return COMMENT_TABLES[target_type]
    except KeyError:
        raise ValueError(f"Comments are not supported on {target_type!r}") from None


class InteractionService:
    def __init__(
        self,
        client: SupabaseClient,
        roles: RoleService | None = None,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        self._client = client
        self._roles = roles or RoleService(client)
        self._retry = network_retry_config()
        self._sleep = sleep

    def _call(self, label: str, op: Callable[[], Any]) -> Any:
        return execute_with_config(op, self._retry, sleep=self._sleep, label=label)

    # --- comments ---

    def get_comments(self, target_type: str, target_id: int) -> list[ContentComment]:
        table, column = _comment_table(target_type)
        rows = self._call(
            f"{table} list",
            self._client.table(table).select("*").eq(column, target_id).order("created_at").execute,
        )
        return [ContentComment.from_row(r, target_column=column) for r in rows]

    def get_comment_threads(self, target_type: str, target_id: int) -> list[ThreadedComment[ContentComment]]:
        return build_threads(self.get_comments(target_type, target_id))

    def add_comment(
        self,
        target_type: str,
        target_id: int,
        content: str,
        parent_comment_id: int | None = None,
    ) -> ContentComment:
        table, column = _comment_table(target_type)
        user = require_user(self._client)
        content = content.strip()
        if not content:
            raise ValueError("Comment cannot be empty")
        now = utc_now().isoformat()
        row: dict[str, Any] = {
            column: target_id,
            "content": content,
            "author_id": user["id"],
            "author_name": display_name(user),
            "author_avatar": (user.get("user_metadata") or {}).get("avatar_url"),
            "created_at": now,
            "updated_at": now,
        }
        if parent_comment_id is not None:
            row["parent_comment_id"] = parent_comment_id
        created = self._call(f"{table} insert", lambda: self._client.table(table).insert(row))
        return ContentComment.from_row(created[0], target_column=column)

    def _owned_comment(self, table: str, comment_id: int, action: str) -> dict[str, Any]:
        user = require_user(self._client)
        row = self._client.table(table).select("id, author_id").eq("id", comment_id).maybe_single()
        if row is None:
            raise BackendError("Comment not found", status_code=404)
        if str(row.get("author_id")) != user["id"] and not self._roles.can_moderate():
            raise PermissionError(f"You do not have permission to {action} this comment")
        return row

    def update_comment(self, target_type: str, comment_id: int, content: str) -> ContentComment:
        table, column = _comment_table(target_type)
        self._owned_comment(table, comment_id, "edit")
        content = content.strip()
        if not content:
            raise ValueError("Comment cannot be empty")
        values = {"content": content, "updated_at": utc_now().isoformat()}
        rows = self._call(f"{table} update", lambda: self._client.table(table).eq("id", comment_id).update(values))
        if not rows:
            raise BackendError("Comment not found", status_code=404)
        return ContentComment.from_row(rows[0], target_column=column)

    def delete_comment(self, target_type: str, comment_id: int) -> None:
        table, _ = _comment_table(target_type)
        self._owned_comment(table, comment_id, "delete")
        self._call(f"{table} delete", lambda: self._client.table(table).eq("id", comment_id).delete())

    # --- likes and favorites ---

    def _find(self, table: str, target_type: str, target_id: int, user_id: str) -> dict[str, Any] | None:
        return (
            self._client.table(table)
            .select("id")
            .eq("target_type", target_type)
            .eq("target_id", target_id)
            .eq("user_id", user_id)
            .limit(1)
            .maybe_single()
        )

    def _toggle(self, table: str, target_type: str, target_id: int) -> bool:
        _check_target(target_type)
        user = require_user(self._client)
        existing = self._call(f"{table} lookup", lambda: self._find(table, target_type, target_id, user["id"]))
        if existing:
            self._call(f"{table} delete", lambda: self._client.table(table).eq("id", existing["id"]).delete())
            return False
        self._call(f"{table} insert", lambda: self._client.table(table).insert({
            "user_id": user["id"],
            "target_type": target_type,
            "target_id": target_id,
            "created_at": utc_now().isoformat(),
        }))
        return True

    def toggle_like(self, target_type: str, target_id: int) -> bool:
        """Like or unlike; returns True when the target is now liked."""
        return self._toggle(LIKES_TABLE, target_type, target_id)

    def toggle_favorite(self, target_type: str, target_id: int) -> bool:
        """Add or remove a favorite; returns True when the target is now a favorite."""
        return self._toggle(FAVORITES_TABLE, target_type, target_id)

    def _has(self, table: str, target_type: str, target_id: int) -> bool:
        user_id = self._client.user_id
        if not user_id:
            return False
        return self._find(table, _check_target(target_type), target_id, user_id) is not None

    def is_liked(self, target_type: str, target_id: int) -> bool:
        return self._has(LIKES_TABLE, target_type, target_id)

    def is_favorite(self, target_type: str, target_id: int) -> bool:
        return self._has(FAVORITES_TABLE, target_type, target_id)

    def get_likes(self, target_type: str, target_id: int) -> list[Like]:
        rows = self._call(
            "likes list",
            self._client.table(LIKES_TABLE)
            .select("*")
            .eq("target_type", _check_target(target_type))
            .eq("target_id", target_id)
            .order("created_at", ascending=False)
            .execute,
        )
        return [Like.from_row(r) for r in rows]

    def like_count(self, target_type: str, target_id: int) -> int:
        return len(self.get_likes(target_type, target_id))

    def user_favorites(self, target_type: str | None = None) -> list[Favorite]:
        """The signed-in user's favorites, newest first, optionally of one target type."""
        user = require_user(self._client)
        query = self._client.table(FAVORITES_TABLE).select("*").eq("user_id", user["id"])
        if target_type is not None:
            query = query.eq("target_type", _check_target(target_type))
        rows = self._call("favorites list", query.order("created_at", ascending=False).execute)
        return [Favorite.from_row(r) for r in rows]

    def user_favorite_ids(self, target_type: str) -> list[int]:
        return [f.target_id for f in self.user_favorites(target_type)]
