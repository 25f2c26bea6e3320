"""
Forum posts and threaded comments.

Permissions:
    - posts: author or host may edit/delete
    - comments: only the author may edit; comment author, post author or host may delete
    - pin/lock: host or mediator
Deleting a comment removes all of its replies, deepest first.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Callable, Iterable

from karatapp.domains.comment_threading import ThreadedComment, build_threads, thread_comment_ids
from karatapp.domains.models import ForumCategory, ForumComment, ForumPost, utc_now
from karatapp.infrastructure.backend.supabase_client import BackendError, SupabaseClient
from karatapp.infrastructure.storage.asset_store import AssetStore
from karatapp.services.auth_service import display_name
from karatapp.services.role_service import RoleService, require_user
from karatapp.utils.logger import get_logger
from karatapp.utils.retry import execute_with_config, network_retry_config

logger = get_logger(__name__)

POSTS_TABLE = "forum_posts"
COMMENTS_TABLE = "forum_comments"
DEFAULT_PAGE_SIZE = 50


def _escape_like(term: str) -> str:
    # Postgrest "or" syntax treats these as separators.
    return term.replace(",", " ").replace("(", " ").replace(")", " ").strip()


class ForumService:
    """
    Args:
        client: Backend client.
        roles: Role lookups; created from ``client`` when None.
        assets: Optional image store for post attachments (folder per post id).
        sleep: Wait function handed to the retry helper.
    """

    def __init__(
        self,
        client: SupabaseClient,
        roles: RoleService | None = None,
        assets: AssetStore | None = None,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        self._client = client
        self._roles = roles or RoleService(client)
        self._assets = assets
        self._retry = network_retry_config()
        self._sleep = sleep

    def _call(self, label: str, op: Callable[[], Any]) -> Any:
        return execute_with_config(op, self._retry, sleep=self._sleep, label=f"forum: {label}")

    def _post_row(self, post_id: int, columns: str = "*") -> dict[str, Any]:
        row = self._call(
            "get post",
            lambda: self._client.table(POSTS_TABLE).select(columns).eq("id", post_id).maybe_single(),
        )
        if row is None:
            raise BackendError("Post not found", status_code=404)
        return row

    def _comment_row(self, comment_id: int) -> dict[str, Any]:
        row = self._call(
            "get comment",
            lambda: self._client.table(COMMENTS_TABLE).select("*").eq("id", comment_id).maybe_single(),
        )
        if row is None:
            raise BackendError("Comment not found", status_code=404)
        return row

    # --- posts ---

    def list_posts(
        self,
        category: ForumCategory | None = None,
        search: str | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> list[ForumPost]:
        """Pinned posts first, then newest first. ``search`` matches title, content and author."""
        query = self._client.table(POSTS_TABLE).select("*")
        if category is not None:
            query = query.eq("category", category.value)
        term = _escape_like(search or "")
        if term:
            query = query.or_(
                f"title.ilike.*{term}*,content.ilike.*{term}*,author_name.ilike.*{term}*"
            )
        query = query.order("is_pinned", ascending=False).order("created_at", ascending=False)
        query = query.range(offset, offset + max(1, limit) - 1)
        rows = self._call("list posts", query.execute)
        return [ForumPost.from_row(r) for r in rows]

    def get_post(self, post_id: int) -> ForumPost:
        return ForumPost.from_row(self._post_row(post_id))

    def get_comments(self, post_id: int, limit: int | None = None, offset: int = 0) -> list[ForumComment]:
        """Comments of a post, oldest first; paginated when ``limit`` is given."""
        query = self._client.table(COMMENTS_TABLE).select("*").eq("post_id", post_id).order("created_at")
        if limit is not None:
            query = query.range(offset, offset + max(1, limit) - 1)
        rows = self._call("list comments", query.execute)
        return [ForumComment.from_row(r) for r in rows]

    def get_post_with_comments(self, post_id: int) -> tuple[ForumPost, list[ThreadedComment[ForumComment]]]:
        """The post (with its flat comment list attached) and the comment forest."""
        post = self.get_post(post_id)
        comments = self.get_comments(post_id)
        post.comments = comments
        post.comment_count = len(comments)
        return post, build_threads(comments)

    def create_post(
        self,
        title: str,
        content: str,
        category: ForumCategory = ForumCategory.GENERAL,
        images: Iterable[Path | str] = (),
    ) -> ForumPost:
        user = require_user(self._client)
        title, content = title.strip(), content.strip()
        if not title or not content:
            raise ValueError("Title and content are required")
        now = utc_now().isoformat()
        row = {
            "title": title,
            "content": content,
            "category": category.value,
            "author_id": user["id"],
            "author_name": display_name(user),
            "author_avatar": (user.get("user_metadata") or {}).get("avatar_url"),
            "created_at": now,
            "updated_at": now,
            "is_pinned": False,
            "is_locked": False,
        }
        created = self._call("create post", lambda: self._client.table(POSTS_TABLE).insert(row))
        post = ForumPost.from_row({**created[0], "comment_count": 0})

        files = list(images)
        if files and self._assets is not None:
            urls = self._assets.upload_assets(files, post.id)
            self._call(
                "attach images",
                lambda: self._client.table(POSTS_TABLE).eq("id", post.id).update({"image_urls": urls}),
            )
            post.image_urls = urls
        logger.info("Post %d created by %s", post.id, user["id"])
        return post

    def _require_author_or_host(self, author_id: str, action: str) -> dict[str, Any]:
        user = require_user(self._client)
        if author_id != user["id"] and not self._roles.is_host():
            raise PermissionError(f"You do not have permission to {action}")
        return user

    def update_post(
        self,
        post_id: int,
        title: str,
        content: str,
        category: ForumCategory | None = None,
    ) -> ForumPost:
        existing = self._post_row(post_id, "id, author_id")
        self._require_author_or_host(str(existing.get("author_id")), "edit this post")
        values: dict[str, Any] = {
            "title": title.strip(),
            "content": content.strip(),
            "updated_at": utc_now().isoformat(),
        }
        if category is not None:
            values["category"] = category.value
        rows = self._call("update post", lambda: self._client.table(POSTS_TABLE).eq("id", post_id).update(values))
        return ForumPost.from_row(rows[0]) if rows else self.get_post(post_id)

    def delete_post(self, post_id: int) -> None:
        """Delete a post, its comments and its stored images."""
        existing = self._post_row(post_id, "id, author_id")
        self._require_author_or_host(str(existing.get("author_id")), "delete this post")
        self._call("delete comments", lambda: self._client.table(COMMENTS_TABLE).eq("post_id", post_id).delete())
        self._call("delete post", lambda: self._client.table(POSTS_TABLE).eq("id", post_id).delete())
        if self._assets is not None:
            try:
                self._assets.delete_all_assets(post_id)
            except Exception as e:
                logger.warning("Images of post %d not removed: %s", post_id, e)
        logger.info("Post %d deleted", post_id)

    def _toggle_flag(self, post_id: int, column: str) -> ForumPost:
        require_user(self._client)
        if not self._roles.can_moderate():
            raise PermissionError("Only hosts and mediators can moderate posts")
        row = self._post_row(post_id, f"id, {column}")
        values = {column: not bool(row.get(column)), "updated_at": utc_now().isoformat()}
        rows = self._call(f"toggle {column}", lambda: self._client.table(POSTS_TABLE).eq("id", post_id).update(values))
        return ForumPost.from_row(rows[0]) if rows else self.get_post(post_id)

    def toggle_pin(self, post_id: int) -> ForumPost:
        return self._toggle_flag(post_id, "is_pinned")

    def toggle_lock(self, post_id: int) -> ForumPost:
        return self._toggle_flag(post_id, "is_locked")

    # --- comments ---

    def add_comment(self, post_id: int, content: str, parent_comment_id: int | None = None) -> ForumComment:
        """
        Raises:
            PermissionError: Not signed in, or the post is locked.
            BackendError: The post (or parent comment) does not exist.
            ValueError: Empty content.
        """
        user = require_user(self._client)
        content = content.strip()
        if not content:
            raise ValueError("Comment cannot be empty")
        post = self._post_row(post_id, "id, is_locked")
        if post.get("is_locked"):
            raise PermissionError("This post is locked and cannot receive new comments")
        if parent_comment_id is not None:
            parent = self._comment_row(parent_comment_id)
            if int(parent.get("post_id") or 0) != post_id:
                raise ValueError("Parent comment belongs to another post")

        row: dict[str, Any] = {
            "post_id": post_id,
            "content": content,
            "author_id": user["id"],
            "author_name": display_name(user),
            "author_avatar": (user.get("user_metadata") or {}).get("avatar_url"),
        }
        if parent_comment_id is not None:
            row["parent_comment_id"] = parent_comment_id
        created = self._call("add comment", lambda: self._client.table(COMMENTS_TABLE).insert(row))
        return ForumComment.from_row(created[0])

    def update_comment(self, comment_id: int, content: str) -> ForumComment:
        user = require_user(self._client)
        existing = self._comment_row(comment_id)
        if str(existing.get("author_id")) != user["id"]:
            raise PermissionError("You can only edit your own comments")
        content = content.strip()
        if not content:
            raise ValueError("Comment cannot be empty")
        values = {"content": content, "updated_at": utc_now().isoformat()}
        rows = self._call("update comment", lambda: self._client.table(COMMENTS_TABLE).eq("id", comment_id).update(values))
        return ForumComment.from_row(rows[0] if rows else {**existing, **values})

    def delete_comment(self, comment_id: int) -> list[int]:
        """
        Delete a comment and every reply below it.

        Returns:
            Deleted comment ids, replies before their parents.
        """
        user = require_user(self._client)
        comment = self._comment_row(comment_id)
        post_id = int(comment["post_id"])
        allowed = str(comment.get("author_id")) == user["id"]
        if not allowed:
            post = self._client.table(POSTS_TABLE).select("id, author_id").eq("id", post_id).maybe_single()
            allowed = bool(post) and str(post.get("author_id")) == user["id"]
        if not allowed:
            allowed = self._roles.is_host()
        if not allowed:
            raise PermissionError("You do not have permission to delete this comment")

        siblings = self.get_comments(post_id)
        ids = list(reversed(thread_comment_ids(siblings, comment_id)))
        for cid in ids:
            self._call("delete comment", lambda cid=cid: self._client.table(COMMENTS_TABLE).eq("id", cid).delete())
        logger.info("Deleted comment %d with %d replies", comment_id, len(ids) - 1)
        return ids
