"""
Tests for building reply trees from flat comment lists.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from karatapp.domains.comment_threading import (
    build_threads,
    find_comment,
    flatten,
    reply_count,
    thread_comment_ids,
    thread_root_id,
)
from karatapp.domains.models import ForumComment

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@dataclass
class C:
    id: int
    parent_comment_id: int | None
    minute: int

    @property
    def created_at(self) -> datetime:
        return T0 + timedelta(minutes=self.minute)


def test_chain_depths() -> None:
    threads = build_threads([C(3, 2, 3), C(1, None, 1), C(2, 1, 2)])
    assert len(threads) == 1
    a = threads[0]
    b = a.replies[0]
    c = b.replies[0]
    assert (a.comment.id, a.depth) == (1, 0)
    assert (b.comment.id, b.depth) == (2, 1)
    assert (c.comment.id, c.depth) == (3, 2)
    assert a.total_comments == 3
    assert a.direct_reply_count == 1


def test_chronological_at_every_level() -> None:
    comments = [
        C(10, None, 30),
        C(11, None, 10),
        C(12, None, 20),
        C(20, 11, 50),
        C(21, 11, 40),
    ]
    threads = build_threads(comments)
    assert [n.comment.id for n in threads] == [11, 12, 10]
    assert [n.comment.id for n in threads[0].replies] == [21, 20]


def test_orphan_reply_is_promoted_to_top_level() -> None:
    threads = build_threads([C(1, None, 1), C(5, 999, 2)])
    assert [n.comment.id for n in threads] == [1, 5]
    assert threads[1].depth == 0


def test_parent_cycle_terminates() -> None:
    threads = build_threads([C(1, 2, 1), C(2, 1, 2), C(3, None, 0)])
    ids = [cid for _, c in flatten(threads) for cid in [c.id]]
    assert sorted(ids) == [1, 2, 3]
    assert threads[0].comment.id == 3


def test_self_parent_is_top_level() -> None:
    threads = build_threads([C(1, 1, 0)])
    assert len(threads) == 1 and threads[0].replies == []


def test_flatten_is_depth_first() -> None:
    comments = [C(1, None, 0), C(2, 1, 1), C(3, None, 2), C(4, 2, 3)]
    assert [(d, c.id) for d, c in flatten(build_threads(comments))] == [(0, 1), (1, 2), (2, 4), (0, 3)]


def test_find_and_counts() -> None:
    comments = [C(1, None, 0), C(2, 1, 1), C(3, 1, 2), C(4, 3, 3)]
    threads = build_threads(comments)
    node = find_comment(threads, 3)
    assert node is not None and node.depth == 1 and node.total_comments == 2
    assert find_comment(threads, 42) is None
    assert reply_count(comments, 1) == 2
    assert thread_root_id(comments, 4) == 1
    assert thread_comment_ids(comments, 1) == [1, 2, 3, 4]
    assert thread_comment_ids(comments, 3) == [3, 4]


def test_forum_comments_work_with_default_accessors() -> None:
    rows = [
        {"id": 1, "post_id": 9, "content": "root", "created_at": "2024-05-01T10:00:00Z"},
        {"id": 2, "post_id": 9, "content": "reply", "created_at": "2024-05-01T10:05:00Z", "parent_comment_id": 1},
    ]
    threads = build_threads([ForumComment.from_row(r) for r in rows])
    assert threads[0].comment.content == "root"
    assert threads[0].replies[0].comment.content == "reply"
