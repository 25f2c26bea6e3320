"""
Turn a flat list of parent-referencing comments into a nested reply tree.

Works on any comment type through accessor callables; the defaults read the
``id``, ``parent_comment_id`` and ``created_at`` attributes shared by
ForumComment and ContentComment.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Hashable, Iterable, Iterator, Optional, TypeVar

T = TypeVar("T")

IdGetter = Callable[[Any], Hashable]
ParentGetter = Callable[[Any], Optional[Hashable]]
TimeGetter = Callable[[Any], Any]


def _default_id(c: Any) -> Hashable:
    return c.id


def _default_parent(c: Any) -> Hashable | None:
    return c.parent_comment_id


def _default_created(c: Any) -> Any:
    return c.created_at


@dataclass
class ThreadedComment(Generic[T]):
    comment: T
    replies: list["ThreadedComment[T]"] = field(default_factory=list)
    depth: int = 0

    @property
    def total_comments(self) -> int:
        """This comment plus every nested reply."""
        return 1 + sum(r.total_comments for r in self.replies)

    @property
    def direct_reply_count(self) -> int:
        return len(self.replies)


def build_threads(
    comments: Iterable[T],
    *,
    get_id: IdGetter = _default_id,
    get_parent_id: ParentGetter = _default_parent,
    get_created_at: TimeGetter = _default_created,
) -> list[ThreadedComment[T]]:
    """
    Build a forest of ThreadedComment nodes, chronological at every level.

    Comments whose parent is not in the input are promoted to top level
    (a reply to a deleted or unloaded comment stays visible). A comment is
    attached at most once, so parent cycles cannot recurse forever.
    """
    items = list(comments)
    known_ids = {get_id(c) for c in items}

    children: dict[Hashable | None, list[T]] = defaultdict(list)
    for c in items:
        parent = get_parent_id(c)
        if parent is not None and (parent not in known_ids or parent == get_id(c)):
            parent = None
        children[parent].append(c)

    placed: set[Hashable] = set()

    def build(bucket: list[T], depth: int) -> list[ThreadedComment[T]]:
        nodes: list[ThreadedComment[T]] = []
        for c in sorted(bucket, key=get_created_at):
            cid = get_id(c)
            if cid in placed:
                continue
            placed.add(cid)
            nodes.append(ThreadedComment(comment=c, replies=build(children.get(cid, []), depth + 1), depth=depth))
        return nodes

    forest = build(children.get(None, []), 0)

    # Members of a pure parent cycle never hang off the None bucket; surface them as roots.
    leftovers = [c for c in items if get_id(c) not in placed]
    if leftovers:
        forest.extend(build(leftovers, 0))
        forest.sort(key=lambda n: get_created_at(n.comment))
    return forest


def iter_threads(threads: Iterable[ThreadedComment[T]]) -> Iterator[ThreadedComment[T]]:
    """Depth-first walk, parents before replies."""
    for node in threads:
        yield node
        yield from iter_threads(node.replies)


def flatten(threads: Iterable[ThreadedComment[T]]) -> list[tuple[int, T]]:
    """(depth, comment) pairs in display order."""
    return [(n.depth, n.comment) for n in iter_threads(threads)]


def find_comment(
    threads: Iterable[ThreadedComment[T]],
    target_id: Hashable,
    get_id: IdGetter = _default_id,
) -> ThreadedComment[T] | None:
    for node in iter_threads(threads):
        if get_id(node.comment) == target_id:
            return node
    return None


def reply_count(comments: Iterable[T], comment_id: Hashable, get_parent_id: ParentGetter = _default_parent) -> int:
    """Direct replies to ``comment_id`` in a flat list."""
    return sum(1 for c in comments if get_parent_id(c) == comment_id)


def thread_root_id(
    comments: Iterable[T],
    comment_id: Hashable,
    get_id: IdGetter = _default_id,
    get_parent_id: ParentGetter = _default_parent,
) -> Hashable:
    """Walk parent links up to the top-level ancestor of ``comment_id``."""
    parents = {get_id(c): get_parent_id(c) for c in comments}
    current = comment_id
    seen = {current}
    while True:
        parent = parents.get(current)
        if parent is None or parent not in parents or parent in seen:
            return current
        seen.add(parent)
        current = parent


def thread_comment_ids(
    comments: Iterable[T],
    root_id: Hashable,
    get_id: IdGetter = _default_id,
    get_parent_id: ParentGetter = _default_parent,
) -> list[Hashable]:
    """``root_id`` followed by all of its descendants, breadth-first."""
    children: dict[Hashable | None, list[Hashable]] = defaultdict(list)
    for c in comments:
        children[get_parent_id(c)].append(get_id(c))
    out: list[Hashable] = []
    seen: set[Hashable] = set()
    queue = [root_id]
    while queue:
        cid = queue.pop(0)
        if cid in seen:
            continue
        seen.add(cid)
        out.append(cid)
        queue.extend(children.get(cid, []))
    return out
