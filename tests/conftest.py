"""
In-memory stand-ins for the backend client: Postgrest-like tables, a storage
bucket and password auth. Failures can be queued per operation to exercise
retry and offline paths.
"""

from __future__ import annotations

import copy
import re
from pathlib import Path
from typing import Any

import pytest

from karatapp.infrastructure.backend.supabase_client import BackendError
from karatapp.infrastructure.cache.offline_cache import OfflineCache


def _like_to_regex(pattern: str) -> re.Pattern[str]:
    parts = [re.escape(p) for p in re.split(r"[*%]", pattern)]
    return re.compile("^" + ".*".join(parts) + "$", re.IGNORECASE | re.DOTALL)


class FakeQuery:
    def __init__(self, client: "FakeClient", table: str) -> None:
        self._client = client
        self._table = table
        self._filters: list[tuple[str, str, Any]] = []
        self._order: list[tuple[str, bool]] = []
        self._limit: int | None = None
        self._offset = 0

    @property
    def rows(self) -> list[dict[str, Any]]:
        return self._client.tables.setdefault(self._table, [])

    def select(self, columns: str = "*") -> "FakeQuery":
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append((column, "eq", value))
        return self

    def neq(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append((column, "neq", value))
        return self

    def is_(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append((column, "eq", value))
        return self

    def in_(self, column: str, values: Any) -> "FakeQuery":
        self._filters.append((column, "in", list(values)))
        return self

    def ilike(self, column: str, pattern: str) -> "FakeQuery":
        self._filters.append((column, "ilike", pattern))
        return self

    def or_(self, expression: str) -> "FakeQuery":
        self._filters.append(("", "or", expression))
        return self

    def order(self, column: str, ascending: bool = True) -> "FakeQuery":
        self._order.append((column, ascending))
        return self

    def limit(self, count: int) -> "FakeQuery":
        self._limit = count
        return self

    def range(self, start: int, end: int) -> "FakeQuery":
        self._offset = start
        self._limit = end - start + 1
        return self

    def _matches(self, row: dict[str, Any]) -> bool:
        for column, op, value in self._filters:
            if op == "eq" and row.get(column) != value:
                return False
            if op == "neq" and row.get(column) == value:
                return False
            if op == "in" and row.get(column) not in value:
                return False
            if op == "ilike" and not _like_to_regex(value).match(str(row.get(column) or "")):
                return False
            if op == "or":
                alternatives = [part.split(".", 2) for part in value.split(",")]
                if not any(
                    _like_to_regex(pat).match(str(row.get(col) or ""))
                    for col, _, pat in alternatives
                ):
                    return False
        return True

    def _matched(self) -> list[dict[str, Any]]:
        return [r for r in self.rows if self._matches(r)]

    def execute(self) -> list[dict[str, Any]]:
        self._client.calls.append(("select", self._table))
        self._client.maybe_fail("select")
        rows = [copy.deepcopy(r) for r in self._matched()]
        for column, ascending in reversed(self._order):
            rows.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=not ascending)
        end = None if self._limit is None else self._offset + self._limit
        return rows[self._offset:end]

    def maybe_single(self) -> dict[str, Any] | None:
        rows = self.execute()
        return rows[0] if rows else None

    def single(self) -> dict[str, Any]:
        row = self.maybe_single()
        if row is None:
            raise BackendError(f"Row in {self._table} not found", status_code=404)
        return row

    def insert(self, rows: dict[str, Any] | list[dict[str, Any]]) -> list[dict[str, Any]]:
        self._client.calls.append(("insert", self._table))
        self._client.maybe_fail("insert")
        batch = rows if isinstance(rows, list) else [rows]
        out = []
        for row in batch:
            row = dict(row)
            if row.get("id") is None:
                row["id"] = max((int(r["id"]) for r in self.rows if isinstance(r.get("id"), int)), default=0) + 1
            row.setdefault("created_at", f"2024-01-01T00:00:{len(self.rows):02d}+00:00")
            self.rows.append(row)
            out.append(copy.deepcopy(row))
        return out

    def update(self, values: dict[str, Any]) -> list[dict[str, Any]]:
        self._client.calls.append(("update", self._table))
        self._client.maybe_fail("update")
        out = []
        for row in self._matched():
            row.update(values)
            out.append(copy.deepcopy(row))
        return out

    def delete(self) -> list[dict[str, Any]]:
        self._client.calls.append(("delete", self._table))
        self._client.maybe_fail("delete")
        doomed = self._matched()
        self._client.tables[self._table] = [r for r in self.rows if r not in doomed]
        return [copy.deepcopy(r) for r in doomed]


class FakeBucket:
    def __init__(self, storage: "FakeStorage", name: str) -> None:
        self._storage = storage
        self.bucket = name

    @property
    def objects(self) -> dict[str, bytes]:
        return self._storage.objects.setdefault(self.bucket, {})

    def _op(self, name: str) -> None:
        self._storage.calls.append((name, self.bucket))
        queue = self._storage.failures.get(name)
        if queue:
            raise queue.pop(0)

    def upload(self, path: str, data: bytes, content_type: str | None = None, upsert: bool = False) -> str:
        self._op("upload")
        if path in self.objects and not upsert:
            raise BackendError("The resource already exists", status_code=409)
        self.objects[path] = bytes(data)
        return path

    def download(self, path: str) -> bytes:
        self._op("download")
        if path not in self.objects:
            raise BackendError("Object not found", status_code=404)
        return self.objects[path]

    def list(self, prefix: str = "", limit: int = 1000) -> list[dict[str, Any]]:
        self._op("list")
        folder = prefix.rstrip("/") + "/" if prefix else ""
        names = []
        for path in self.objects:
            if path.startswith(folder) and "/" not in path[len(folder):]:
                names.append(path[len(folder):])
        order = self._storage.listing_order or sorted
        return [{"name": n, "id": f"obj-{n}"} for n in order(names)][:limit]

    def remove(self, paths: list[str]) -> list[dict[str, Any]]:
        self._op("remove")
        removed = []
        for p in paths:
            if self.objects.pop(p, None) is not None:
                removed.append({"name": p})
        return removed

    def get_public_url(self, path: str) -> str:
        return f"https://fake.supabase.co/storage/v1/object/public/{self.bucket}/{path}"

    def create_signed_url(self, path: str, expires_in: int) -> str:
        self._op("sign")
        return f"https://fake.supabase.co/storage/v1/object/sign/{self.bucket}/{path}?token=t{expires_in}"


class FakeStorage:
    def __init__(self) -> None:
        self.objects: dict[str, dict[str, bytes]] = {}
        self.buckets: dict[str, dict[str, Any]] = {}
        self.failures: dict[str, list[BaseException]] = {}
        self.calls: list[tuple[str, str]] = []
        self.listing_order: Any = None

    def fail(self, op: str, *errors: BaseException) -> None:
        self.failures.setdefault(op, []).extend(errors)

    def from_(self, bucket: str) -> FakeBucket:
        return FakeBucket(self, bucket)

    def get_bucket(self, bucket: str) -> dict[str, Any]:
        if bucket not in self.buckets:
            raise BackendError("Bucket not found", status_code=404)
        return self.buckets[bucket]

    def list_buckets(self) -> list[dict[str, Any]]:
        return list(self.buckets.values())

    def create_bucket(self, bucket: str, public: bool = True, allowed_mime_types: list[str] | None = None) -> dict[str, Any]:
        self.buckets[bucket] = {"id": bucket, "name": bucket, "public": public}
        return self.buckets[bucket]


class FakeAuth:
    def __init__(self, client: "FakeClient") -> None:
        self._client = client
        self.passwords: dict[str, str] = {}

    def sign_in_with_password(self, email: str, password: str) -> dict[str, Any]:
        self._client.maybe_fail("auth")
        if self.passwords.get(email) != password:
            raise BackendError("Invalid login credentials", status_code=400)
        user = {"id": f"user-{email}", "email": email, "user_metadata": {}}
        self._client.sign_in_as(user)
        return {"access_token": "token", "user": user}

    def sign_up(self, email: str, password: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
        self._client.maybe_fail("auth")
        self.passwords[email] = password
        user = {"id": f"user-{email}", "email": email, "user_metadata": data or {}}
        self._client.sign_in_as(user)
        return {"access_token": "token", "user": user}

    def update_user(self, data: dict[str, Any]) -> dict[str, Any]:
        user = dict(self._client.current_user or {})
        user["user_metadata"] = {**(user.get("user_metadata") or {}), **data}
        self._client.current_user = user
        return user

    def sign_out(self) -> None:
        self._client.access_token = None
        self._client.current_user = None

    @property
    def current_user(self) -> dict[str, Any] | None:
        return self._client.current_user


class FakeClient:
    """Drop-in for SupabaseClient in service tests."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.storage = FakeStorage()
        self.auth = FakeAuth(self)
        self.access_token: str | None = None
        self.current_user: dict[str, Any] | None = None
        self.failures: dict[str, list[BaseException]] = {}
        self.calls: list[tuple[str, str]] = []

    def fail(self, op: str, *errors: BaseException) -> None:
        self.failures.setdefault(op, []).extend(errors)

    def maybe_fail(self, op: str) -> None:
        queue = self.failures.get(op)
        if queue:
            raise queue.pop(0)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def sign_in_as(self, user: dict[str, Any]) -> None:
        self.current_user = user
        self.access_token = "token"

    @property
    def user_id(self) -> str | None:
        return (self.current_user or {}).get("id")


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def offline_cache(tmp_path: Path) -> OfflineCache:
    return OfflineCache(directory=tmp_path / "cache", validity_hours=24)


@pytest.fixture
def no_sleep() -> list[float]:
    """Collects requested waits instead of sleeping."""
    return []


@pytest.fixture
def make_image(tmp_path: Path):
    """Factory writing a small fake image file under tmp_path."""

    def make(name: str, size: int = 64) -> Path:
        path = tmp_path / name
        path.write_bytes(b"\x89PNG" + b"0" * max(0, size - 4))
        return path

    return make
