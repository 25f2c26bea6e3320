"""
Thin requests-based client for the hosted backend (Supabase): Postgrest tables,
object storage and password auth.

Only the endpoints Karatapp uses are covered. HTTP failures surface as
BackendError whose message carries the status code and backend message, so the
string-based predicates in karatapp.utils.retry can classify them. Connection
errors and timeouts are left as requests exceptions.
"""

from __future__ import annotations

from typing import Any, Iterable
from urllib.parse import quote

import requests

from karatapp.utils.config import http_timeout, supabase_anon_key, supabase_url
from karatapp.utils.logger import get_logger

logger = get_logger(__name__)

TOKEN_PATH = "/auth/v1/token"


class BackendError(RuntimeError):
    """HTTP-level failure reported by the backend."""

    def __init__(self, message: str, status_code: int | None = None, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.message} (status {self.status_code})"


def _error_from_response(response: requests.Response) -> BackendError:
    status = response.status_code
    details: Any = None
    message = ""
    try:
        details = response.json()
    except ValueError:
        details = None
    if isinstance(details, dict):
        message = str(
            details.get("message")
            or details.get("error_description")
            or details.get("msg")
            or details.get("error")
            or ""
        )
    if not message:
        message = (getattr(response, "text", "") or "").strip()[:300] or response.reason or "request failed"
    if status == 404 and "not found" not in message.lower():
        message = f"{message}: not found"
    elif status == 403 and "denied" not in message.lower():
        message = f"{message}: permission denied"
    return BackendError(message, status_code=status, details=details)


def _format_value(value: Any) -> str:
    if value is True:
        return "true"
    if value is False:
        return "false"
    if value is None:
        return "null"
    return str(value)


class SupabaseClient:
    """
    Session holder for one backend project.

    Args:
        url: Project URL; defaults to SUPABASE_URL.
        api_key: Anon key; defaults to SUPABASE_ANON_KEY.
        timeout: Per-request timeout in seconds; defaults to HTTP_TIMEOUT_SECONDS.
        session: Optional requests.Session (tests pass a mock).
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        session: Any = None,
    ) -> None:
        self.url = (url or supabase_url()).rstrip("/")
        self.api_key = api_key or supabase_anon_key()
        self.timeout = timeout if timeout is not None else http_timeout()
        self.session = session or requests.Session()
        self.access_token: str | None = None
        self.refresh_token: str | None = None
        self.current_user: dict[str, Any] | None = None
        self.auth = AuthClient(self)
        self.storage = StorageClient(self)

    def headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        h = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
        }
        if extra:
            h.update(extra)
        return h

    def _send(self, method: str, url: str, params: Any, json: Any, data: Any, headers: dict[str, str] | None) -> requests.Response:
        return self.session.request(
            method,
            url,
            params=params,
            json=json,
            data=data,
            headers=self.headers(headers),
            timeout=self.timeout,
        )

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Any = None,
        json: Any = None,
        data: Any = None,
        headers: dict[str, str] | None = None,
    ) -> requests.Response:
        """
        Send one request. An expired access token is refreshed once and the
        request repeated with the new token.
        """
        url = f"{self.url}{path}"
        r = self._send(method, url, params, json, data, headers)
        if r.status_code == 401 and self.refresh_token and path != TOKEN_PATH:
            err = _error_from_response(r)
            if "expired" in err.message.lower():
                logger.info("Access token expired; refreshing session")
                self.auth.refresh_session()
                r = self._send(method, url, params, json, data, headers)
        if r.status_code >= 400:
            err = _error_from_response(r)
            logger.debug("%s %s failed: %s", method, path, err)
            raise err
        return r

    def table(self, name: str) -> "TableQuery":
        return TableQuery(self, name)

    @property
    def user_id(self) -> str | None:
        return (self.current_user or {}).get("id")


class TableQuery:
    """
    Postgrest query builder. Filters accumulate; ``execute``, ``single``,
    ``maybe_single``, ``insert``, ``update`` and ``delete`` send the request.

        client.table("forum_posts").select("*").eq("category", "general") \\
            .order("is_pinned", ascending=False).range(0, 49).execute()
    """

    def __init__(self, client: SupabaseClient, table: str) -> None:
        self._client = client
        self._table = table
        self._columns = "*"
        self._filters: list[tuple[str, str]] = []
        self._order: list[str] = []
        self._limit: int | None = None
        self._offset: int | None = None

    @property
    def _path(self) -> str:
        return f"/rest/v1/{quote(self._table)}"

    def select(self, columns: str = "*") -> "TableQuery":
        self._columns = columns
        return self

    def eq(self, column: str, value: Any) -> "TableQuery":
        if value is None:
            return self.is_(column, None)
        self._filters.append((column, f"eq.{_format_value(value)}"))
        return self

    def neq(self, column: str, value: Any) -> "TableQuery":
        self._filters.append((column, f"neq.{_format_value(value)}"))
        return self

    def is_(self, column: str, value: Any) -> "TableQuery":
        self._filters.append((column, f"is.{_format_value(value)}"))
        return self

    def in_(self, column: str, values: Iterable[Any]) -> "TableQuery":
        joined = ",".join(_format_value(v) for v in values)
        self._filters.append((column, f"in.({joined})"))
        return self

    def ilike(self, column: str, pattern: str) -> "TableQuery":
        self._filters.append((column, f"ilike.{pattern}"))
        return self

    def or_(self, expression: str) -> "TableQuery":
        """Raw Postgrest ``or`` expression, e.g. "title.ilike.*kata*,content.ilike.*kata*"."""
        self._filters.append(("or", f"({expression})"))
        return self

    def order(self, column: str, ascending: bool = True) -> "TableQuery":
        self._order.append(f"{column}.{'asc' if ascending else 'desc'}")
        return self

    def limit(self, count: int) -> "TableQuery":
        self._limit = count
        return self

    def range(self, start: int, end: int) -> "TableQuery":
        """Inclusive row range, as in Postgrest."""
        self._offset = start
        self._limit = end - start + 1
        return self

    def _params(self, with_select: bool = True) -> list[tuple[str, str]]:
        params: list[tuple[str, str]] = []
        if with_select:
            params.append(("select", self._columns))
        params.extend(self._filters)
        if self._order:
            params.append(("order", ",".join(self._order)))
        if self._limit is not None:
            params.append(("limit", str(self._limit)))
        if self._offset:
            params.append(("offset", str(self._offset)))
        return params

    def execute(self) -> list[dict[str, Any]]:
        r = self._client.request("GET", self._path, params=self._params())
        data = r.json()
        return data if isinstance(data, list) else [data]

    def maybe_single(self) -> dict[str, Any] | None:
        rows = self.limit(2).execute() if self._limit is None else self.execute()
        if len(rows) > 1:
            raise BackendError(f"Expected at most one row from {self._table}, got {len(rows)}", status_code=406)
        return rows[0] if rows else None

    def single(self) -> dict[str, Any]:
        row = self.maybe_single()
        if row is None:
            raise BackendError(f"Row in {self._table} not found", status_code=404)
        return row

    def insert(self, rows: dict[str, Any] | list[dict[str, Any]]) -> list[dict[str, Any]]:
        r = self._client.request(
            "POST",
            self._path,
            params=[("select", self._columns)],
            json=rows,
            headers={"Prefer": "return=representation", "Content-Type": "application/json"},
        )
        return _rows_or_empty(r)

    def update(self, values: dict[str, Any]) -> list[dict[str, Any]]:
        if not self._filters:
            raise ValueError(f"Refusing to update every row of {self._table}; add a filter")
        r = self._client.request(
            "PATCH",
            self._path,
            params=self._params(),
            json=values,
            headers={"Prefer": "return=representation", "Content-Type": "application/json"},
        )
        return _rows_or_empty(r)

    def delete(self) -> list[dict[str, Any]]:
        if not self._filters:
            raise ValueError(f"Refusing to delete every row of {self._table}; add a filter")
        r = self._client.request(
            "DELETE",
            self._path,
            params=self._params(),
            headers={"Prefer": "return=representation"},
        )
        return _rows_or_empty(r)


def _rows_or_empty(r: requests.Response) -> list[dict[str, Any]]:
    if not (getattr(r, "content", b"") or b"").strip():
        return []
    data = r.json()
    if isinstance(data, list):
        return data
    return [data] if data else []


class StorageClient:
    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    def from_(self, bucket: str) -> "StorageBucket":
        return StorageBucket(self._client, bucket)

    def get_bucket(self, bucket: str) -> dict[str, Any]:
        return self._client.request("GET", f"/storage/v1/bucket/{quote(bucket)}").json()

    def list_buckets(self) -> list[dict[str, Any]]:
        return self._client.request("GET", "/storage/v1/bucket").json()

    def create_bucket(self, bucket: str, public: bool = True, allowed_mime_types: list[str] | None = None) -> dict[str, Any]:
        body: dict[str, Any] = {"id": bucket, "name": bucket, "public": public}
        if allowed_mime_types:
            body["allowed_mime_types"] = allowed_mime_types
        return self._client.request("POST", "/storage/v1/bucket", json=body).json()


class StorageBucket:
    """Object operations on one bucket. Paths are ``<folder>/<file name>``."""

    def __init__(self, client: SupabaseClient, bucket: str) -> None:
        self._client = client
        self.bucket = bucket

    def _object_path(self, path: str) -> str:
        return f"/storage/v1/object/{quote(self.bucket)}/{quote(path.lstrip('/'))}"

    def upload(self, path: str, data: bytes, content_type: str | None = None, upsert: bool = False) -> str:
        headers = {
            "Content-Type": content_type or "application/octet-stream",
            "x-upsert": "true" if upsert else "false",
        }
        self._client.request("POST", self._object_path(path), data=data, headers=headers)
        return path

    def download(self, path: str) -> bytes:
        return self._client.request("GET", self._object_path(path)).content

    def list(self, prefix: str = "", limit: int = 1000) -> list[dict[str, Any]]:
        body = {
            "prefix": prefix,
            "limit": limit,
            "offset": 0,
            "sortBy": {"column": "name", "order": "asc"},
        }
        data = self._client.request("POST", f"/storage/v1/object/list/{quote(self.bucket)}", json=body).json()
        return data if isinstance(data, list) else []

    def remove(self, paths: list[str]) -> list[dict[str, Any]]:
        if not paths:
            return []
        r = self._client.request("DELETE", f"/storage/v1/object/{quote(self.bucket)}", json={"prefixes": paths})
        return _rows_or_empty(r)

    def get_public_url(self, path: str) -> str:
        return f"{self._client.url}/storage/v1/object/public/{quote(self.bucket)}/{quote(path.lstrip('/'))}"

    def create_signed_url(self, path: str, expires_in: int) -> str:
        r = self._client.request(
            "POST",
            f"/storage/v1/object/sign/{quote(self.bucket)}/{quote(path.lstrip('/'))}",
            json={"expiresIn": expires_in},
        )
        signed = (r.json() or {}).get("signedURL") or (r.json() or {}).get("signedUrl")
        if not signed:
            raise BackendError(f"No signed URL returned for {path}")
        if signed.startswith("http"):
            return signed
        return f"{self._client.url}/storage/v1{signed}"


class AuthClient:
    """
    Password auth. A successful sign-in switches the client to the user's
    access token and keeps the refresh token for renewing it.
    """

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    def _apply_session(self, session: dict[str, Any]) -> None:
        self._client.access_token = session.get("access_token")
        self._client.refresh_token = session.get("refresh_token") or None
        self._client.current_user = session.get("user") or self._client.current_user

    def sign_in_with_password(self, email: str, password: str) -> dict[str, Any]:
        r = self._client.request(
            "POST",
            TOKEN_PATH,
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        session = r.json()
        self._apply_session(session)
        logger.info("Signed in as %s", (session.get("user") or {}).get("email", email))
        return session

    def refresh_session(self) -> dict[str, Any]:
        """Exchange the stored refresh token for a new access token."""
        token = self._client.refresh_token
        if not token:
            raise BackendError("No session to refresh; please sign in again", status_code=401)
        r = self._client.request(
            "POST",
            TOKEN_PATH,
            params={"grant_type": "refresh_token"},
            json={"refresh_token": token},
        )
        session = r.json()
        self._apply_session(session)
        return session

    def sign_up(self, email: str, password: str, data: dict[str, Any] | None = None) -> dict[str, Any]:
        body: dict[str, Any] = {"email": email, "password": password}
        if data:
            body["data"] = data
        result = self._client.request("POST", "/auth/v1/signup", json=body).json()
        if result.get("access_token"):
            self._apply_session(result)
        return result

    def update_user(self, data: dict[str, Any]) -> dict[str, Any]:
        """Merge ``data`` into the signed-in user's metadata."""
        user = self._client.request("PUT", "/auth/v1/user", json={"data": data}).json()
        self._client.current_user = user
        return user

    def sign_out(self) -> None:
        try:
            if self._client.access_token:
                self._client.request("POST", "/auth/v1/logout")
        finally:
            self._client.access_token = None
            self._client.refresh_token = None
            self._client.current_user = None

    @property
    def current_user(self) -> dict[str, Any] | None:
        return self._client.current_user
