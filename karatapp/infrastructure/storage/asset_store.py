"""
Upload, order, fetch and reorder media assets in remote object storage.

Layout inside a bucket:

    <entity_id>/<entity_id>_000_image.jpg
    <entity_id>/<entity_id>_001_image.png
    <entity_id>/_order.json          {"files": [...], "updated_at": ...}

The manifest is the source of truth for order. Without it the zero-padded
index in the file name is used, and files carrying no index keep listing order
after the indexed ones. Every network call goes through the retry helper with
the image predicate, so "not found" and "permission denied" fail fast.
"""

from __future__ import annotations

import json
import mimetypes
import time
from pathlib import Path
from typing import Any, Callable, Iterable, TypeVar

from karatapp.infrastructure.backend.supabase_client import BackendError, SupabaseClient
from karatapp.infrastructure.cache.offline_cache import OfflineCache, cache_key
from karatapp.utils.config import signed_url_expiry
from karatapp.utils.logger import get_logger
from karatapp.utils.media import (
    file_name_from_url,
    media_kind,
    ordered_file_name,
    parse_order_index,
    validate_file_for_upload,
)
from karatapp.utils.retry import (
    RetryConfig,
    execute_with_config,
    image_retry_config,
    is_network_error,
)

logger = get_logger(__name__)

T = TypeVar("T")

MANIFEST_NAME = "_order.json"
STAGING_PREFIX = "reorder_"
TEMP_FOLDERS = ("temp_upload", "temp_processing", "temp_backup")


def _is_not_found(error: BaseException) -> bool:
    return getattr(error, "status_code", None) in (400, 404) or "not found" in str(error).lower()


def explain_storage_error(error: BaseException, bucket: str) -> BaseException:
    """Rewrite common storage failures into actionable messages; other errors pass through."""
    text = str(error).lower()
    status = getattr(error, "status_code", None)
    if "bucket" in text and "not found" in text:
        return BackendError(
            f"Storage bucket not found. Please create the {bucket} bucket in your backend dashboard.",
            status_code=status,
        )
    if "row-level security" in text or "unauthorized" in text or status in (401, 403):
        return BackendError("Storage access denied. Please check your storage policies.", status_code=status)
    return error


class AssetStore:
    """
    Ordered media storage for one bucket.

    Args:
        client: Backend client.
        bucket: Bucket name, e.g. "kata_images".
        kind: "image" or "video"; used for file names and listing filters.
        cache: Offline cache for fetched URL lists; a default one is created when None.
        retry_config: Defaults to image_retry_config().
        use_signed_urls: Signed URLs for private buckets, falling back to public URLs.
        sleep: Wait function handed to the retry helper.
    """

    def __init__(
        self,
        client: SupabaseClient,
        bucket: str,
        *,
        kind: str = "image",
        cache: OfflineCache | None = None,
        retry_config: RetryConfig | None = None,
        use_signed_urls: bool = True,
        url_expiry: int | None = None,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        self._client = client
        self.bucket = bucket
        self.kind = kind
        self._cache = cache if cache is not None else OfflineCache()
        self._retry = retry_config or image_retry_config()
        self._use_signed_urls = use_signed_urls
        self._url_expiry = url_expiry if url_expiry is not None else signed_url_expiry()
        self._sleep = sleep
        self._bucket_checked = False

    # --- plumbing ---

    @property
    def _storage(self):
        return self._client.storage.from_(self.bucket)

    def _call(self, label: str, op: Callable[[], T]) -> T:
        return execute_with_config(op, self._retry, sleep=self._sleep, label=f"{self.bucket}: {label}")

    def _cache_key(self, entity_id: Any) -> str:
        return cache_key(self.bucket, entity_id)

    @staticmethod
    def _folder(entity_id: Any) -> str:
        return str(entity_id)

    def _object_path(self, entity_id: Any, name: str) -> str:
        return f"{self._folder(entity_id)}/{name}"

    def ensure_bucket(self) -> None:
        """Create the bucket if it does not exist yet. Checked once per store."""
        if self._bucket_checked:
            return
        try:
            self._call("get bucket", lambda: self._client.storage.get_bucket(self.bucket))
        except BackendError as e:
            if not _is_not_found(e):
                raise explain_storage_error(e, self.bucket) from e
            logger.info("Bucket %s missing; creating it", self.bucket)
            mime = ["video/*"] if self.kind == "video" else ["image/*"]
            self._call("create bucket", lambda: self._client.storage.create_bucket(self.bucket, public=False, allowed_mime_types=mime))
        self._bucket_checked = True

    def url_for(self, entity_id: Any, name: str) -> str:
        path = self._object_path(entity_id, name)
        if self._use_signed_urls:
            try:
                return self._call("sign url", lambda: self._storage.create_signed_url(path, self._url_expiry))
            except BackendError as e:
                logger.warning("Signed URL failed for %s, using public URL: %s", path, e)
        return self._storage.get_public_url(path)

    # --- manifest ---

    def read_manifest(self, entity_id: Any) -> list[str] | None:
        """Ordered file names from the manifest, or None when there is none."""
        path = self._object_path(entity_id, MANIFEST_NAME)
        try:
            raw = self._call("read manifest", lambda: self._storage.download(path))
        except BackendError as e:
            if _is_not_found(e):
                return None
            raise
        try:
            data = json.loads(raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw)
        except (ValueError, UnicodeDecodeError) as e:
            logger.warning("Ignoring unreadable manifest %s: %s", path, e)
            return None
        files = data.get("files") if isinstance(data, dict) else data
        if not isinstance(files, list):
            return None
        return [str(f) for f in files]

    def write_manifest(self, entity_id: Any, names: list[str]) -> None:
        path = self._object_path(entity_id, MANIFEST_NAME)
        body = json.dumps({"files": list(names), "updated_at": time.time()}).encode("utf-8")
        self._call(
            "write manifest",
            lambda: self._storage.upload(path, body, content_type="application/json", upsert=True),
        )

    # --- listing and ordering ---

    def _list_names(self, entity_id: Any) -> list[str]:
        entries = self._call("list", lambda: self._storage.list(prefix=self._folder(entity_id)))
        names: list[str] = []
        for entry in entries:
            name = str(entry.get("name") or "")
            if not name or name.startswith(".") or name == MANIFEST_NAME:
                continue
            if name.startswith(STAGING_PREFIX):
                continue  # left behind by an interrupted reorder
            if entry.get("id") is None and "." not in name:
                continue  # sub-folder
            if media_kind(name) != self.kind:
                continue
            names.append(name)
        return names

    def ordered_names(self, entity_id: Any, listed: list[str] | None = None) -> list[str]:
        """
        Stored file names in display order.

        Manifest order first (entries no longer in storage are dropped), then
        unlisted files by encoded index, then the rest in listing order.
        """
        listed = self._list_names(entity_id) if listed is None else listed
        manifest = self.read_manifest(entity_id)
        head: list[str] = []
        if manifest:
            present = set(listed)
            head = [n for n in manifest if n in present]
        in_head = set(head)
        rest = [(pos, n) for pos, n in enumerate(listed) if n not in in_head]

        def key(item: tuple[int, str]) -> tuple[int, int, int]:
            pos, name = item
            idx = parse_order_index(name)
            return (0, idx, pos) if idx is not None else (1, 0, pos)

        return head + [n for _, n in sorted(rest, key=key)]

    def fetch_asset_urls(self, entity_id: Any) -> list[str]:
        """
        URLs of an entity's assets in order.

        On a network failure the cached list is returned while it is still
        valid, and never longer than its signed URLs live; otherwise empty.
        """
        key = self._cache_key(entity_id)
        try:
            names = self.ordered_names(entity_id)
            urls = [self.url_for(entity_id, n) for n in names]
        except Exception as e:
            if is_network_error(e):
                max_age = self._url_expiry if self._use_signed_urls else None
                cached = self._cache.get_valid(key, max_age_seconds=max_age)
                logger.warning(
                    "Offline: serving %d cached %s URLs for %s",
                    len(cached or []), self.bucket, entity_id,
                )
                return list(cached or [])
            raise explain_storage_error(e, self.bucket) from e
        self._cache.put(key, urls)
        logger.info("Fetched %d %s assets for %s", len(urls), self.bucket, entity_id)
        return urls

    # --- mutations ---

    def upload_assets(self, files: Iterable[Path | str], entity_id: Any) -> list[str]:
        """
        Upload local files after the entity's existing assets.

        Args:
            files: Local paths, uploaded in the given order.
            entity_id: Owning kata/ohyo/post id; becomes the storage folder.

        Returns:
            URLs of the new files, in upload order.

        Raises:
            ValueError: A file failed validation (nothing is uploaded).
            BackendError: Storage rejected an upload.
        """
        paths = [Path(f) for f in files]
        for p in paths:
            result = validate_file_for_upload(p, self.kind)
            if not result.is_valid:
                raise ValueError(f"Cannot upload {p.name}: {'; '.join(result.errors)}")
        if not paths:
            return []

        try:
            self.ensure_bucket()
            existing = self.ordered_names(entity_id)
            indices = [i for i in (parse_order_index(n) for n in existing) if i is not None]
            next_index = max(max(indices) + 1 if indices else 0, len(existing))
            taken = set(existing)

            uploaded: list[str] = []
            for p in paths:
                name = ordered_file_name(entity_id, next_index, p.name, self.kind)
                while name in taken:
                    next_index += 1
                    name = ordered_file_name(entity_id, next_index, p.name, self.kind)
                next_index += 1
                data = p.read_bytes()
                content_type = mimetypes.guess_type(p.name)[0]
                object_path = self._object_path(entity_id, name)
                self._call(f"upload {name}", lambda: self._storage.upload(object_path, data, content_type=content_type))
                taken.add(name)
                uploaded.append(name)
                logger.info("Uploaded %s to %s/%s", p.name, self.bucket, object_path)

            self.write_manifest(entity_id, existing + uploaded)
            urls = [self.url_for(entity_id, n) for n in uploaded]
        except Exception as e:
            raise explain_storage_error(e, self.bucket) from e

        self._cache.remove(self._cache_key(entity_id))
        return urls

    def _rename(
        self,
        entity_id: Any,
        old: str,
        new: str,
        on_copied: Callable[[], Any] | None = None,
    ) -> None:
        src = self._object_path(entity_id, old)
        dst = self._object_path(entity_id, new)
        data = self._call(f"download {old}", lambda: self._storage.download(src))
        content_type = mimetypes.guess_type(new)[0]
        self._call(f"upload {new}", lambda: self._storage.upload(dst, data, content_type=content_type, upsert=True))
        if on_copied is not None:
            on_copied()
        self._call(f"remove {old}", lambda: self._storage.remove([src]))

    def _restore_staged(
        self,
        entity_id: Any,
        staged: list[tuple[str, str, str]],
        placed: set[str],
    ) -> None:
        """
        Clean up after a failed reorder so no staging copy is left behind.

        A staging copy is dropped when its data already exists under the
        original or the target name; otherwise it is moved back to the
        original name (or the target name when the original is taken).
        """
        try:
            entries = self._call("list", lambda: self._storage.list(prefix=self._folder(entity_id)))
        except Exception as e:
            logger.warning("Reorder rollback for %s could not list %s: %s", entity_id, self.bucket, e)
            return
        present = {str(e.get("name") or "") for e in entries}
        for old, tmp, new in staged:
            if tmp not in present:
                continue
            try:
                if new in placed or (old in present and old not in placed):
                    self._call(f"remove {tmp}", lambda: self._storage.remove([self._object_path(entity_id, tmp)]))
                elif old not in present:
                    self._rename(entity_id, tmp, old)
                elif new not in present:
                    self._rename(entity_id, tmp, new)
                else:
                    logger.error("Reorder rollback left %s/%s in place", self.bucket, self._object_path(entity_id, tmp))
            except Exception as e:
                logger.warning("Reorder rollback of %s failed: %s", tmp, e)

    def reorder_assets(self, entity_id: Any, new_order: list[str]) -> list[str]:
        """
        Apply a new order given as URLs or file names of the current assets.

        Files are renamed (copy then delete) to their new indices through a
        temporary name so no rename overwrites a file that has not moved yet.
        The manifest is rewritten last. When a step fails the staging copies
        are cleaned up before the error is raised.

        Returns:
            URLs in the new order.

        Raises:
            ValueError: ``new_order`` is not a permutation of the current assets.
        """
        current = self.ordered_names(entity_id)
        wanted = [file_name_from_url(x) or x if "/" in x else x for x in new_order]
        if sorted(wanted) != sorted(current):
            raise ValueError(
                f"Reorder for {entity_id} must list exactly the current {len(current)} assets"
            )

        targets = [ordered_file_name(entity_id, i, n, self.kind) for i, n in enumerate(wanted)]
        moves = [(old, new) for old, new in zip(wanted, targets) if old != new]
        staged: list[tuple[str, str, str]] = []
        placed: set[str] = set()
        try:
            for old, new in moves:
                tmp = STAGING_PREFIX + new
                self._rename(entity_id, old, tmp, on_copied=lambda o=old, t=tmp, n=new: staged.append((o, t, n)))
            for _, tmp, new in list(staged):
                self._rename(entity_id, tmp, new, on_copied=lambda n=new: placed.add(n))
            self.write_manifest(entity_id, targets)
            urls = [self.url_for(entity_id, n) for n in targets]
        except Exception as e:
            if staged:
                logger.warning("Reorder of %s failed after staging %d files; rolling back", entity_id, len(staged))
                self._restore_staged(entity_id, staged, placed)
            self._cache.remove(self._cache_key(entity_id))
            raise explain_storage_error(e, self.bucket) from e

        logger.info("Reordered %d assets for %s (%d renamed)", len(targets), entity_id, len(moves))
        self._cache.put(self._cache_key(entity_id), urls)
        return urls

    def delete_asset(self, entity_id: Any, url_or_name: str) -> None:
        name = file_name_from_url(url_or_name) if "/" in url_or_name else url_or_name
        if not name:
            raise ValueError(f"Cannot derive a file name from {url_or_name!r}")
        remaining = [n for n in self.ordered_names(entity_id) if n != name]
        try:
            self._call(f"remove {name}", lambda: self._storage.remove([self._object_path(entity_id, name)]))
            self.write_manifest(entity_id, remaining)
        except Exception as e:
            raise explain_storage_error(e, self.bucket) from e
        self._cache.remove(self._cache_key(entity_id))

    def delete_all_assets(self, entity_id: Any) -> int:
        """Remove every file in the entity folder, manifest included. Returns the number of media files removed."""
        entries = self._call("list", lambda: self._storage.list(prefix=self._folder(entity_id)))
        paths = [
            self._object_path(entity_id, e["name"])
            for e in entries
            if e.get("name") and not str(e["name"]).startswith(".")
        ]
        if paths:
            try:
                self._call("remove all", lambda: self._storage.remove(paths))
            except Exception as e:
                raise explain_storage_error(e, self.bucket) from e
        self._cache.remove(self._cache_key(entity_id))
        return sum(1 for p in paths if not p.endswith("/" + MANIFEST_NAME))

    def move_asset(self, current_path: str, new_entity_id: Any, file_name: str) -> str:
        """Move an object (e.g. from a temp folder) into an entity folder and return its URL."""
        dst = self._object_path(new_entity_id, file_name)
        data = self._call("download", lambda: self._storage.download(current_path))
        self._call("upload", lambda: self._storage.upload(dst, data, content_type=mimetypes.guess_type(file_name)[0], upsert=True))
        self._call("remove", lambda: self._storage.remove([current_path]))
        manifest = self.read_manifest(new_entity_id)
        if manifest is not None and file_name not in manifest:
            self.write_manifest(new_entity_id, manifest + [file_name])
        self._cache.remove(self._cache_key(new_entity_id))
        return self.url_for(new_entity_id, file_name)

    def cleanup_temp_folders(self) -> list[str]:
        """Delete leftovers in the known temporary folders. Returns removed object paths."""
        removed: list[str] = []
        for folder in TEMP_FOLDERS:
            try:
                entries = self._call(f"list {folder}", lambda: self._storage.list(prefix=folder))
            except BackendError as e:
                if _is_not_found(e):
                    continue
                raise
            paths = [f"{folder}/{e['name']}" for e in entries if e.get("name") and not str(e["name"]).startswith(".")]
            if paths:
                self._call(f"remove {folder}", lambda: self._storage.remove(paths))
                removed.extend(paths)
        if removed:
            logger.info("Removed %d temporary objects from %s", len(removed), self.bucket)
        return removed
