"""
Kata and ohyo catalog: CRUD on the content tables, manual ordering, images
and uploaded videos.

One ContentService instance serves one table; ``kata_service`` and
``ohyo_service`` wire the matching table, model and media buckets. Only katas
have a video bucket.
"""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Callable, Generic, Iterable, Type, TypeVar

from karatapp.domains.catalog import filter_items, move_item, sort_by_order
from karatapp.domains.models import ContentItem, Kata, Ohyo, OhyoCategory, utc_now
from karatapp.infrastructure.backend.supabase_client import BackendError, SupabaseClient
from karatapp.infrastructure.cache.offline_cache import OfflineCache, cache_key
from karatapp.infrastructure.storage.asset_store import AssetStore
from karatapp.utils.config import kata_images_bucket, kata_videos_bucket, ohyo_images_bucket
from karatapp.utils.logger import get_logger
from karatapp.utils.retry import execute_with_config, is_network_error, network_retry_config

logger = get_logger(__name__)

C = TypeVar("C", bound=ContentItem)


class ContentService(Generic[C]):
    """
    Args:
        client: Backend client.
        table: "katas" or "ohyo".
        model: Kata or Ohyo.
        assets: Image store for the table's bucket.
        videos: Video store, or None when the table has no uploaded videos.
        cache: Offline cache for the item list.
        sleep: Wait function handed to the retry helper.
    """

    def __init__(
        self,
        client: SupabaseClient,
        table: str,
        model: Type[C],
        assets: AssetStore,
        cache: OfflineCache | None = None,
        sleep: Callable[[float], Any] = time.sleep,
        videos: AssetStore | None = None,
    ) -> None:
        self._client = client
        self.table = table
        self._model = model
        self.assets = assets
        self.videos = videos
        self._cache = cache if cache is not None else OfflineCache()
        self._retry = network_retry_config()
        self._sleep = sleep
        self.is_offline = False

    def _call(self, label: str, op: Callable[[], Any]) -> Any:
        return execute_with_config(op, self._retry, sleep=self._sleep, label=f"{self.table}: {label}")

    @property
    def _list_key(self) -> str:
        return cache_key(self.table, "all")

    # --- reads ---

    def list_items(self, with_images: bool = False) -> list[C]:
        """
        All entries sorted by manual order.

        Successful loads refresh the offline cache. When the backend is
        unreachable the still-valid cached list is returned and ``is_offline``
        is set; with no valid cache the network error propagates.
        """
        try:
            rows = self._call("list", lambda: self._client.table(self.table).select("*").order("order").execute())
        except Exception as e:
            if not is_network_error(e):
                raise
            cached = self._cache.get_valid(self._list_key)
            if cached is None:
                raise
            logger.warning("Backend unreachable; using %d cached %s rows", len(cached), self.table)
            self.is_offline = True
            return sort_by_order(self._model.from_row(r) for r in cached)

        self.is_offline = False
        items = sort_by_order(self._model.from_row(r) for r in rows)
        if with_images:
            items = [self.with_images(i) for i in items]
        self._cache.put(self._list_key, [_cache_row(i) for i in items])
        return items

    def get(self, item_id: int, with_media: bool = True) -> C | None:
        row = self._call("get", lambda: self._client.table(self.table).select("*").eq("id", item_id).maybe_single())
        if row is None:
            return None
        item = self._model.from_row(row)
        return self.with_media(item) if with_media else item

    def with_images(self, item: C) -> C:
        return item.copy_with(image_urls=self.assets.fetch_asset_urls(item.id))

    def with_media(self, item: C) -> C:
        """Images plus video links: the row's external links first, then uploaded videos."""
        item = self.with_images(item)
        if self.videos is None:
            return item
        uploaded = [u for u in self.videos.fetch_asset_urls(item.id) if u not in item.video_urls]
        return item.copy_with(video_urls=list(item.video_urls) + uploaded)

    def search(self, query: str = "", category: OhyoCategory | None = None) -> list[C]:
        return filter_items(self.list_items(), query, category)

    def next_id(self) -> int:
        """Highest existing id plus one (ids are assigned client-side)."""
        rows = self._call("ids", lambda: self._client.table(self.table).select("id").execute())
        max_id = 0
        for r in rows:
            try:
                max_id = max(max_id, int(r.get("id")))
            except (TypeError, ValueError):
                continue
        return max_id + 1

    # --- writes ---

    def create(
        self,
        name: str,
        description: str = "",
        style: str = "",
        images: Iterable[Path | str] = (),
        video_urls: Iterable[str] = (),
        videos: Iterable[Path | str] = (),
    ) -> C:
        """
        Insert a new entry at the end of the manual order and upload its media.

        ``video_urls`` are external links stored on the row; ``videos`` are
        local files uploaded to the video bucket.
        """
        clips = list(videos)
        if clips and self.videos is None:
            raise ValueError(f"{self.table} entries have no video storage")
        name = name.strip()
        if not name:
            raise ValueError("Name cannot be empty")
        item_id = self.next_id()
        order = len(self._call("count", lambda: self._client.table(self.table).select("id").execute()))
        item = self._model(
            id=item_id,
            name=name,
            description=description.strip(),
            style=style.strip(),
            created_at=utc_now(),
            video_urls=list(video_urls),
            order=order,
        )
        self._call("insert", lambda: self._client.table(self.table).insert(item.to_row()))
        logger.info("Created %s %d (%s)", self.table, item_id, name)

        files = list(images)
        if files:
            item = item.copy_with(image_urls=self.assets.upload_assets(files, item_id))
        if clips:
            uploaded = self.videos.upload_assets(clips, item_id)
            item = item.copy_with(video_urls=list(item.video_urls) + uploaded)
        self._cache.remove(self._list_key)
        return item

    def update(self, item_id: int, **fields: Any) -> C:
        """Update name/description/style/video_urls of an entry."""
        allowed = {"name", "description", "style", "video_urls"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Cannot update {', '.join(sorted(unknown))} on {self.table}")
        if "name" in fields and not str(fields["name"]).strip():
            raise ValueError("Name cannot be empty")
        rows = self._call("update", lambda: self._client.table(self.table).eq("id", item_id).update(fields))
        if not rows:
            raise BackendError(f"{self.table} {item_id} not found", status_code=404)
        self._cache.remove(self._list_key)
        return self._model.from_row(rows[0])

    def delete(self, item_id: int) -> None:
        """Delete an entry and its media. Media cleanup failures do not block the row delete."""
        for store in (self.assets, self.videos):
            if store is None:
                continue
            try:
                store.delete_all_assets(item_id)
            except Exception as e:
                logger.warning("Could not delete %s of %s %d: %s", store.kind, self.table, item_id, e)
        self._call("delete", lambda: self._client.table(self.table).eq("id", item_id).delete())
        self._cache.remove(self._list_key)
        logger.info("Deleted %s %d", self.table, item_id)

    def reorder(self, items: list[C], old_index: int, new_index: int) -> list[C]:
        """Move one entry in the list and persist the changed ``order`` values."""
        moved = move_item(items, old_index, new_index)
        previous = {i.id: i.order for i in items}
        for item in moved:
            if previous.get(item.id) != item.order:
                self._call(
                    "order",
                    lambda item=item: self._client.table(self.table).eq("id", item.id).update({"order": item.order}),
                )
        self._cache.put(self._list_key, [_cache_row(i) for i in moved])
        return moved

    # --- images ---

    def add_images(self, item_id: int, files: Iterable[Path | str]) -> list[str]:
        self.assets.upload_assets(files, item_id)
        return self.assets.fetch_asset_urls(item_id)

    def reorder_images(self, item_id: int, ordered_urls: list[str]) -> list[str]:
        return self.assets.reorder_assets(item_id, ordered_urls)

    def delete_image(self, item_id: int, url: str) -> None:
        self.assets.delete_asset(item_id, url)

    # --- videos ---

    def _video_store(self) -> AssetStore:
        if self.videos is None:
            raise ValueError(f"{self.table} entries have no video storage")
        return self.videos

    def add_videos(self, item_id: int, files: Iterable[Path | str]) -> list[str]:
        store = self._video_store()
        store.upload_assets(files, item_id)
        return store.fetch_asset_urls(item_id)

    def reorder_videos(self, item_id: int, ordered_urls: list[str]) -> list[str]:
        return self._video_store().reorder_assets(item_id, ordered_urls)

    def delete_video(self, item_id: int, url: str) -> None:
        self._video_store().delete_asset(item_id, url)


def _cache_row(item: ContentItem) -> dict[str, Any]:
    row = item.to_row()
    row["image_urls"] = list(item.image_urls)
    return row


def kata_service(client: SupabaseClient, cache: OfflineCache | None = None) -> ContentService[Kata]:
    cache = cache if cache is not None else OfflineCache()
    store = AssetStore(client, kata_images_bucket(), kind="image", cache=cache)
    videos = AssetStore(client, kata_videos_bucket(), kind="video", cache=cache)
    return ContentService(client, "katas", Kata, store, cache, videos=videos)


def ohyo_service(client: SupabaseClient, cache: OfflineCache | None = None) -> ContentService[Ohyo]:
    cache = cache if cache is not None else OfflineCache()
    store = AssetStore(client, ohyo_images_bucket(), kind="image", cache=cache)
    return ContentService(client, "ohyo", Ohyo, store, cache)
