"""Ordered media storage on top of the backend object store."""

from karatapp.infrastructure.storage.asset_store import AssetStore

__all__ = ["AssetStore"]
