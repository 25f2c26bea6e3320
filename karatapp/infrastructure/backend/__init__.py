"""Backend access over HTTP (Postgrest tables, storage, auth)."""

from karatapp.infrastructure.backend.supabase_client import BackendError, SupabaseClient

__all__ = ["BackendError", "SupabaseClient"]
