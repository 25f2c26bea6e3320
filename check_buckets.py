#!/usr/bin/env python3
"""
Check the storage setup Karatapp needs.

This script checks:
1. SUPABASE_URL and SUPABASE_ANON_KEY are set
2. Each configured bucket exists (and whether it is public)
3. A listing call works, i.e. storage policies allow reads
"""

import sys

from karatapp.infrastructure.backend.supabase_client import BackendError, SupabaseClient
from karatapp.utils import config
from karatapp.utils.retry import execute_with_config, network_retry_config


def configured_buckets() -> list[str]:
    return [
        config.kata_images_bucket(),
        config.ohyo_images_bucket(),
        config.kata_videos_bucket(),
        config.forum_images_bucket(),
    ]


def check_env_vars() -> tuple[bool, list[str]]:
    results = []
    all_ok = True
    for key in ("SUPABASE_URL", "SUPABASE_ANON_KEY"):
        try:
            value = config.get_required(key)
            shown = value if key == "SUPABASE_URL" else f"{value[:6]}..."
            results.append(f"[OK] {key} is set: {shown}")
        except ValueError:
            results.append(f"[X] {key} is not set")
            all_ok = False
    return all_ok, results


def check_bucket(client: SupabaseClient, bucket: str) -> tuple[bool, str]:
    """Bucket exists and can be listed."""
    retry = network_retry_config()
    try:
        info = execute_with_config(lambda: client.storage.get_bucket(bucket), retry, label=f"bucket {bucket}")
    except BackendError as e:
        if e.status_code in (400, 404) or "not found" in str(e).lower():
            return False, f"[X] {bucket}: bucket not found"
        return False, f"[X] {bucket}: {e}"
    except Exception as e:
        return False, f"[X] {bucket}: backend unreachable ({e})"

    visibility = "public" if info.get("public") else "private"
    try:
        entries = client.storage.from_(bucket).list(prefix="", limit=10)
    except BackendError as e:
        return False, f"[!] {bucket}: exists ({visibility}) but listing failed: {e}"
    return True, f"[OK] {bucket}: exists ({visibility}), {len(entries)} top-level entries visible"


def main() -> int:
    config.load_config()
    print("Karatapp storage check\n")
    print("=" * 60)

    print("\n1. Checking environment variables...")
    ok, msgs = check_env_vars()
    for msg in msgs:
        print(f"   {msg}")
    if not ok:
        print("\n[X] Set the missing variables in .env and run again.")
        return 1

    client = SupabaseClient()
    all_ok = True
    print("\n2. Checking storage buckets...")
    for bucket in configured_buckets():
        ok, msg = check_bucket(client, bucket)
        print(f"   {msg}")
        all_ok = all_ok and ok

    print("\n" + "=" * 60)
    if all_ok:
        print("\n[OK] All buckets are ready.")
        return 0
    print("\n[X] Some buckets are missing or unreadable. Create them or fix their storage policies.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
