"""
Tests for the requests-based backend client (Postgrest params, storage, auth).
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from karatapp.infrastructure.backend.supabase_client import BackendError, SupabaseClient


def _response(status: int = 200, payload=None, content: bytes = b"[]", reason: str = "OK") -> MagicMock:
    r = MagicMock()
    r.status_code = status
    r.reason = reason
    r.content = content
    r.text = content.decode()
    r.json.return_value = payload
    return r


def _client(*responses) -> tuple[SupabaseClient, MagicMock]:
    session = MagicMock()
    session.request.side_effect = list(responses)
    client = SupabaseClient(url="https://abc.supabase.co/", api_key="anon", timeout=5, session=session)
    return client, session


def test_select_builds_postgrest_params() -> None:
    client, session = _client(_response(payload=[{"id": 1}]))
    rows = (
        client.table("forum_posts")
        .select("*")
        .eq("category", "general")
        .eq("is_locked", False)
        .order("is_pinned", ascending=False)
        .order("created_at", ascending=False)
        .range(50, 99)
        .execute()
    )

    assert rows == [{"id": 1}]
    method, url = session.request.call_args.args
    kwargs = session.request.call_args.kwargs
    assert method == "GET"
    assert url == "https://abc.supabase.co/rest/v1/forum_posts"
    assert kwargs["params"] == [
        ("select", "*"),
        ("category", "eq.general"),
        ("is_locked", "eq.false"),
        ("order", "is_pinned.desc,created_at.desc"),
        ("limit", "50"),
        ("offset", "50"),
    ]
    assert kwargs["headers"]["apikey"] == "anon"
    assert kwargs["headers"]["Authorization"] == "Bearer anon"
    assert kwargs["timeout"] == 5


def test_eq_none_becomes_is_null_and_in_list() -> None:
    client, session = _client(_response(payload=[]))
    client.table("kata_comments").eq("parent_comment_id", None).in_("id", [1, 2]).execute()
    params = session.request.call_args.kwargs["params"]
    assert ("parent_comment_id", "is.null") in params
    assert ("id", "in.(1,2)") in params


def test_error_response_raises_backend_error() -> None:
    client, _ = _client(_response(403, payload={"message": "new row violates row-level security"}))
    with pytest.raises(BackendError) as exc:
        client.table("katas").execute()
    assert exc.value.status_code == 403
    assert str(exc.value) == "new row violates row-level security: permission denied (status 403)"


def test_single_raises_not_found_and_maybe_single_rejects_many() -> None:
    client, _ = _client(_response(payload=[]), _response(payload=[{"id": 1}, {"id": 2}]))
    with pytest.raises(BackendError, match="not found"):
        client.table("katas").eq("id", 9).single()
    with pytest.raises(BackendError) as exc:
        client.table("katas").eq("name", "x").maybe_single()
    assert exc.value.status_code == 406


def test_unfiltered_update_and_delete_are_refused() -> None:
    client, session = _client()
    with pytest.raises(ValueError):
        client.table("katas").update({"name": "x"})
    with pytest.raises(ValueError):
        client.table("katas").delete()
    session.request.assert_not_called()


def test_insert_with_empty_body_returns_no_rows() -> None:
    client, session = _client(_response(201, content=b""))
    assert client.table("likes").insert({"target_id": 1}) == []
    assert session.request.call_args.kwargs["headers"]["Prefer"] == "return=representation"


def test_sign_in_switches_token_and_sign_out_clears_it() -> None:
    session_payload = {"access_token": "user-token", "user": {"id": "u1", "email": "a@b.nl"}}
    client, session = _client(_response(payload=session_payload), _response(204, content=b""))

    client.auth.sign_in_with_password("a@b.nl", "secret")
    assert client.user_id == "u1"
    assert client.headers()["Authorization"] == "Bearer user-token"

    client.auth.sign_out()
    assert client.access_token is None
    assert session.request.call_args.args == ("POST", "https://abc.supabase.co/auth/v1/logout")


def test_expired_token_is_refreshed_once_and_request_repeated() -> None:
    signed_in = {"access_token": "old", "refresh_token": "r1", "user": {"id": "u1", "email": "a@b.nl"}}
    refreshed = {"access_token": "new", "refresh_token": "r2", "user": {"id": "u1", "email": "a@b.nl"}}
    client, session = _client(
        _response(payload=signed_in),
        _response(401, payload={"message": "JWT expired"}, reason="Unauthorized"),
        _response(payload=refreshed),
        _response(payload=[{"id": 3, "name": "Heian Shodan"}]),
    )
    client.auth.sign_in_with_password("a@b.nl", "secret")
    assert client.refresh_token == "r1"

    rows = client.table("katas").select("*").execute()

    assert rows == [{"id": 3, "name": "Heian Shodan"}]
    assert (client.access_token, client.refresh_token) == ("new", "r2")
    refresh_call = session.request.call_args_list[2]
    assert refresh_call.args == ("POST", "https://abc.supabase.co/auth/v1/token")
    assert refresh_call.kwargs["params"] == {"grant_type": "refresh_token"}
    assert refresh_call.kwargs["json"] == {"refresh_token": "r1"}
    assert session.request.call_args.kwargs["headers"]["Authorization"] == "Bearer new"


def test_other_401s_are_not_refreshed() -> None:
    signed_in = {"access_token": "old", "refresh_token": "r1", "user": {"id": "u1"}}
    client, session = _client(
        _response(payload=signed_in),
        _response(401, payload={"message": "Invalid API key"}, reason="Unauthorized"),
    )
    client.auth.sign_in_with_password("a@b.nl", "secret")

    with pytest.raises(BackendError, match="Invalid API key"):
        client.table("katas").select("*").execute()
    assert session.request.call_count == 2


def test_sign_out_clears_refresh_token_even_when_logout_fails() -> None:
    signed_in = {"access_token": "old", "refresh_token": "r1", "user": {"id": "u1"}}
    client, _ = _client(_response(payload=signed_in), _response(500, payload={"message": "boom"}))
    client.auth.sign_in_with_password("a@b.nl", "secret")

    with pytest.raises(BackendError):
        client.auth.sign_out()
    assert (client.access_token, client.refresh_token, client.current_user) == (None, None, None)


def test_storage_upload_and_signed_url() -> None:
    client, session = _client(
        _response(payload={"Key": "kata_images/7/7_000_image.png"}),
        _response(payload={"signedURL": "/object/sign/kata_images/7/7_000_image.png?token=t"}),
    )
    bucket = client.storage.from_("kata_images")
    bucket.upload("7/7_000_image.png", b"png", content_type="image/png", upsert=True)
    headers = session.request.call_args.kwargs["headers"]
    assert headers["x-upsert"] == "true"
    assert headers["Content-Type"] == "image/png"

    url = bucket.create_signed_url("7/7_000_image.png", 60)
    assert url == "https://abc.supabase.co/storage/v1/object/sign/kata_images/7/7_000_image.png?token=t"
    assert session.request.call_args.kwargs["json"] == {"expiresIn": 60}
    assert bucket.get_public_url("7/a b.png").endswith("/object/public/kata_images/7/a%20b.png")


def test_defaults_come_from_config() -> None:
    with patch("karatapp.infrastructure.backend.supabase_client.supabase_url", return_value="https://x.supabase.co"), \
            patch("karatapp.infrastructure.backend.supabase_client.supabase_anon_key", return_value="k"), \
            patch("karatapp.infrastructure.backend.supabase_client.http_timeout", return_value=3.0):
        client = SupabaseClient(session=MagicMock())
    assert (client.url, client.api_key, client.timeout) == ("https://x.supabase.co", "k", 3.0)
