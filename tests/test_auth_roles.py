"""
Tests for sign-in/sign-up and role management.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import requests

from karatapp.domains.models import UserRole
from karatapp.infrastructure.backend.supabase_client import BackendError, SupabaseClient
from karatapp.services.auth_service import AuthService, display_name, validate_credentials
from karatapp.services.role_service import RoleService, require_user

HOST = {"id": "u-host", "email": "sensei@dojo.nl"}
ANNA = {"id": "u-anna", "email": "anna@dojo.nl"}


def test_validate_credentials() -> None:
    assert validate_credentials("  Anna@Dojo.NL ", "1234") == "anna@dojo.nl"
    with pytest.raises(ValueError, match="email"):
        validate_credentials("anna@dojo", "1234")
    with pytest.raises(ValueError, match="at least 4"):
        validate_credentials("anna@dojo.nl", "123")


def test_display_name() -> None:
    assert display_name({"email": "anna@dojo.nl", "user_metadata": {"full_name": " Anna K "}}) == "Anna K"
    assert display_name({"email": "anna@dojo.nl", "user_metadata": {}}) == "anna"
    assert display_name({}) == "Anonymous User"
    assert display_name(None) == "Anonymous User"


def test_sign_up_creates_profile_and_signs_in(fake_client, no_sleep) -> None:
    auth = AuthService(fake_client, sleep=no_sleep.append)
    auth.sign_up("Anna@Dojo.nl", "geheim", name="Anna")

    assert auth.is_signed_in
    (profile,) = fake_client.tables["user_profiles"]
    assert (profile["id"], profile["email"], profile["full_name"]) == ("user-anna@dojo.nl", "anna@dojo.nl", "Anna")


def test_wrong_password_is_not_retried(fake_client, no_sleep) -> None:
    fake_client.auth.passwords["anna@dojo.nl"] = "geheim"
    auth = AuthService(fake_client, sleep=no_sleep.append)
    with pytest.raises(BackendError, match="Invalid login credentials"):
        auth.sign_in("anna@dojo.nl", "fout")
    assert no_sleep == []
    assert not auth.is_signed_in


def test_sign_in_retries_network_errors(fake_client, no_sleep) -> None:
    fake_client.auth.passwords["anna@dojo.nl"] = "geheim"
    fake_client.fail("auth", requests.ConnectionError("connection reset by peer"))
    auth = AuthService(fake_client, sleep=no_sleep.append)

    session = auth.sign_in("anna@dojo.nl", "geheim")

    assert session["user"]["email"] == "anna@dojo.nl"
    assert no_sleep == [0.5]


def test_update_name_and_sign_out(fake_client) -> None:
    auth = AuthService(fake_client)
    with pytest.raises(PermissionError):
        auth.update_name("Anna")

    fake_client.sign_in_as(dict(ANNA, user_metadata={}))
    with pytest.raises(ValueError):
        auth.update_name("  ")
    auth.update_name("Anna de Vries")
    assert display_name(auth.current_user) == "Anna de Vries"

    auth.sign_out()
    assert not auth.is_signed_in


def test_require_user(fake_client) -> None:
    with pytest.raises(PermissionError, match="not authenticated"):
        require_user(fake_client)
    fake_client.sign_in_as(ANNA)
    assert require_user(fake_client)["id"] == "u-anna"


def test_newest_role_wins(fake_client) -> None:
    fake_client.tables["user_roles"] = [
        {"user_id": "u-anna", "role": "mediator", "granted_at": "2024-01-01T00:00:00+00:00"},
        {"user_id": "u-anna", "role": "host", "granted_at": "2024-03-01T00:00:00+00:00"},
    ]
    roles = RoleService(fake_client)
    assert roles.role_of("u-anna") is UserRole.HOST
    assert roles.role_of("u-nobody") is UserRole.USER
    assert roles.current_role() is UserRole.USER


def test_role_lookup_failure_means_plain_user(fake_client) -> None:
    fake_client.tables["user_roles"] = [{"user_id": "u-host", "role": "host", "granted_at": "2024-01-01"}]
    fake_client.sign_in_as(HOST)
    fake_client.fail("select", BackendError("relation user_roles does not exist", status_code=404))
    roles = RoleService(fake_client)
    assert roles.current_role() is UserRole.USER
    assert roles.current_role() is UserRole.HOST


def test_offline_role_lookup_means_plain_user() -> None:
    session = MagicMock()
    session.request.side_effect = requests.ConnectionError("Connection refused")
    client = SupabaseClient(url="https://abc.supabase.co", api_key="anon", timeout=5, session=session)
    client.current_user = {"id": "u-host"}
    roles = RoleService(client)

    assert roles.current_role() is UserRole.USER
    assert not roles.can_moderate()
    assert not roles.is_host()


def test_unexpected_role_lookup_errors_propagate(fake_client) -> None:
    fake_client.sign_in_as(HOST)
    fake_client.fail("select", KeyError("role"))
    with pytest.raises(KeyError):
        RoleService(fake_client).current_role()


def test_only_hosts_set_roles(fake_client) -> None:
    fake_client.tables["user_roles"] = [{"user_id": "u-host", "role": "host", "granted_at": "2024-01-01"}]
    roles = RoleService(fake_client)

    fake_client.sign_in_as(ANNA)
    with pytest.raises(PermissionError):
        roles.set_role("u-anna", UserRole.HOST)

    fake_client.sign_in_as(HOST)
    roles.set_role("u-anna", UserRole.MEDIATOR)
    roles.set_role("u-anna", UserRole.USER)
    anna_rows = [r for r in fake_client.tables["user_roles"] if r["user_id"] == "u-anna"]
    assert len(anna_rows) == 1
    assert anna_rows[0]["role"] == "user"
    assert anna_rows[0]["granted_by"] == "u-host"


def test_failed_cleanup_keeps_the_new_role(fake_client, no_sleep) -> None:
    fake_client.tables["user_roles"] = [
        {"user_id": "u-host", "role": "host", "granted_at": "2024-01-01"},
        {"user_id": "u-anna", "role": "mediator", "granted_at": "2024-01-02"},
    ]
    fake_client.sign_in_as(HOST)
    fake_client.fail("delete", BackendError("permission denied", status_code=403))
    roles = RoleService(fake_client, sleep=no_sleep.append)

    with pytest.raises(BackendError):
        roles.set_role("u-anna", UserRole.HOST)
    assert roles.role_of("u-anna") is UserRole.HOST


def test_failed_grant_keeps_the_old_role(fake_client, no_sleep) -> None:
    fake_client.tables["user_roles"] = [
        {"user_id": "u-host", "role": "host", "granted_at": "2024-01-01"},
        {"user_id": "u-anna", "role": "mediator", "granted_at": "2024-01-02"},
    ]
    fake_client.sign_in_as(HOST)
    fake_client.fail("insert", BackendError("permission denied", status_code=403))
    roles = RoleService(fake_client, sleep=no_sleep.append)

    with pytest.raises(BackendError):
        roles.set_role("u-anna", UserRole.USER)
    assert roles.role_of("u-anna") is UserRole.MEDIATOR
    assert no_sleep == []


def test_set_role_retries_network_errors(fake_client, no_sleep) -> None:
    fake_client.tables["user_roles"] = [{"user_id": "u-host", "role": "host", "granted_at": "2024-01-01"}]
    fake_client.sign_in_as(HOST)
    fake_client.fail("insert", requests.ConnectionError("connection reset by peer"))
    RoleService(fake_client, sleep=no_sleep.append).set_role("u-anna", UserRole.MEDIATOR)

    assert no_sleep == [1.0]
    assert RoleService(fake_client).role_of("u-anna") is UserRole.MEDIATOR


def test_ensure_default_role_and_listing(fake_client) -> None:
    fake_client.tables["user_profiles"] = [
        {"id": "u-host", "email": "Sensei@dojo.nl", "full_name": "Sensei"},
        {"id": "u-anna", "email": "anna@dojo.nl", "full_name": "Anna"},
    ]
    fake_client.tables["user_roles"] = [{"user_id": "u-host", "role": "host", "granted_at": "2024-01-01"}]
    fake_client.sign_in_as(ANNA)
    roles = RoleService(fake_client)
    roles.ensure_default_role()
    roles.ensure_default_role()

    assert len(fake_client.tables["user_roles"]) == 2
    listing = roles.users_with_roles()
    assert [(u["email"], u["role"]) for u in listing] == [
        ("anna@dojo.nl", UserRole.USER),
        ("Sensei@dojo.nl", UserRole.HOST),
    ]
