"""
User roles (user / mediator / host) stored in the ``user_roles`` table.

The newest row per user (by ``granted_at``) is the effective role; users
without a row are plain users.
"""

from __future__ import annotations

import time
from typing import Any, Callable

from karatapp.domains.models import UserRole, utc_now
from karatapp.infrastructure.backend.supabase_client import BackendError, SupabaseClient
from karatapp.utils.logger import get_logger
from karatapp.utils.retry import execute_with_config, is_network_error, network_retry_config

logger = get_logger(__name__)

ROLES_TABLE = "user_roles"
PROFILES_TABLE = "user_profiles"


def require_user(client: SupabaseClient) -> dict[str, Any]:
    """Signed-in user dict, or PermissionError."""
    user = client.current_user
    if not user or not user.get("id"):
        raise PermissionError("User not authenticated")
    return user


class RoleService:
    def __init__(self, client: SupabaseClient, sleep: Callable[[float], Any] = time.sleep) -> None:
        self._client = client
        self._sleep = sleep

    def role_of(self, user_id: str) -> UserRole:
        row = (
            self._client.table(ROLES_TABLE)
            .select("role, granted_at")
            .eq("user_id", user_id)
            .order("granted_at", ascending=False)
            .limit(1)
            .maybe_single()
        )
        return UserRole.parse(row["role"]) if row else UserRole.USER

    def current_role(self) -> UserRole:
        """Role of the signed-in user; USER when signed out, offline or on lookup failure."""
        user_id = self._client.user_id
        if not user_id:
            return UserRole.USER
        try:
            return self.role_of(user_id)
        except Exception as e:
            if not (isinstance(e, BackendError) or is_network_error(e)):
                raise
            logger.warning("Role lookup failed for %s, treating as user: %s", user_id, e)
            return UserRole.USER

    def is_host(self, user_id: str | None = None) -> bool:
        if user_id is None:
            return self.current_role() == UserRole.HOST
        return self.role_of(user_id) == UserRole.HOST

    def can_moderate(self, user_id: str | None = None) -> bool:
        role = self.current_role() if user_id is None else self.role_of(user_id)
        return role.can_moderate

    def set_role(self, user_id: str, role: UserRole) -> None:
        """
        Replace ``user_id``'s role. Only hosts may do this.

        The new row is inserted before older rows are deleted, so a failure
        part-way never leaves the user without a row; the newest row wins.

        Raises:
            PermissionError: Caller is not signed in or not a host.
        """
        caller = require_user(self._client)
        if not self.is_host():
            raise PermissionError("Only hosts can change user roles")
        granted_at = utc_now().isoformat()
        execute_with_config(
            lambda: self._client.table(ROLES_TABLE).insert({
                "user_id": user_id,
                "role": role.value,
                "granted_by": caller["id"],
                "granted_at": granted_at,
            }),
            network_retry_config(),
            sleep=self._sleep,
            label=f"grant role to {user_id}",
        )
        execute_with_config(
            lambda: self._client.table(ROLES_TABLE).eq("user_id", user_id).neq("granted_at", granted_at).delete(),
            network_retry_config(),
            sleep=self._sleep,
            label=f"drop old roles of {user_id}",
        )
        logger.info("Role of %s set to %s by %s", user_id, role.value, caller["id"])

    def ensure_default_role(self) -> None:
        """Give the signed-in user a ``user`` row if they have none yet."""
        user = require_user(self._client)
        existing = self._client.table(ROLES_TABLE).select("user_id").eq("user_id", user["id"]).limit(1).execute()
        if existing:
            return
        self._client.table(ROLES_TABLE).insert({
            "user_id": user["id"],
            "role": UserRole.USER.value,
            "granted_by": user["id"],
            "granted_at": utc_now().isoformat(),
        })

    def users_with_roles(self) -> list[dict[str, Any]]:
        """Profiles joined with their newest role, sorted by email."""
        profiles = self._client.table(PROFILES_TABLE).select("id, email, full_name").execute()
        try:
            roles = self._client.table(ROLES_TABLE).select("user_id, role, granted_at").execute()
        except BackendError as e:
            logger.warning("Could not read %s: %s", ROLES_TABLE, e)
            roles = []

        latest: dict[str, dict[str, Any]] = {}
        for r in roles:
            uid = str(r.get("user_id"))
            if uid not in latest or str(r.get("granted_at") or "") > str(latest[uid].get("granted_at") or ""):
                latest[uid] = r

        out = []
        for p in profiles:
            uid = str(p.get("id"))
            role_row = latest.get(uid)
            out.append({
                "id": uid,
                "email": p.get("email") or "",
                "full_name": p.get("full_name") or "",
                "role": UserRole.parse(role_row["role"]) if role_row else UserRole.USER,
            })
        return sorted(out, key=lambda u: u["email"].lower())
