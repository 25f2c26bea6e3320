"""
Email/password authentication with input checks and auth-specific retries.
"""

from __future__ import annotations

import re
import time
from typing import Any, Callable

from karatapp.infrastructure.backend.supabase_client import BackendError, SupabaseClient
from karatapp.utils.logger import get_logger
from karatapp.utils.retry import auth_retry_config, execute_with_config

logger = get_logger(__name__)

MIN_PASSWORD_LENGTH = 4
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_credentials(email: str, password: str) -> str:
    """
    Normalized email for a sign-in/sign-up attempt.

    Raises:
        ValueError: Invalid email format or password too short.
    """
    email = (email or "").strip().lower()
    if not _EMAIL_RE.match(email):
        raise ValueError("Invalid email address")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return email


def display_name(user: dict[str, Any] | None) -> str:
    """full_name from metadata, else the part of the email before '@'."""
    if not user:
        return "Anonymous User"
    meta = user.get("user_metadata") or {}
    name = str(meta.get("full_name") or "").strip()
    if name:
        return name
    email = str(user.get("email") or "")
    if email:
        return email.split("@")[0]
    return "Anonymous User"


class AuthService:
    def __init__(self, client: SupabaseClient, sleep: Callable[[float], Any] = time.sleep) -> None:
        self._client = client
        self._retry = auth_retry_config()
        self._sleep = sleep

    @property
    def current_user(self) -> dict[str, Any] | None:
        return self._client.auth.current_user

    @property
    def is_signed_in(self) -> bool:
        return bool(self._client.access_token and self.current_user)

    def sign_in(self, email: str, password: str) -> dict[str, Any]:
        email = validate_credentials(email, password)
        return execute_with_config(
            lambda: self._client.auth.sign_in_with_password(email, password),
            self._retry,
            sleep=self._sleep,
            label="sign in",
        )

    def sign_up(self, email: str, password: str, name: str = "") -> dict[str, Any]:
        """Register a user; a profile row is created best-effort when a session comes back."""
        email = validate_credentials(email, password)
        name = name.strip()
        result = execute_with_config(
            lambda: self._client.auth.sign_up(email, password, data={"full_name": name} if name else None),
            self._retry,
            sleep=self._sleep,
            label="sign up",
        )
        user = result.get("user") or (result if result.get("id") else None)
        if user and self._client.access_token:
            try:
                self._client.table("user_profiles").insert({
                    "id": user["id"],
                    "email": email,
                    "full_name": name or email.split("@")[0],
                })
            except BackendError as e:
                logger.warning("Profile creation for %s failed: %s", email, e)
        return result

    def update_name(self, name: str) -> dict[str, Any]:
        if not self.is_signed_in:
            raise PermissionError("No authenticated user found")
        name = name.strip()
        if not name:
            raise ValueError("Name cannot be empty")
        return self._client.auth.update_user({"full_name": name})

    def sign_out(self) -> None:
        self._client.auth.sign_out()
        logger.info("Signed out")
