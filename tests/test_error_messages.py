"""
Tests for user-facing error messages.
"""

from __future__ import annotations

import requests

from karatapp.infrastructure.backend.supabase_client import BackendError
from karatapp.utils.error_messages import (
    AUTH_MESSAGE,
    NETWORK_MESSAGE,
    PERMISSION_MESSAGE,
    RATE_LIMIT_MESSAGE,
    SERVER_MESSAGE,
    STORAGE_MESSAGE,
    auth_error_message,
    clean_error_message,
    unknown_error_message,
    user_friendly_message,
    validation_error_message,
)


def test_categories() -> None:
    assert user_friendly_message(requests.ConnectionError("Connection refused")) == NETWORK_MESSAGE
    assert user_friendly_message("Unauthorized") == AUTH_MESSAGE
    assert user_friendly_message(BackendError("Storage bucket not found")) == STORAGE_MESSAGE
    assert user_friendly_message("Internal server error") == SERVER_MESSAGE
    assert user_friendly_message("Too many requests") == RATE_LIMIT_MESSAGE
    assert user_friendly_message("forbidden") == PERMISSION_MESSAGE


def test_unknown_error_is_cleaned() -> None:
    assert user_friendly_message(ValueError("Exception: name cannot be empty")) == "Name cannot be empty."


def test_clean_error_message() -> None:
    assert clean_error_message("Exception: Error: Failed to load katas: null") == "Load katas."
    assert clean_error_message("already clean.") == "Already clean."
    assert clean_error_message("") == "Er is een fout opgetreden."


def test_auth_messages() -> None:
    assert auth_error_message("Invalid login credentials") == "E-mailadres of wachtwoord is onjuist."
    assert "al geregistreerd" in auth_error_message("User already registered with this email")
    assert auth_error_message("email malformed") == "Voer een geldig e-mailadres in."
    assert "minimaal 4" in auth_error_message("password too short")
    assert auth_error_message(None).startswith("Authenticatie mislukt")


def test_validation_and_unknown() -> None:
    assert validation_error_message("title is required") == "Controleer je invoer: Title is required."
    assert unknown_error_message("boom") == "Onverwachte fout: Boom."
    assert unknown_error_message(None) == "Er is iets misgegaan. Probeer het opnieuw."
