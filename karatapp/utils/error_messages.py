"""Convert technical errors into short, user-facing (Dutch) messages.

Matching is heuristic: the stringified error is lowercased and checked for
known markers in a fixed priority order.
"""

from __future__ import annotations

import re

NETWORK_MESSAGE = "Verbindingsprobleem. Controleer je internetverbinding en probeer opnieuw."
AUTH_MESSAGE = "Inloggen mislukt. Controleer je gegevens en probeer opnieuw."
STORAGE_MESSAGE = "Bestandsbewerking mislukt. Probeer het opnieuw."
SERVER_MESSAGE = "Server is tijdelijk niet beschikbaar. Probeer het later opnieuw."
RATE_LIMIT_MESSAGE = "Te veel verzoeken. Wacht even en probeer opnieuw."
PERMISSION_MESSAGE = "Toegang geweigerd. Controleer je machtigingen en probeer opnieuw."

_RULES: list[tuple[tuple[str, ...], str]] = [
    (("network", "connection", "timeout", "timed out", "socket"), NETWORK_MESSAGE),
    (("unauthorized", "invalid email or password", "invalid login credentials", "authentication"), AUTH_MESSAGE),
    (("storage", "upload", "bucket"), STORAGE_MESSAGE),
    (("server error", "500", "502", "503"), SERVER_MESSAGE),
    (("rate limit", "too many requests"), RATE_LIMIT_MESSAGE),
    (("permission", "access denied", "forbidden"), PERMISSION_MESSAGE),
]

_PREFIX_RE = re.compile(r"^(?:\w*Exception:\s*|\w*Error:\s*|Failed to\s+)+", re.IGNORECASE)
_NULL_SUFFIX_RE = re.compile(r":\s*(?:null|None)$")


def clean_error_message(error: str) -> str:
    """Strip technical prefixes, capitalise and end with a period."""
    cleaned = _PREFIX_RE.sub("", (error or "").strip())
    cleaned = _NULL_SUFFIX_RE.sub("", cleaned).strip()
    if not cleaned:
        return "Er is een fout opgetreden."
    cleaned = cleaned[0].upper() + cleaned[1:]
    if not cleaned.endswith("."):
        cleaned += "."
    return cleaned


def user_friendly_message(error: BaseException | str) -> str:
    text = str(error)
    lower = text.lower()
    for markers, message in _RULES:
        if any(m in lower for m in markers):
            return message
    return clean_error_message(text)


def auth_error_message(details: str | None) -> str:
    if details is None:
        return "Authenticatie mislukt. Probeer opnieuw in te loggen."
    lower = details.lower()
    if "invalid email or password" in lower or "invalid login credentials" in lower:
        return "E-mailadres of wachtwoord is onjuist."
    if "already registered" in lower:
        return "Dit e-mailadres is al geregistreerd. Log in met dit adres."
    if "email" in lower:
        return "Voer een geldig e-mailadres in."
    if "password" in lower:
        return "Wachtwoord moet minimaal 4 tekens zijn."
    return "Authenticatie mislukt. Probeer het opnieuw."


def validation_error_message(message: str) -> str:
    return f"Controleer je invoer: {clean_error_message(message)}"


def unknown_error_message(details: str | None) -> str:
    if details is None:
        return "Er is iets misgegaan. Probeer het opnieuw."
    return f"Onverwachte fout: {clean_error_message(details)}"
