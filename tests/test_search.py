"""
Tests for accent/case-insensitive search helpers.
"""

from __future__ import annotations

import pytest

from karatapp.utils.search import (
    contains_normalized,
    matches_any_word_prefix,
    normalize,
    split_into_words,
    starts_with_normalized,
    strip_diacritics,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("café", "cafe"),
        ("  Heian   Shodan ", "heian shodan"),
        ("Ñandú", "nandu"),
        ("“Kanku” – Dai", '"kanku" - dai'),
        ("", ""),
        (None, ""),
    ],
)
def test_normalize(raw, expected) -> None:
    assert normalize(raw) == expected


def test_strip_diacritics_keeps_base_letters() -> None:
    assert strip_diacritics("Gōjū-ryū") == "Goju-ryu"


def test_contains_and_starts_with() -> None:
    assert contains_normalized("Café", "cafe")
    assert contains_normalized("Bassai Dai", "SAI d")
    assert not contains_normalized("Bassai", "bassai dai")
    assert starts_with_normalized("Éénvoudig", "een")
    assert contains_normalized("anything", "")


def test_split_into_words() -> None:
    assert split_into_words("Tekki-Shodan_2.0  kata") == ["tekki", "shodan", "2", "0", "kata"]


def test_word_prefix_matching() -> None:
    assert matches_any_word_prefix("Heian Nidan", "hei nid")
    assert not matches_any_word_prefix("Heian Nidan", "hei san")
    assert matches_any_word_prefix("Heian Nidan", "  ")
