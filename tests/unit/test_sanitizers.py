"""Tests for the shared input validators."""

from __future__ import annotations

from typing import Any

import pytest

from ddtool.validation import sanitize_choice_key, sanitize_pack_id


class TestSanitizePackId:
    @pytest.mark.parametrize("value", ["figure1", "figure2", "F2.v1", "pack_a-b", "a" * 64])
    def test_accepts_plain_ids(self, value: str) -> None:
        assert sanitize_pack_id(value) == (value, None)

    def test_strips_whitespace(self) -> None:
        assert sanitize_pack_id("  figure1 ") == ("figure1", None)

    @pytest.mark.parametrize("value", ["../etc/passwd", "a..b", "sub/pack", "-leading", ".hidden", "a" * 65, "sp ace"])
    def test_rejects_unsafe_ids(self, value: str) -> None:
        cleaned, error = sanitize_pack_id(value)
        assert cleaned == ""
        assert error is not None
        assert "invalid pack id" in error

    @pytest.mark.parametrize(("value", "message"), [("", "must not be empty"), ("   ", "must not be empty"), (7, "string")])
    def test_rejects_empty_and_non_string(self, value: Any, message: str) -> None:
        _, error = sanitize_pack_id(value)
        assert error is not None
        assert message in error


class TestSanitizeChoiceKey:
    def test_accepts_and_strips(self) -> None:
        assert sanitize_choice_key(" yes ") == ("yes", None)

    def test_rejects_control_characters_before_strip(self) -> None:
        cleaned, error = sanitize_choice_key("\nyes")
        assert cleaned == ""
        assert error is not None
        assert "U+000A" in error

    def test_rejects_format_characters(self) -> None:
        _, error = sanitize_choice_key("ye\u200bs")
        assert error is not None

    def test_rejects_empty(self) -> None:
        assert sanitize_choice_key("  ") == ("", "choice must not be empty")

    def test_rejects_non_string(self) -> None:
        assert sanitize_choice_key(None) == ("", "choice must be a string")

    def test_length_limit(self) -> None:
        assert sanitize_choice_key("k" * 128)[1] is None
        assert sanitize_choice_key("k" * 129)[1] == "choice must be at most 128 characters"
