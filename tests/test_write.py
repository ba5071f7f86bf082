"""Tests for the write token gate."""

from __future__ import annotations

import pytest

from fpt.errors import InvalidToken, WriteDisabled
from fpt.models import WriteCredential
from fpt.write import assert_write_allowed, generate_write_token


class TestAssertWriteAllowed:
    """Gate decisions."""

    def test_disabled(self) -> None:
        with pytest.raises(WriteDisabled):
            assert_write_allowed(WriteCredential(enabled=False, token="secret"), "secret")

    def test_enabled_without_configured_token(self) -> None:
        with pytest.raises(WriteDisabled):
            assert_write_allowed(WriteCredential(enabled=True, token=None), "anything")

    def test_missing_token(self) -> None:
        with pytest.raises(InvalidToken):
            assert_write_allowed(WriteCredential(enabled=True, token="secret"), None)

    def test_empty_token(self) -> None:
        with pytest.raises(InvalidToken):
            assert_write_allowed(WriteCredential(enabled=True, token="secret"), "")

    def test_mismatched_token(self) -> None:
        with pytest.raises(InvalidToken):
            assert_write_allowed(WriteCredential(enabled=True, token="secret"), "secreT")

    def test_prefix_is_not_a_match(self) -> None:
        with pytest.raises(InvalidToken):
            assert_write_allowed(WriteCredential(enabled=True, token="secret"), "secret2")

    def test_exact_match(self) -> None:
        assert_write_allowed(WriteCredential(enabled=True, token="secret"), "secret")

    def test_status_codes(self) -> None:
        assert WriteDisabled("x").status_code == 403
        assert InvalidToken("x").status_code == 401


class TestGenerateWriteToken:
    """Token generation."""

    def test_tokens_are_urlsafe_and_unique(self) -> None:
        first, second = generate_write_token(), generate_write_token()
        assert first != second
        assert len(first) == 32
        assert all(char.isalnum() or char in "-_" for char in first)
