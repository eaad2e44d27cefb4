"""Tests for the bearer token gate."""

import pytest

from services.auth import authorize


class TestAuthorize:

    def test_exact_token_passes(self):
        assert authorize("Bearer s3cret", "s3cret") is True

    @pytest.mark.parametrize("header", [
        None,
        "",
        "s3cret",
        "Bearer",
        "Bearer ",
        "bearer s3cret",
        "Bearer s3cret ",
        "Bearer s3cre",
        "Bearer s3cret-extra",
        "Basic s3cret",
    ])
    def test_anything_else_fails(self, header):
        assert authorize(header, "s3cret") is False

    def test_empty_secret_denies_everything(self):
        assert authorize("Bearer ", "") is False
        assert authorize("Bearer anything", "") is False

    def test_non_ascii_header(self):
        assert authorize("Bearer pässwörd", "pässwörd") is True
        assert authorize("Bearer passwörd", "pässwörd") is False
