"""Tests for token fingerprints."""

import hashlib

from previewkit.crypto import FINGERPRINT_LENGTH, token_fingerprint


class TestTokenFingerprint:
    def test_is_sha256_prefix(self):
        expected = hashlib.sha256(b"owner-token").hexdigest()[:FINGERPRINT_LENGTH]
        assert token_fingerprint("owner-token") == expected

    def test_never_contains_token(self):
        assert "owner-token" not in token_fingerprint("owner-token")

    def test_missing_token(self):
        assert token_fingerprint(None) == "<none>"
        assert token_fingerprint("") == "<none>"
