"""Token fingerprints for log lines."""

from __future__ import annotations

import hashlib

# Hex chars kept from the digest; enough to correlate log lines, useless as a credential
FINGERPRINT_LENGTH = 12


def token_fingerprint(token: str | None) -> str:
    """Short sha256 prefix of a token. The only form a token may take in logs."""
    if not token:
        return "<none>"
    return hashlib.sha256(token.encode()).hexdigest()[:FINGERPRINT_LENGTH]
