from __future__ import annotations

import base64
import hashlib
import hmac
import re
import secrets

# PKCE (RFC 7636) helpers shared by the authorization server (/authorize and
# /token) and the client lifecycle manager (login initiation).  Only the
# S256 method is supported; "plain" gives no protection against a leaked
# authorization request.

SUPPORTED_METHOD = "S256"

VERIFIER_MIN_LEN = 43
VERIFIER_MAX_LEN = 128

# Unreserved characters: ALPHA / DIGIT / "-" / "." / "_" / "~"
_VERIFIER_RE = re.compile(r"^[A-Za-z0-9\-._~]{43,128}$")
# A S256 challenge is always 32 bytes base64url-encoded without padding.
_CHALLENGE_RE = re.compile(r"^[A-Za-z0-9\-_]{43}$")


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def generate_code_verifier(num_bytes: int = 32) -> str:
    # 32 random bytes encode to 43 chars, the minimum verifier length;
    # 96 bytes encode to the 128-char maximum.
    if not 32 <= num_bytes <= 96:
        raise ValueError("num_bytes must be between 32 and 96")
    return _b64url(secrets.token_bytes(num_bytes))


def generate_state() -> str:
    return secrets.token_hex(16)


def compute_code_challenge(code_verifier: str) -> str:
    return _b64url(hashlib.sha256(code_verifier.encode("ascii")).digest())


def is_valid_verifier(code_verifier: str) -> bool:
    return bool(_VERIFIER_RE.fullmatch(code_verifier))


def is_valid_challenge(code_challenge: str) -> bool:
    return bool(_CHALLENGE_RE.fullmatch(code_challenge))


def verify_code_challenge(code_verifier: str, expected_challenge: str) -> bool:
    """Recompute the challenge and compare in constant time."""
    if not is_valid_verifier(code_verifier):
        return False
    actual_challenge = compute_code_challenge(code_verifier)
    return hmac.compare_digest(actual_challenge, expected_challenge)
