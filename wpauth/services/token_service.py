"""Signed session cookie for the authorization server's own login (ES256).

The session JWT only proves "this browser signed in to the auth server";
it is what /oauth2/v1/authorize consults to find the resource owner.  It
is never accepted as an API credential: OAuth2 access tokens are opaque
random strings resolved through the token store.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import jwt
from cryptography.hazmat.primitives.asymmetric import ec

# Dev/test: an ephemeral EC key pair per process.  Restarting the server
# signs everyone out of the auth server (issued OAuth2 tokens survive).
_private_key = ec.generate_private_key(ec.SECP256R1())
_public_key = _private_key.public_key()

ALGORITHM = "ES256"
ISSUER = "wpauth"
SESSION_AUDIENCE = "wpauth-session"
SESSION_TTL_MIN = 30
SESSION_COOKIE = "wpauth_session"


def create_session_token(*, sub: str) -> str:
    now = datetime.now(UTC)
    payload = {
        "sub": sub,
        "iss": ISSUER,
        "aud": SESSION_AUDIENCE,
        "exp": now + timedelta(minutes=SESSION_TTL_MIN),
        "iat": now,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _private_key, algorithm=ALGORITHM)


def decode_session_token(token: str) -> dict:
    """Verify a session JWT; algorithm and audience are pinned.

    Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError on failure.
    """
    return jwt.decode(
        token,
        _public_key,
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        audience=SESSION_AUDIENCE,
        options={"require": ["sub", "exp", "iat", "jti"]},
    )
