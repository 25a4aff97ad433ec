"""
Session tokens: RS256 JWTs that carry the user's identity and upstream access token.

Claims: iss (configured app name), sub (profile URL), jti (numeric Mastodon user id),
iat, nbf, exp (iat + 7 days) and access_token. Tokens are never stored, renewed or revoked
server-side; expiry is the only way one ends.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey

from mastobridge.config import SESSION_TOKEN_EXPIRES, SIGNING_KEY_ID
from mastobridge.errors import UnauthorizedError

logger = logging.getLogger(__name__)

ALGORITHM = "RS256"
ACCESS_TOKEN_CLAIM = "access_token"
REQUIRED_CLAIMS = ["exp", "sub", "jti", ACCESS_TOKEN_CLAIM]


@dataclass(frozen=True)
class SessionClaims:
    subject: str
    user_id: str
    access_token: str
    issuer: str | None
    expires_at: datetime


def issue(
    subject_url: str,
    access_token: str,
    user_id: str,
    issuer: str,
    signing_key: RSAPrivateKey,
    now: datetime | None = None,
) -> str:
    """Sign a session token for the given identity."""
    now = now or datetime.now(timezone.utc)
    payload = {
        "iss": issuer,
        "sub": subject_url,
        "jti": str(user_id),
        "iat": int(now.timestamp()),
        "nbf": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=SESSION_TOKEN_EXPIRES)).timestamp()),
        ACCESS_TOKEN_CLAIM: access_token,
    }
    token = jwt.encode(
        payload,
        signing_key,
        algorithm=ALGORITHM,
        headers={"kid": SIGNING_KEY_ID, "typ": "JWT"},
    )
    if isinstance(token, bytes):
        token = token.decode("utf-8")
    return token


def verify(token: str, public_key: RSAPublicKey, now: datetime | None = None) -> SessionClaims:
    """
    Check signature, expiry and required claims. Raises UnauthorizedError on any failure.
    `now` lets callers evaluate the token at another instant (exp/nbf checks are done here).
    """
    try:
        payload = jwt.decode(
            token,
            public_key,
            algorithms=[ALGORITHM],
            options={"require": REQUIRED_CLAIMS, "verify_exp": False, "verify_nbf": False},
        )
    except jwt.MissingRequiredClaimError as e:
        raise UnauthorizedError("token missing required claims", reason=str(e)) from e
    except jwt.InvalidTokenError as e:
        logger.debug("session token verification failed: %s", e)
        raise UnauthorizedError("token verification failed", reason=str(e)) from e

    now_ts = int((now or datetime.now(timezone.utc)).timestamp())
    try:
        exp = int(payload["exp"])
        nbf = int(payload.get("nbf", 0))
    except (TypeError, ValueError) as e:
        raise UnauthorizedError("token verification failed", reason="non-numeric exp/nbf") from e
    if exp <= now_ts:
        raise UnauthorizedError("token expired")
    if nbf > now_ts:
        raise UnauthorizedError("token not yet valid")

    for claim in ("sub", "jti", ACCESS_TOKEN_CLAIM):
        if not isinstance(payload.get(claim), str) or not payload[claim]:
            raise UnauthorizedError("token missing required claims", reason=f"empty {claim}")

    return SessionClaims(
        subject=payload["sub"],
        user_id=payload["jti"],
        access_token=payload[ACCESS_TOKEN_CLAIM],
        issuer=payload.get("iss"),
        expires_at=datetime.fromtimestamp(exp, timezone.utc),
    )
