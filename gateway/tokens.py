from __future__ import annotations

"""
Capability token codec.

A capability token is a compact JWT (header.payload.signature, base64url)
signed with HS256 under a server-only secret. The payload carries exactly
what the widget backend needs:

    {
      "siteId": <str>, "collectionId": <str>,
      "mapboxToken": <str>,          # provider key, never sent separately
      "iat": <int>, "exp": <int>     # epoch seconds
    }

There is no revocation list; `exp` is the only lifecycle control. Changing a
site's provider key or scope means issuing a new token and replacing the
embedded one.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import jwt

from common.errors import ExpiredToken, InvalidToken
from common.logging_setup import get_logger
from common.types import TokenScope
from common.utils import epoch_now


log = get_logger(__name__)

ALGORITHM = "HS256"
_SCOPE_CLAIMS = ("siteId", "collectionId", "mapboxToken")


@dataclass(frozen=True)
class CapabilityPayload:
    site_id: str
    collection_id: str
    map_provider_key: str
    issued_at: int
    expires_at: int

    @property
    def scope(self) -> TokenScope:
        return TokenScope(self.site_id, self.collection_id, self.map_provider_key)

    def to_claims(self) -> Dict[str, Any]:
        return {
            "siteId": self.site_id,
            "collectionId": self.collection_id,
            "mapboxToken": self.map_provider_key,
            "iat": int(self.issued_at),
            "exp": int(self.expires_at),
        }

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "CapabilityPayload":
        for k in _SCOPE_CLAIMS:
            v = claims.get(k)
            if not isinstance(v, str) or not v:
                raise InvalidToken(f"claim {k!r} missing or not a string")
        try:
            iat = int(claims["iat"])
            exp = int(claims["exp"])
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidToken(f"bad timestamp claims: {e}") from e
        return cls(
            site_id=claims["siteId"],
            collection_id=claims["collectionId"],
            map_provider_key=claims["mapboxToken"],
            issued_at=iat,
            expires_at=exp,
        )


def _check_secret(secret: str) -> None:
    if not secret:
        raise ValueError("token secret must be a non-empty string")


def encode(payload: CapabilityPayload, secret: str) -> str:
    """Sign `payload` and return the compact token string."""
    _check_secret(secret)
    return jwt.encode(payload.to_claims(), secret, algorithm=ALGORITHM)


def decode(token: str, secret: str, now: Optional[int] = None) -> CapabilityPayload:
    """
    Verify signature and expiry.

    Raises:
        InvalidToken: malformed, wrong algorithm, bad signature/secret, missing claims
        ExpiredToken: signature is good but now >= exp
    """
    _check_secret(secret)
    if not token or not isinstance(token, str):
        raise InvalidToken("empty token")
    try:
        # expiry is checked below against the injectable clock
        claims = jwt.decode(
            token,
            secret,
            algorithms=[ALGORITHM],
            options={
                "verify_exp": False,
                "verify_iat": False,
                "verify_nbf": False,
                "require": ["iat", "exp"],
            },
        )
    except jwt.InvalidTokenError as e:
        raise InvalidToken(f"{type(e).__name__}: {e}") from e

    payload = CapabilityPayload.from_claims(claims)
    t = epoch_now() if now is None else int(now)
    if t >= payload.expires_at:
        raise ExpiredToken(f"expired at {payload.expires_at}, now {t}")
    return payload


def inspect(token: str) -> Dict[str, Any]:
    """
    Debug helper: the unverified header and payload segments.
    Never use the result for authorization.
    """
    try:
        header = jwt.get_unverified_header(token)
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        raise InvalidToken(f"{type(e).__name__}: {e}") from e
    return {"header": header, "payload": claims}
