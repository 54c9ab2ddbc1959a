"""Password hashing and JWT handling for API clients.

Browser logins use the signed session cookie instead; see ``deps.auth``.
"""

from __future__ import annotations

import hmac
from datetime import datetime, timedelta, timezone
from typing import Literal, Optional

import bcrypt
from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from ..schemas.auth import TokenResponse
from .config import settings

JWT_ALGORITHM = "HS256"
JWT_AUDIENCE = "invtrack-api"
JWT_ISSUER = "invtrack"

TokenKind = Literal["access", "refresh"]


# ----- passwords -------------------------------------------------------------


def hash_password(plain: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(plain.encode(), salt).decode()


def is_password_hash(stored: Optional[str]) -> bool:
    return bool(stored) and stored[:4] in ("$2a$", "$2b$", "$2y$")


def verify_password(plain: str, stored: Optional[str]) -> bool:
    """Check ``plain`` against the stored value.

    Accounts carried over from the old user table may still hold the raw
    password. Those compare in constant time and the caller re-hashes them.
    """

    if not stored:
        return False
    if not is_password_hash(stored):
        return hmac.compare_digest(plain.encode(), stored.encode())
    try:
        return bcrypt.checkpw(plain.encode(), stored.encode())
    except ValueError:
        # Malformed hash in the row.
        return False


# ----- tokens ----------------------------------------------------------------


class TokenClaims(BaseModel):
    sub: str
    typ: TokenKind
    exp: datetime
    iat: datetime
    role: Optional[str] = None
    dept: Optional[int] = None


def _lifetime(kind: TokenKind) -> timedelta:
    if kind == "refresh":
        return timedelta(days=settings.JWT_REFRESH_TTL_DAYS)
    return timedelta(minutes=settings.JWT_ACCESS_TTL_MIN)


def _sign(username: str, kind: TokenKind, role: Optional[str], department_id: Optional[int]) -> str:
    issued = datetime.now(tz=timezone.utc)
    claims = {
        "sub": username,
        "typ": kind,
        "iat": int(issued.timestamp()),
        "exp": int((issued + _lifetime(kind)).timestamp()),
        "aud": JWT_AUDIENCE,
        "iss": JWT_ISSUER,
        "role": role,
    }
    if department_id is not None:
        claims["dept"] = department_id
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=JWT_ALGORITHM)


def issue_token_pair(
    username: str,
    *,
    role: Optional[str] = None,
    department_id: Optional[int] = None,
) -> TokenResponse:
    return TokenResponse(
        access_token=_sign(username, "access", role, department_id),
        refresh_token=_sign(username, "refresh", role, department_id),
        expires_in=int(_lifetime("access").total_seconds()),
    )


def decode_token(token: str, *, verify_type: Optional[TokenKind] = None) -> TokenClaims:
    """Validate signature, audience, issuer and expiry; raise ``ValueError`` otherwise."""

    try:
        raw = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[JWT_ALGORITHM],
            audience=JWT_AUDIENCE,
            issuer=JWT_ISSUER,
        )
        claims = TokenClaims.model_validate(raw)
    except (JWTError, ValidationError) as exc:
        raise ValueError("Invalid or expired token") from exc
    if verify_type is not None and claims.typ != verify_type:
        raise ValueError(f"Expected a {verify_type} token")
    return claims
