"""Identity provider adapter.

Bearer tokens are HS256 JWTs carrying ``sub``, ``role``, ``name`` and
``email`` claims. The decoded identity is trusted as-is by the rest of the
service.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Protocol

from jose import JWTError, jwt

from ebtracker.core.config import get_settings
from ebtracker.models.entities import Role

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    uid: str
    role: Role
    name: str
    email: str | None = None


class IdentityProvider(Protocol):
    def verify_token(self, token: str) -> Identity | None:
        ...

    def create_access_token(self, identity: Identity, expires_delta: timedelta | None = None) -> str:
        ...


class JwtIdentityProvider:
    def __init__(self, *, secret: str, algorithm: str = "HS256", token_ttl_minutes: int = 60) -> None:
        self._secret = secret
        self._algorithm = algorithm
        self._token_ttl = timedelta(minutes=token_ttl_minutes)

    def create_access_token(self, identity: Identity, expires_delta: timedelta | None = None) -> str:
        now = datetime.utcnow()
        claims = {
            "sub": identity.uid,
            "role": identity.role.value,
            "name": identity.name,
            "email": identity.email,
            "iat": now,
            "exp": now + (expires_delta or self._token_ttl),
        }
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def verify_token(self, token: str) -> Identity | None:
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JWTError as exc:
            logger.info("Rejected bearer token: %s", exc)
            return None

        uid = claims.get("sub")
        role = claims.get("role")
        if not uid or not role:
            return None

        try:
            resolved_role = Role(role)
        except ValueError:
            logger.info("Rejected bearer token with unknown role %r", role)
            return None

        return Identity(
            uid=str(uid),
            role=resolved_role,
            name=str(claims.get("name") or uid),
            email=claims.get("email"),
        )


@lru_cache
def get_identity_provider() -> IdentityProvider:
    settings = get_settings()
    return JwtIdentityProvider(
        secret=settings.auth_jwt_secret,
        algorithm=settings.auth_jwt_algorithm,
        token_ttl_minutes=settings.auth_token_ttl_minutes,
    )
