"""Authentication context extraction and role guard utilities."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.orm import Session

from ebtracker.core.config import get_settings
from ebtracker.core.errors import Unauthorized
from ebtracker.db.dependencies import get_db_session
from ebtracker.integrations.identity import Identity, IdentityProvider, get_identity_provider
from ebtracker.models.entities import Role, User

ADMIN_ROLES = frozenset({Role.COO, Role.DIRECTOR})


@dataclass(frozen=True)
class RequestUserContext:
    """Authenticated request actor resolved from the identity provider."""

    uid: str
    role: Role
    name: str
    email: str | None

    @property
    def is_admin(self) -> bool:
        """Whether the actor holds a company-wide management role."""

        return self.role in ADMIN_ROLES


def _identity_from_dev_headers(
    x_user_id: str | None,
    x_user_role: str | None,
    x_user_name: str | None,
    x_user_email: str | None,
) -> Identity:
    settings = get_settings()
    uid = (x_user_id or settings.auth_dev_uid).strip()
    raw_role = (x_user_role or settings.auth_dev_role).strip().lower()
    try:
        role = Role(raw_role)
    except ValueError:
        raise Unauthorized("Unknown role in identity headers.") from None

    if x_user_id:
        name = (x_user_name or uid).strip()
        email = x_user_email.strip().lower() if x_user_email else None
    else:
        name = settings.auth_dev_name
        email = settings.auth_dev_email
    return Identity(uid=uid, role=role, name=name, email=email)


def _resolve_identity(
    provider: IdentityProvider,
    authorization: str | None,
    x_user_id: str | None,
    x_user_role: str | None,
    x_user_name: str | None,
    x_user_email: str | None,
) -> Identity:
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token:
            raise Unauthorized("Malformed Authorization header.")
        identity = provider.verify_token(token.strip())
        if identity is None:
            raise Unauthorized("Invalid or expired token.")
        return identity

    if get_settings().auth_allow_dev_principal:
        return _identity_from_dev_headers(x_user_id, x_user_role, x_user_name, x_user_email)

    raise Unauthorized("Missing bearer token.")


def _upsert_user(db: Session, identity: Identity) -> User:
    user = db.scalar(select(User).where(User.uid == identity.uid))
    now = datetime.utcnow()

    if user is None:
        user = User(
            uid=identity.uid,
            email=identity.email,
            name=identity.name,
            role=identity.role,
            active=True,
            last_seen_at=now,
            created_at=now,
            updated_at=now,
        )
        db.add(user)
        db.flush()
        return user

    changed = False
    if identity.email and user.email != identity.email:
        user.email = identity.email
        changed = True
    if user.name != identity.name:
        user.name = identity.name
        changed = True
    if user.role_assigned_by_uid is None and user.role != identity.role:
        user.role = identity.role
        changed = True

    user.last_seen_at = now
    if changed:
        user.updated_at = now
    db.flush()
    return user


def get_current_user_context(
    authorization: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    x_user_role: str | None = Header(default=None, alias="X-User-Role"),
    x_user_name: str | None = Header(default=None, alias="X-User-Name"),
    x_user_email: str | None = Header(default=None, alias="X-User-Email"),
    db: Session = Depends(get_db_session),
    identity_provider: IdentityProvider = Depends(get_identity_provider),
) -> RequestUserContext:
    """Resolve the current request actor and record it in the user directory.

    Header strategy:
    - ``Authorization: Bearer <jwt>`` is always honoured.
    - Without a token, trusted ``X-User-*`` headers (or the configured
      development principal) are accepted while ``auth_allow_dev_principal``
      is enabled.
    """

    identity = _resolve_identity(
        identity_provider, authorization, x_user_id, x_user_role, x_user_name, x_user_email
    )
    user = _upsert_user(db, identity)
    db.commit()
    if not user.active:
        raise Unauthorized("User account is deactivated.")

    return RequestUserContext(uid=user.uid, role=user.role, name=user.name, email=user.email)
