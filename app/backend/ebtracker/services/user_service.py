"""User directory used for staffing and role-based notification routing."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ebtracker.core.auth import RequestUserContext
from ebtracker.core.errors import Conflict, NotFound, ValidationError
from ebtracker.models.entities import Role, User
from ebtracker.policy.oracle import Entity
from ebtracker.services.base import EntityService, as_str, iso, provided_fields


@dataclass(slots=True)
class UserCreateData:
    uid: str
    name: str
    role: Role
    email: str | None = None


@dataclass(slots=True)
class UserUpdateData:
    role: Role | None = None
    active: bool | None = None
    department: str | None = None


class UserService(EntityService):
    entity = Entity.USER

    def list_users(self, *, context: RequestUserContext, role: Role | None = None) -> list[User]:
        self._authorize(context, "list_all")
        return list(self.repository.list_users(role=role))

    def create_user(self, *, context: RequestUserContext, data: UserCreateData) -> User:
        """Register a directory entry ahead of the person's first sign-in."""

        self._authorize(context, "create")
        uid = data.uid.strip()
        if self.repository.get_user_by_uid(uid) is not None:
            raise Conflict(f"User {uid} already exists.")

        now = datetime.utcnow()
        user = User(
            uid=uid,
            name=data.name.strip(),
            email=data.email.strip().lower() if data.email else None,
            role=data.role,
            active=True,
            created_at=now,
            updated_at=now,
        )
        self.repository.add(user)
        self._log_activity(context, "user_created", f"{user.name} added as {user.role.value}", record_id=user.id)
        return self._commit(user)

    def update_user(self, *, context: RequestUserContext, uid: str, data: UserUpdateData) -> User:
        """Change a person's role, department or active flag.

        An assigned role sticks: later sign-ins no longer overwrite it from
        identity claims. Deactivated users are refused at authentication.
        """

        self._authorize(context, "update")
        user = self.repository.get_user_by_uid(uid)
        if user is None:
            raise NotFound("User not found.")
        changes = provided_fields(data)
        if uid == context.uid and changes.get("active") is False:
            raise ValidationError("You cannot deactivate your own account.", fields=["active"])

        if "role" in changes:
            user.role = changes["role"]
            user.role_assigned_by_uid = context.uid
        if "active" in changes:
            user.active = changes["active"]
        if "department" in changes:
            user.department = changes["department"].strip() or None
        user.updated_at = datetime.utcnow()

        summary = ", ".join(f"{key}={as_str(value)}" for key, value in changes.items())
        self._log_activity(context, "user_updated", f"{user.name} updated ({summary})", record_id=user.id)
        return self._commit(user)

    @staticmethod
    def serialize_user(user: User) -> dict[str, Any]:
        return {
            "id": str(user.id),
            "uid": user.uid,
            "name": user.name,
            "email": user.email,
            "role": user.role.value,
            "active": user.active,
            "department": user.department,
            "last_seen_at": iso(user.last_seen_at),
        }
