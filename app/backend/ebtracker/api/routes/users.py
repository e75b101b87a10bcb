"""User directory endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ebtracker.core.auth import RequestUserContext, get_current_user_context
from ebtracker.core.errors import success_response
from ebtracker.db.dependencies import get_db_session
from ebtracker.models.entities import Role
from ebtracker.services.user_service import UserCreateData, UserService, UserUpdateData

router = APIRouter(prefix="/users", tags=["users"])


class UserCreatePayload(BaseModel):
    uid: str = Field(min_length=1, max_length=128)
    name: str = Field(min_length=1, max_length=255)
    role: Role
    email: str | None = Field(default=None, max_length=320)


class UserUpdatePayload(BaseModel):
    role: Role | None = None
    active: bool | None = None
    department: str | None = Field(default=None, max_length=128)


@router.get("")
def list_users(
    role: Role | None = None,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = UserService(db)
    rows = service.list_users(context=context, role=role)
    return success_response([service.serialize_user(user) for user in rows])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = UserService(db)
    user = service.create_user(
        context=context,
        data=UserCreateData(uid=payload.uid, name=payload.name, role=payload.role, email=payload.email),
    )
    return success_response(service.serialize_user(user), message="User created.")


@router.api_route("/{uid}", methods=["PUT", "PATCH"])
def update_user(
    uid: str,
    payload: UserUpdatePayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = UserService(db)
    user = service.update_user(
        context=context,
        uid=uid,
        data=UserUpdateData(role=payload.role, active=payload.active, department=payload.department),
    )
    return success_response(service.serialize_user(user), message="User updated.")
