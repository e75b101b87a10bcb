"""Current user endpoint."""

from fastapi import APIRouter, Depends

from ebtracker.core.auth import RequestUserContext, get_current_user_context
from ebtracker.core.errors import success_response

router = APIRouter(prefix="/me", tags=["me"])


@router.get("")
def get_me(context: RequestUserContext = Depends(get_current_user_context)) -> dict[str, object]:
    """Return the identity resolved for this request."""

    return success_response(
        {
            "uid": context.uid,
            "role": context.role.value,
            "name": context.name,
            "email": context.email,
            "is_admin": context.is_admin,
        }
    )
