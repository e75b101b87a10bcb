"""Dashboard endpoints for company, project and personal figures."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ebtracker.core.auth import RequestUserContext, get_current_user_context
from ebtracker.core.errors import success_response
from ebtracker.db.dependencies import get_db_session
from ebtracker.services.dashboard_service import DashboardService

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def _service(db: Session) -> DashboardService:
    return DashboardService(db)


@router.get("/stats")
def get_company_stats(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return success_response(_service(db).company_stats(context=context))


@router.get("/projects-summary")
def get_projects_summary(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return success_response(_service(db).projects_summary(context=context))


@router.get("/team-performance")
def get_team_performance(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return success_response(_service(db).team_performance(context=context))


@router.get("/my-dashboard")
def get_my_dashboard(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return success_response(_service(db).personal(context=context))
