"""Company, project, team and personal dashboard figures."""

from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy.orm import Session

from ebtracker.core.auth import RequestUserContext
from ebtracker.models.entities import ProjectStatus, ReviewStatus, Role
from ebtracker.policy.oracle import Entity, ensure_can_perform
from ebtracker.repositories.dashboard_repository import DashboardRepository
from ebtracker.repositories.workflow_repository import WorkflowRepository
from ebtracker.services.base import q2


def _month_bounds(today: date) -> tuple[date, date]:
    start = today.replace(day=1)
    if start.month == 12:
        return start, start.replace(year=start.year + 1, month=1)
    return start, start.replace(month=start.month + 1)


def _by_status(counts: dict[str, int], statuses: list[str]) -> dict[str, int]:
    return {status: counts.get(status, 0) for status in statuses}


class DashboardService:
    entity = Entity.DASHBOARD

    def __init__(self, db: Session) -> None:
        self.db = db
        self.dashboards = DashboardRepository(db)
        self.repository = WorkflowRepository(db)

    def company_stats(self, *, context: RequestUserContext) -> dict[str, Any]:
        ensure_can_perform(context, self.entity, "company_stats")

        projects = self.dashboards.project_status_counts()
        proposals = self.dashboards.proposal_status_counts()
        timesheets = self.dashboards.timesheet_status_counts()
        users = self.dashboards.user_role_counts()
        review_statuses = [status.value for status in ReviewStatus]
        return {
            "projects": {
                "total": sum(projects.values()),
                **_by_status(
                    projects, [ProjectStatus.ACTIVE.value, ProjectStatus.COMPLETED.value, ProjectStatus.ON_HOLD.value]
                ),
            },
            "proposals": {"total": sum(proposals.values()), **_by_status(proposals, review_statuses)},
            "timesheets": {
                "total": sum(timesheets.values()),
                **_by_status(timesheets, [ReviewStatus.PENDING.value, ReviewStatus.APPROVED.value]),
                "total_hours": str(q2(self.dashboards.approved_timesheet_hours())),
            },
            "users": {
                "total": sum(users.values()),
                "by_role": _by_status(users, [role.value for role in Role]),
            },
        }

    def projects_summary(self, *, context: RequestUserContext) -> dict[str, Any]:
        ensure_can_perform(context, self.entity, "projects_summary")

        count, allocated, used, progress = self.dashboards.project_totals()
        average = 0
        if count:
            average = int((Decimal(progress) / count).quantize(Decimal(1), rounding=ROUND_HALF_UP))
        return {
            "total_projects": count,
            "by_status": _by_status(
                self.dashboards.project_status_counts(), [status.value for status in ProjectStatus]
            ),
            "total_allocated_hours": str(q2(allocated)),
            "total_used_hours": str(q2(used)),
            "average_progress": average,
        }

    def team_performance(self, *, context: RequestUserContext) -> list[dict[str, Any]]:
        """Approved hours per user, highest first."""

        ensure_can_perform(context, self.entity, "team_performance")
        return [
            {"user_uid": uid, "user_name": name, "total_hours": str(q2(hours)), "entries_count": entries}
            for uid, name, hours, entries in self.dashboards.approved_hours_by_user()
        ]

    def personal(self, *, context: RequestUserContext, today: date | None = None) -> dict[str, Any]:
        ensure_can_perform(context, self.entity, "personal")

        led = {project.id: project for project in self.repository.list_projects(lead_uid=context.uid)}
        for project in self.repository.list_projects(designer_uid=context.uid):
            led.setdefault(project.id, project)
        month_start, next_month = _month_bounds(today or date.today())
        return {
            "projects": {
                "total": len(led),
                "active": sum(1 for project in led.values() if project.status == ProjectStatus.ACTIVE),
            },
            "timesheets": {
                "this_month": self.dashboards.timesheet_count_for_user(
                    context.uid, since=month_start, before=next_month
                ),
                "pending": self.dashboards.timesheet_count_for_user(context.uid, status=ReviewStatus.PENDING),
            },
            "notifications": {"unread": self.repository.count_unread(context.uid)},
        }
