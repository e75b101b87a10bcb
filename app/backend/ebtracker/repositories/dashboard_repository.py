"""Aggregate queries behind the dashboard endpoints."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ebtracker.models.entities import Project, Proposal, ReviewStatus, Timesheet, User


def _key(value: Any) -> str:
    return getattr(value, "value", value)


class DashboardRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _status_counts(self, model: Any) -> dict[str, int]:
        rows = self.db.execute(select(model.status, func.count()).group_by(model.status)).all()
        return {_key(status): count for status, count in rows}

    def project_status_counts(self) -> dict[str, int]:
        return self._status_counts(Project)

    def proposal_status_counts(self) -> dict[str, int]:
        return self._status_counts(Proposal)

    def timesheet_status_counts(self) -> dict[str, int]:
        return self._status_counts(Timesheet)

    def user_role_counts(self) -> dict[str, int]:
        rows = self.db.execute(select(User.role, func.count()).group_by(User.role)).all()
        return {_key(role): count for role, count in rows}

    def approved_timesheet_hours(self) -> Decimal:
        total = self.db.scalar(
            select(func.coalesce(func.sum(Timesheet.hours), 0)).where(Timesheet.status == ReviewStatus.APPROVED)
        )
        return Decimal(str(total or 0))

    def project_totals(self) -> tuple[int, Decimal, Decimal, int]:
        """Project count, allocated hours, used hours and summed progress."""

        count, allocated, used, progress = self.db.execute(
            select(
                func.count(Project.id),
                func.coalesce(func.sum(Project.allocated_hours), 0),
                func.coalesce(func.sum(Project.used_hours), 0),
                func.coalesce(func.sum(Project.progress_percentage), 0),
            )
        ).one()
        return count, Decimal(str(allocated)), Decimal(str(used)), int(progress)

    def approved_hours_by_user(self) -> list[tuple[str, str, Decimal, int]]:
        total_hours = func.sum(Timesheet.hours)
        rows = self.db.execute(
            select(Timesheet.user_uid, func.max(Timesheet.user_name), total_hours, func.count())
            .where(Timesheet.status == ReviewStatus.APPROVED)
            .group_by(Timesheet.user_uid)
            .order_by(total_hours.desc(), Timesheet.user_uid.asc())
        ).all()
        return [(uid, name, Decimal(str(hours)), entries) for uid, name, hours, entries in rows]

    def timesheet_count_for_user(
        self,
        user_uid: str,
        *,
        since: date | None = None,
        before: date | None = None,
        status: ReviewStatus | None = None,
    ) -> int:
        query = select(func.count()).select_from(Timesheet).where(Timesheet.user_uid == user_uid)
        if since is not None:
            query = query.where(Timesheet.work_date >= since)
        if before is not None:
            query = query.where(Timesheet.work_date < before)
        if status is not None:
            query = query.where(Timesheet.status == status)
        return self.db.scalar(query) or 0
