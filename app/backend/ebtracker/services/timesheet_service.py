"""Timesheet entry, review and reporting."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from ebtracker.core.auth import RequestUserContext
from ebtracker.core.errors import Forbidden, InvalidStateTransition, ValidationError
from ebtracker.models.entities import ProjectStatus, ReviewStatus, Timesheet
from ebtracker.policy.oracle import Entity, can_perform
from ebtracker.services.base import EntityService, iso, provided_fields, q2

MAX_DAILY_HOURS = Decimal("24")


@dataclass(slots=True)
class TimesheetCreateData:
    project_id: UUID
    work_date: date
    hours: Decimal
    description: str | None = None
    task_type: str | None = None


@dataclass(slots=True)
class TimesheetUpdateData:
    work_date: date | None = None
    hours: Decimal | None = None
    description: str | None = None
    task_type: str | None = None


@dataclass(slots=True)
class TimesheetFilter:
    project_id: UUID | None = None
    user_uid: str | None = None
    status: ReviewStatus | None = None
    date_from: date | None = None
    date_to: date | None = None


def _validated_hours(hours: Decimal) -> Decimal:
    if hours <= 0 or hours > MAX_DAILY_HOURS:
        raise ValidationError("Hours must be greater than 0 and at most 24.", fields=["hours"])
    return q2(hours)


class TimesheetService(EntityService):
    entity = Entity.TIMESHEET

    def submit_timesheet(self, *, context: RequestUserContext, data: TimesheetCreateData) -> Timesheet:
        project = self._project_or_404(data.project_id)
        self._authorize(context, "create", project=project)
        if project.status != ProjectStatus.ACTIVE:
            raise InvalidStateTransition(entity=Entity.PROJECT.value, current_status=project.status.value, action="log_time")

        now = datetime.utcnow()
        timesheet = Timesheet(
            project_id=project.id,
            user_uid=context.uid,
            user_name=context.name,
            work_date=data.work_date,
            hours=_validated_hours(data.hours),
            description=data.description,
            task_type=data.task_type,
            status=ReviewStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self.repository.add(timesheet)
        return self._commit(timesheet)

    def list_timesheets(self, *, context: RequestUserContext, filters: TimesheetFilter) -> list[Timesheet]:
        user_uid = self._visible_user_uid(context, filters)
        return list(
            self.repository.list_timesheets(
                project_id=filters.project_id,
                user_uid=user_uid,
                status=filters.status,
                date_from=filters.date_from,
                date_to=filters.date_to,
            )
        )

    def get_timesheet(self, *, context: RequestUserContext, timesheet_id: UUID) -> Timesheet:
        timesheet = self._get_or_404(Timesheet, timesheet_id, "Timesheet")
        self._authorize(context, "read", timesheet, project=self._project_or_404(timesheet.project_id))
        return timesheet

    def update_timesheet(
        self, *, context: RequestUserContext, timesheet_id: UUID, data: TimesheetUpdateData
    ) -> Timesheet:
        timesheet = self._get_or_404(Timesheet, timesheet_id, "Timesheet")
        self._authorize(context, "update", timesheet)
        self._ensure_pending(timesheet, "update")

        changes = provided_fields(data)
        if "hours" in changes:
            changes["hours"] = _validated_hours(changes["hours"])
        for key, value in changes.items():
            setattr(timesheet, key, value)
        timesheet.updated_at = datetime.utcnow()
        return self._commit(timesheet)

    def delete_timesheet(self, *, context: RequestUserContext, timesheet_id: UUID) -> None:
        timesheet = self._get_or_404(Timesheet, timesheet_id, "Timesheet")
        self._authorize(context, "delete", timesheet)
        if timesheet.status == ReviewStatus.APPROVED:
            raise InvalidStateTransition(entity=self.entity.value, current_status=timesheet.status.value, action="delete")
        self.repository.delete(timesheet)
        self.db.commit()

    def review_timesheet(
        self,
        *,
        context: RequestUserContext,
        timesheet_id: UUID,
        action: str,
        payload: dict[str, Any],
    ) -> Timesheet:
        timesheet = self._get_or_404(Timesheet, timesheet_id, "Timesheet")
        project = self._project_or_404(timesheet.project_id)
        self.engine.apply(self.entity, timesheet, action, payload, context=context, project=project)
        return self._get_or_404(Timesheet, timesheet_id, "Timesheet")

    def summarize(self, *, context: RequestUserContext, filters: TimesheetFilter) -> dict[str, Any]:
        """Hour totals by status and by project over the visible timesheets."""

        timesheets = self.list_timesheets(context=context, filters=filters)
        by_status: dict[str, Decimal] = {status.value: Decimal("0.00") for status in ReviewStatus}
        by_project: dict[UUID, Decimal] = defaultdict(lambda: Decimal("0.00"))
        total = Decimal("0.00")
        for timesheet in timesheets:
            by_status[timesheet.status.value] += timesheet.hours
            by_project[timesheet.project_id] += timesheet.hours
            total += timesheet.hours

        return {
            "count": len(timesheets),
            "total_hours": str(q2(total)),
            "by_status": {status: str(q2(hours)) for status, hours in by_status.items()},
            "by_project": [
                {"project_id": str(project_id), "hours": str(q2(hours))} for project_id, hours in by_project.items()
            ],
        }

    def _visible_user_uid(self, context: RequestUserContext, filters: TimesheetFilter) -> str | None:
        """Narrow a listing to what the actor may see.

        Returns the user uid to filter on, or None for no user restriction.
        """

        if can_perform(context, self.entity, "list_all"):
            return filters.user_uid

        if filters.project_id is not None:
            project = self._project_or_404(filters.project_id)
            if can_perform(context, self.entity, "list_project", project=project):
                return filters.user_uid

        if filters.user_uid is not None and filters.user_uid != context.uid:
            raise Forbidden()
        return context.uid

    def _ensure_pending(self, timesheet: Timesheet, action: str) -> None:
        if timesheet.status != ReviewStatus.PENDING:
            raise InvalidStateTransition(entity=self.entity.value, current_status=timesheet.status.value, action=action)

    @staticmethod
    def serialize_timesheet(timesheet: Timesheet) -> dict[str, Any]:
        return {
            "id": str(timesheet.id),
            "project_id": str(timesheet.project_id),
            "user_uid": timesheet.user_uid,
            "user_name": timesheet.user_name,
            "work_date": iso(timesheet.work_date),
            "hours": str(timesheet.hours),
            "description": timesheet.description,
            "task_type": timesheet.task_type,
            "status": timesheet.status.value,
            "reviewed_by_uid": timesheet.reviewed_by_uid,
            "reviewed_by_name": timesheet.reviewed_by_name,
            "reviewed_at": iso(timesheet.reviewed_at),
            "review_notes": timesheet.review_notes,
            "created_at": iso(timesheet.created_at),
            "updated_at": iso(timesheet.updated_at),
        }
