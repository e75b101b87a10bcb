"""Time-off requests."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any
from uuid import UUID

from ebtracker.core.auth import RequestUserContext
from ebtracker.core.errors import InvalidStateTransition, ValidationError
from ebtracker.models.entities import LeaveType, ReviewStatus, Role, TimeOffRequest
from ebtracker.policy.effects import notify
from ebtracker.policy.oracle import Entity, can_perform
from ebtracker.services.base import EntityService, iso, provided_fields

MANAGER_ROLES = (Role.COO, Role.DIRECTOR)


@dataclass(slots=True)
class TimeOffCreateData:
    start_date: date
    end_date: date
    leave_type: LeaveType
    reason: str | None = None


@dataclass(slots=True)
class TimeOffUpdateData:
    start_date: date | None = None
    end_date: date | None = None
    leave_type: LeaveType | None = None
    reason: str | None = None


def count_days(start_date: date, end_date: date) -> int:
    """Inclusive number of calendar days between two dates."""

    if end_date < start_date:
        raise ValidationError("End date must be on or after start date.", fields=["end_date"])
    return (end_date - start_date).days + 1


class TimeOffService(EntityService):
    entity = Entity.TIME_OFF

    def submit_request(self, *, context: RequestUserContext, data: TimeOffCreateData) -> TimeOffRequest:
        self._authorize(context, "create")
        days = count_days(data.start_date, data.end_date)

        now = datetime.utcnow()
        request = TimeOffRequest(
            user_uid=context.uid,
            user_name=context.name,
            user_email=context.email,
            start_date=data.start_date,
            end_date=data.end_date,
            days=days,
            leave_type=data.leave_type,
            reason=data.reason,
            status=ReviewStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        self.repository.add(request)
        self._log_activity(
            context,
            "time_off_requested",
            f"{context.name} requested {days} day(s) off ({data.leave_type.value})",
            record_id=request.id,
        )
        outbox_ids = self._queue(
            notify(
                "timeRequestSubmitted",
                self.repository.user_emails_for_roles(MANAGER_ROLES),
                idempotency_key=f"{self.entity.value}:{request.id}:submit",
                data={
                    "user_name": context.name,
                    "start_date": data.start_date.isoformat(),
                    "end_date": data.end_date.isoformat(),
                    "days": days,
                    "leave_type": data.leave_type.value,
                },
            )
        )
        return self._commit(request, outbox_ids=outbox_ids)

    def list_requests(
        self, *, context: RequestUserContext, status: ReviewStatus | None = None, user_uid: str | None = None
    ) -> list[TimeOffRequest]:
        if can_perform(context, self.entity, "list_all"):
            return list(self.repository.list_time_off_requests(user_uid=user_uid, status=status))
        return list(self.repository.list_time_off_requests(user_uid=context.uid, status=status))

    def get_request(self, *, context: RequestUserContext, request_id: UUID) -> TimeOffRequest:
        request = self._get_or_404(TimeOffRequest, request_id, "Time-off request")
        self._authorize(context, "read", request)
        return request

    def update_request(
        self, *, context: RequestUserContext, request_id: UUID, data: TimeOffUpdateData
    ) -> TimeOffRequest:
        request = self._get_or_404(TimeOffRequest, request_id, "Time-off request")
        self._authorize(context, "update", request)
        self._ensure_pending(request, "update")

        changes = provided_fields(data)
        changes["days"] = count_days(
            changes.get("start_date", request.start_date), changes.get("end_date", request.end_date)
        )
        for key, value in changes.items():
            setattr(request, key, value)
        request.updated_at = datetime.utcnow()
        return self._commit(request)

    def delete_request(self, *, context: RequestUserContext, request_id: UUID) -> None:
        request = self._get_or_404(TimeOffRequest, request_id, "Time-off request")
        self._authorize(context, "delete", request)
        self._ensure_pending(request, "delete")
        self.repository.delete(request)
        self.db.commit()

    def review_request(
        self, *, context: RequestUserContext, request_id: UUID, action: str, payload: dict[str, Any]
    ) -> TimeOffRequest:
        request = self._get_or_404(TimeOffRequest, request_id, "Time-off request")
        self.engine.apply(self.entity, request, action, payload, context=context)
        return self._get_or_404(TimeOffRequest, request_id, "Time-off request")

    def _ensure_pending(self, request: TimeOffRequest, action: str) -> None:
        if request.status != ReviewStatus.PENDING:
            raise InvalidStateTransition(entity=self.entity.value, current_status=request.status.value, action=action)

    @staticmethod
    def serialize_request(request: TimeOffRequest) -> dict[str, Any]:
        return {
            "id": str(request.id),
            "user_uid": request.user_uid,
            "user_name": request.user_name,
            "start_date": iso(request.start_date),
            "end_date": iso(request.end_date),
            "days": request.days,
            "leave_type": request.leave_type.value,
            "reason": request.reason,
            "status": request.status.value,
            "reviewed_by_uid": request.reviewed_by_uid,
            "reviewed_by_name": request.reviewed_by_name,
            "reviewed_at": iso(request.reviewed_at),
            "review_notes": request.review_notes,
            "created_at": iso(request.created_at),
            "updated_at": iso(request.updated_at),
        }
