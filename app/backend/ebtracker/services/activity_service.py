"""Activity feed, manual log entries, notification re-delivery and the in-app inbox."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from ebtracker.core.auth import RequestUserContext
from ebtracker.core.errors import NotFound, ValidationError
from ebtracker.models.entities import Activity, InboxNotification, NotificationKind
from ebtracker.policy.effects import ActivityEntry
from ebtracker.policy.oracle import Entity, ensure_can_perform
from ebtracker.services.base import EntityService, as_str, iso
from ebtracker.services.dispatcher import DeliveryOutcome

logger = logging.getLogger(__name__)

INBOX_LIST_LIMIT = 50


@dataclass(slots=True)
class ActivityFilter:
    limit: int | None = None
    project_id: UUID | None = None
    entity_type: str | None = None
    actor_uid: str | None = None
    since: datetime | None = None
    until: datetime | None = None


@dataclass(slots=True)
class InboxNotificationCreateData:
    user_uid: str
    title: str
    message: str
    kind: NotificationKind = NotificationKind.INFO
    link: str | None = None


@dataclass(slots=True)
class ActivityCreateData:
    activity_type: str
    details: str
    entity_type: str | None = None
    entity_id: str | None = None
    project_id: UUID | None = None


class ActivityService(EntityService):
    entity = Entity.ACTIVITY

    def list_activities(self, *, context: RequestUserContext, filters: ActivityFilter) -> list[Activity]:
        self._authorize(context, "list_all")
        if filters.since and filters.until and filters.until < filters.since:
            raise ValidationError("'until' must not be before 'since'.", fields=["until"])

        limit = min(filters.limit or self.settings.activity_list_limit, self.settings.activity_list_limit)
        return list(
            self.repository.list_activities(
                limit=limit,
                project_id=filters.project_id,
                entity_type=filters.entity_type,
                actor_uid=filters.actor_uid,
                since=filters.since,
                until=filters.until,
            )
        )

    def log_activity(self, *, context: RequestUserContext, data: ActivityCreateData) -> Activity:
        self._authorize(context, "create")
        if data.project_id is not None:
            self._project_or_404(data.project_id)

        activity = self.engine.dispatcher.record_activity(
            ActivityEntry(
                activity_type=data.activity_type.strip(),
                details=data.details.strip(),
                entity_type=data.entity_type,
                entity_id=data.entity_id,
                project_id=data.project_id,
            ),
            actor=context,
        )
        return self._commit(activity)

    @staticmethod
    def serialize_activity(activity: Activity) -> dict[str, Any]:
        return {
            "id": str(activity.id),
            "activity_type": activity.activity_type,
            "details": activity.details,
            "actor_uid": activity.actor_uid,
            "actor_name": activity.actor_name,
            "actor_role": activity.actor_role,
            "entity_type": activity.entity_type,
            "entity_id": activity.entity_id,
            "project_id": str(activity.project_id) if activity.project_id else None,
            "created_at": iso(activity.created_at),
        }


class NotificationService(EntityService):
    entity = Entity.NOTIFICATION

    def retry_pending(self, *, context: RequestUserContext) -> list[DeliveryOutcome]:
        """Re-deliver outbox rows that are still pending or previously failed."""

        ensure_can_perform(context, self.entity, "retry")
        outcomes = self.engine.dispatcher.retry_pending()
        logger.info("Retried %d notification(s) for %s", len(outcomes), context.uid)
        return outcomes

    @staticmethod
    def serialize_outcome(outcome: DeliveryOutcome) -> dict[str, Any]:
        return {
            "idempotency_key": outcome.idempotency_key,
            "status": outcome.status.value,
            "error": outcome.error,
        }

    # ---------- In-app inbox ----------
    def create_notification(
        self, *, context: RequestUserContext, data: InboxNotificationCreateData
    ) -> InboxNotification:
        self._authorize(context, "create")
        if self.repository.get_user_by_uid(data.user_uid) is None:
            raise NotFound("User not found.")

        notification = self.repository.add(
            InboxNotification(
                user_uid=data.user_uid,
                title=data.title.strip(),
                message=data.message.strip(),
                kind=data.kind,
                link=data.link,
                read=False,
                created_at=datetime.utcnow(),
            )
        )
        return self._commit(notification)

    def list_inbox(
        self, *, context: RequestUserContext, read: bool | None = None, limit: int | None = None
    ) -> list[InboxNotification]:
        """The caller's own notifications, newest first."""

        limit = min(limit or INBOX_LIST_LIMIT, INBOX_LIST_LIMIT)
        return list(self.repository.list_inbox(context.uid, read=read, limit=limit))

    def unread_count(self, *, context: RequestUserContext) -> int:
        return self.repository.count_unread(context.uid)

    def mark_read(self, *, context: RequestUserContext, notification_id: UUID) -> InboxNotification:
        notification = self._get_or_404(InboxNotification, notification_id, "Notification")
        self._authorize(context, "update", notification)
        if notification.read:
            return notification
        notification.read = True
        notification.read_at = datetime.utcnow()
        return self._commit(notification)

    def mark_all_read(self, *, context: RequestUserContext) -> int:
        updated = self.repository.mark_inbox_read(context.uid, now=datetime.utcnow())
        self.db.commit()
        return updated

    def delete_notification(self, *, context: RequestUserContext, notification_id: UUID) -> None:
        notification = self._get_or_404(InboxNotification, notification_id, "Notification")
        self._authorize(context, "delete", notification)
        self.repository.delete(notification)
        self.db.commit()

    def delete_read(self, *, context: RequestUserContext) -> int:
        deleted = self.repository.delete_read_inbox(context.uid)
        self.db.commit()
        return deleted

    @staticmethod
    def serialize_notification(notification: InboxNotification) -> dict[str, Any]:
        return {
            "id": str(notification.id),
            "user_uid": notification.user_uid,
            "title": notification.title,
            "message": notification.message,
            "kind": as_str(notification.kind),
            "link": notification.link,
            "source_key": notification.source_key,
            "read": notification.read,
            "read_at": iso(notification.read_at),
            "created_at": iso(notification.created_at),
        }
