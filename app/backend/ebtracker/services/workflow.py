"""Runs state-machine transitions against the database."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy.orm import Session

from ebtracker.core.auth import RequestUserContext
from ebtracker.integrations.email import NotificationSender
from ebtracker.policy.machine import TransitionResult, transition
from ebtracker.policy.oracle import Entity
from ebtracker.repositories.workflow_repository import WorkflowRepository
from ebtracker.services.dispatcher import EffectDispatcher

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """Compute, persist and dispatch one transition.

    The status write is a compare-and-swap on the source status. It shares a
    transaction with ledger increments, activity rows and outbox rows, so two
    racing approvals of the same record produce exactly one set of effects.
    Notifications are delivered only after that transaction commits.
    """

    def __init__(self, db: Session, *, sender: NotificationSender) -> None:
        self.db = db
        self.repository = WorkflowRepository(db)
        self.dispatcher = EffectDispatcher(db, sender=sender)

    def apply(
        self,
        entity: Entity,
        record: Any,
        action: str,
        payload: Mapping[str, Any] | None = None,
        *,
        context: RequestUserContext,
        project: Any | None = None,
    ) -> TransitionResult:
        result = transition(entity, record, action, payload, context, actor_name=context.name, project=project)

        try:
            self.repository.compare_and_set_status(
                entity,
                result.record_id,
                action=action,
                expected_status=result.source_status,
                changes=result.changes,
            )
            outbox_ids = self.dispatcher.apply(result.effects, actor=context)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "%s %s %s: %s -> %s by %s",
            entity.value,
            result.record_id,
            action,
            result.source_status,
            result.target_status.value,
            context.uid,
        )
        self.dispatcher.deliver(outbox_ids)
        return result
