from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ebtracker.core.auth import RequestUserContext
from ebtracker.models.entities import (
    Activity,
    InboxNotification,
    NotificationKind,
    NotificationOutbox,
    NotificationStatus,
    Project,
    ProjectStatus,
    Role,
    User,
)
from ebtracker.policy.effects import ActivityEntry, LedgerAdjustment, Notification
from ebtracker.services.dispatcher import EffectDispatcher
from helpers import BDM, COO, RecordingSender

ACTOR = RequestUserContext(uid="coo-1", role=Role.COO, name="Carol COO", email="coo@test.local")


def _create_project(db: Session, *, allocated: str = "100.00") -> Project:
    now = datetime.utcnow()
    project = Project(
        project_name="Depot Upgrade",
        project_code="PRJ-DEPOT",
        client_company="Rail Co",
        allocated_hours=Decimal(allocated),
        used_hours=Decimal("0.00"),
        remaining_hours=Decimal(allocated),
        progress_percentage=0,
        total_received=Decimal("0.00"),
        status=ProjectStatus.ACTIVE,
        assigned_designer_uids=[],
        created_by_uid="coo-1",
        created_by_name="Carol COO",
        created_at=now,
        updated_at=now,
    )
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


def _notification(key: str = "proposal:1:approve") -> Notification:
    return Notification(
        template="proposalApproved",
        recipients=("bdm@test.local",),
        idempotency_key=key,
        data={"project_name": "Depot Upgrade"},
    )


def test_apply_increments_ledger_and_recomputes_derived_fields(db_session: Session) -> None:
    project = _create_project(db_session)
    dispatcher = EffectDispatcher(db_session, sender=RecordingSender())

    dispatcher.apply(
        [
            LedgerAdjustment(project_id=project.id, field="used_hours", delta=Decimal("12.5")),
            LedgerAdjustment(project_id=project.id, field="used_hours", delta=Decimal("7.5")),
            ActivityEntry(activity_type="timesheet_approved", details="20h approved", project_id=project.id),
        ],
        actor=ACTOR,
    )
    db_session.commit()

    refreshed = db_session.get(Project, project.id)
    assert refreshed.used_hours == Decimal("20.00")
    assert refreshed.remaining_hours == Decimal("80.00")
    assert refreshed.progress_percentage == 20
    activity = db_session.scalar(select(Activity).where(Activity.project_id == project.id))
    assert activity.actor_uid == "coo-1"
    assert activity.actor_role == "coo"


def test_enqueue_is_idempotent_per_key(db_session: Session) -> None:
    dispatcher = EffectDispatcher(db_session, sender=RecordingSender())

    first = dispatcher.apply([_notification()], actor=ACTOR)
    second = dispatcher.apply([_notification()], actor=ACTOR)
    db_session.commit()

    assert len(first) == 1
    assert second == []
    assert db_session.scalar(select(func.count(NotificationOutbox.id))) == 1


def test_delivery_failure_is_recorded_not_raised(db_session: Session) -> None:
    sender = RecordingSender()
    sender.fail = True
    dispatcher = EffectDispatcher(db_session, sender=sender)
    outbox_ids = dispatcher.apply([_notification()], actor=ACTOR)
    db_session.commit()

    outcomes = dispatcher.deliver(outbox_ids)

    assert [outcome.status for outcome in outcomes] == [NotificationStatus.FAILED]
    row = db_session.get(NotificationOutbox, outbox_ids[0])
    assert row.status == NotificationStatus.FAILED
    assert row.attempts == 1
    assert "SMTP server unavailable" in row.last_error


def test_retry_redelivers_failed_rows_once(db_session: Session) -> None:
    sender = RecordingSender()
    sender.fail = True
    dispatcher = EffectDispatcher(db_session, sender=sender)
    outbox_ids = dispatcher.apply([_notification()], actor=ACTOR)
    db_session.commit()
    dispatcher.deliver(outbox_ids)

    sender.fail = False
    outcomes = dispatcher.retry_pending()

    assert [outcome.status for outcome in outcomes] == [NotificationStatus.SENT]
    assert sender.templates() == ["proposalApproved"]
    row = db_session.get(NotificationOutbox, outbox_ids[0])
    assert row.attempts == 2
    assert row.sent_at is not None
    assert dispatcher.retry_pending() == []
    assert dispatcher.deliver(outbox_ids) == []


def test_retry_gives_up_after_max_attempts(db_session: Session) -> None:
    sender = RecordingSender()
    sender.fail = True
    dispatcher = EffectDispatcher(db_session, sender=sender, max_attempts=2)
    dispatcher.apply([_notification()], actor=ACTOR)
    db_session.commit()

    assert len(dispatcher.retry_pending()) == 1
    assert len(dispatcher.retry_pending()) == 1
    assert dispatcher.retry_pending() == []


def test_failed_notification_does_not_fail_transition_and_can_be_retried(
    client: TestClient, sender: RecordingSender
) -> None:
    created = client.post(
        "/api/v1/proposals",
        json={"project_name": "Depot Upgrade", "client_company": "Rail Co", "estimated_value": "12000"},
        headers=BDM,
    )
    assert created.status_code == 201
    proposal_id = created.json()["data"]["id"]

    sender.fail = True
    approved = client.post(
        f"/api/v1/proposals/{proposal_id}/review", json={"status": "approved"}, headers=COO
    )
    assert approved.status_code == 200
    assert approved.json()["data"]["status"] == "approved"
    assert sender.sent == []

    sender.fail = False
    forbidden = client.post("/api/v1/notifications/retry", headers=BDM)
    assert forbidden.status_code == 403

    retried = client.post("/api/v1/notifications/retry", headers=COO)
    assert retried.status_code == 200
    assert retried.json()["data"] == [
        {"idempotency_key": f"proposal:{proposal_id}:approve", "status": "sent", "error": None}
    ]
    assert sender.sent[0][0] == ["bdm-1@test.local"]
    assert sender.templates() == ["proposalApproved"]


def test_enqueue_adds_inbox_entries_for_active_users(db_session: Session) -> None:
    now = datetime.utcnow()
    db_session.add_all(
        [
            User(uid="bdm-1", email="bdm@test.local", name="Bea", role=Role.BDM, active=True, created_at=now, updated_at=now),
            User(uid="bdm-2", email="old@test.local", name="Old", role=Role.BDM, active=False, created_at=now, updated_at=now),
        ]
    )
    db_session.commit()
    dispatcher = EffectDispatcher(db_session, sender=RecordingSender())

    dispatcher.apply(
        [
            Notification(
                template="proposalRejected",
                recipients=("bdm@test.local", "old@test.local", "client@elsewhere.test"),
                idempotency_key="proposal:9:reject",
                data={"project_name": "Depot Upgrade", "reviewer": "Carol COO"},
            )
        ],
        actor=ACTOR,
    )
    db_session.commit()

    rows = db_session.scalars(select(InboxNotification)).all()
    assert [row.user_uid for row in rows] == ["bdm-1"]
    assert rows[0].title == "Proposal rejected: Depot Upgrade"
    assert rows[0].kind == NotificationKind.WARNING
    assert rows[0].read is False
    assert rows[0].source_key == "proposal:9:reject"
