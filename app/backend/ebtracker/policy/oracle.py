"""Authorization oracle.

Permissions are a static table keyed by ``(entity, action)``. Each entry
lists rules that are OR'd together: a role allow-list, ownership of the
record, or delegated ownership through the parent project's design lead.
A denial never reports which rule failed.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Protocol

from ebtracker.core.errors import Forbidden
from ebtracker.models.entities import Role


class Entity(str, enum.Enum):
    PROPOSAL = "proposal"
    PROJECT = "project"
    TIMESHEET = "timesheet"
    TIME_OFF = "time_off_request"
    VARIATION = "variation"
    INVOICE = "invoice"
    PAYMENT = "payment"
    DELIVERABLE = "deliverable"
    TASK = "task"
    ACTIVITY = "activity"
    NOTIFICATION = "notification"
    USER = "user"
    DASHBOARD = "dashboard"
    PROJECT_FILE = "project_file"


class Principal(Protocol):
    uid: str
    role: Role


class Rule(Protocol):
    def allows(self, actor: Principal, record: Any | None, project: Any | None) -> bool:
        ...


@dataclass(frozen=True)
class RoleIn:
    roles: frozenset[Role]

    def allows(self, actor: Principal, record: Any | None, project: Any | None) -> bool:
        return actor.role in self.roles


@dataclass(frozen=True)
class IsOwner:
    """Actor is the uid stored in ``field`` on the record."""

    field: str

    def allows(self, actor: Principal, record: Any | None, project: Any | None) -> bool:
        if record is None:
            return False
        return getattr(record, self.field, None) == actor.uid


@dataclass(frozen=True)
class IsProjectLead:
    """Actor holds one of ``roles`` and is the design lead of the parent project."""

    roles: frozenset[Role] = frozenset({Role.DESIGN_MANAGER})

    def allows(self, actor: Principal, record: Any | None, project: Any | None) -> bool:
        if actor.role not in self.roles or project is None:
            return False
        return bool(project.design_lead_uid) and project.design_lead_uid == actor.uid


@dataclass(frozen=True)
class IsAssignedDesigner:
    def allows(self, actor: Principal, record: Any | None, project: Any | None) -> bool:
        if actor.role != Role.DESIGNER or project is None:
            return False
        return actor.uid in (project.assigned_designer_uids or [])


def roles(*names: Role) -> RoleIn:
    return RoleIn(frozenset(names))


ANY_ROLE = RoleIn(frozenset(Role))
ADMIN = roles(Role.COO, Role.DIRECTOR)
COO = roles(Role.COO)
LEAD = IsProjectLead()
DESIGNER = IsAssignedDesigner()

PERMISSIONS: dict[tuple[Entity, str], tuple[Rule, ...]] = {
    # Proposals
    (Entity.PROPOSAL, "create"): (roles(Role.BDM),),
    (Entity.PROPOSAL, "list_all"): (roles(Role.COO, Role.DIRECTOR, Role.ESTIMATOR),),
    (Entity.PROPOSAL, "read"): (roles(Role.COO, Role.DIRECTOR, Role.ESTIMATOR), IsOwner("submitted_by_uid")),
    (Entity.PROPOSAL, "update"): (ADMIN, IsOwner("submitted_by_uid")),
    (Entity.PROPOSAL, "delete"): (ADMIN, IsOwner("submitted_by_uid")),
    (Entity.PROPOSAL, "approve"): (ADMIN,),
    (Entity.PROPOSAL, "reject"): (ADMIN,),
    # Projects
    (Entity.PROJECT, "create"): (COO,),
    (Entity.PROJECT, "list_all"): (ADMIN, roles(Role.BDM, Role.ESTIMATOR, Role.ACCOUNTS)),
    (Entity.PROJECT, "read"): (ADMIN, roles(Role.BDM, Role.ESTIMATOR, Role.ACCOUNTS), LEAD, DESIGNER),
    (Entity.PROJECT, "update"): (ADMIN, LEAD),
    (Entity.PROJECT, "delete"): (ADMIN,),
    (Entity.PROJECT, "assign_lead"): (COO,),
    (Entity.PROJECT, "assign_designers"): (COO, LEAD),
    (Entity.PROJECT, "hold"): (ADMIN, LEAD),
    (Entity.PROJECT, "resume"): (ADMIN, LEAD),
    (Entity.PROJECT, "complete"): (ADMIN, LEAD),
    (Entity.PROJECT, "cancel"): (ADMIN,),
    # Timesheets
    (Entity.TIMESHEET, "create"): (ADMIN, LEAD, DESIGNER),
    (Entity.TIMESHEET, "list_all"): (ADMIN,),
    (Entity.TIMESHEET, "list_project"): (ADMIN, LEAD),
    (Entity.TIMESHEET, "read"): (ADMIN, LEAD, IsOwner("user_uid")),
    (Entity.TIMESHEET, "update"): (IsOwner("user_uid"),),
    (Entity.TIMESHEET, "delete"): (ADMIN, IsOwner("user_uid")),
    (Entity.TIMESHEET, "approve"): (ADMIN, LEAD),
    (Entity.TIMESHEET, "reject"): (ADMIN, LEAD),
    # Time-off requests
    (Entity.TIME_OFF, "create"): (ANY_ROLE,),
    (Entity.TIME_OFF, "list_all"): (ADMIN,),
    (Entity.TIME_OFF, "read"): (ADMIN, IsOwner("user_uid")),
    (Entity.TIME_OFF, "update"): (IsOwner("user_uid"),),
    (Entity.TIME_OFF, "delete"): (ADMIN, IsOwner("user_uid")),
    (Entity.TIME_OFF, "approve"): (ADMIN,),
    (Entity.TIME_OFF, "reject"): (ADMIN,),
    # Variations
    (Entity.VARIATION, "create"): (COO, LEAD),
    (Entity.VARIATION, "list_all"): (ADMIN,),
    (Entity.VARIATION, "list_project"): (ADMIN, LEAD),
    (Entity.VARIATION, "read"): (ADMIN, LEAD, IsOwner("submitted_by_uid")),
    (Entity.VARIATION, "delete"): (COO, IsOwner("submitted_by_uid")),
    (Entity.VARIATION, "approve"): (COO,),
    (Entity.VARIATION, "reject"): (COO,),
    # Invoices
    (Entity.INVOICE, "create"): (ADMIN,),
    (Entity.INVOICE, "list_all"): (ADMIN, roles(Role.ACCOUNTS)),
    (Entity.INVOICE, "read"): (ADMIN, roles(Role.ACCOUNTS)),
    (Entity.INVOICE, "update"): (ADMIN,),
    (Entity.INVOICE, "delete"): (ADMIN,),
    (Entity.INVOICE, "send"): (ADMIN,),
    (Entity.INVOICE, "mark_paid"): (ADMIN,),
    (Entity.INVOICE, "settle"): (ADMIN,),
    (Entity.INVOICE, "mark_overdue"): (ADMIN,),
    (Entity.INVOICE, "cancel"): (ADMIN,),
    # Payments
    (Entity.PAYMENT, "create"): (ADMIN,),
    (Entity.PAYMENT, "list_all"): (ADMIN, roles(Role.ACCOUNTS)),
    (Entity.PAYMENT, "read"): (ADMIN, roles(Role.ACCOUNTS)),
    (Entity.PAYMENT, "update"): (ADMIN,),
    (Entity.PAYMENT, "delete"): (ADMIN,),
    # Deliverables
    (Entity.DELIVERABLE, "create"): (COO, LEAD),
    (Entity.DELIVERABLE, "list_project"): (ADMIN, LEAD, DESIGNER),
    (Entity.DELIVERABLE, "read"): (ADMIN, LEAD, DESIGNER),
    (Entity.DELIVERABLE, "delete"): (COO, IsOwner("created_by_uid")),
    (Entity.DELIVERABLE, "submit"): (ADMIN, LEAD, DESIGNER),
    (Entity.DELIVERABLE, "approve"): (roles(Role.COO, Role.DIRECTOR, Role.DESIGN_MANAGER),),
    (Entity.DELIVERABLE, "reject"): (roles(Role.COO, Role.DIRECTOR, Role.DESIGN_MANAGER),),
    # Tasks
    (Entity.TASK, "create"): (ADMIN, LEAD),
    (Entity.TASK, "list_all"): (ADMIN,),
    (Entity.TASK, "list_project"): (ADMIN, LEAD, DESIGNER),
    (Entity.TASK, "read"): (ADMIN, LEAD, IsOwner("assigned_to_uid"), IsOwner("created_by_uid")),
    (Entity.TASK, "update"): (ADMIN, LEAD, IsOwner("created_by_uid")),
    (Entity.TASK, "delete"): (ADMIN, IsOwner("created_by_uid")),
    (Entity.TASK, "start"): (ADMIN, LEAD, IsOwner("assigned_to_uid")),
    (Entity.TASK, "submit_for_review"): (ADMIN, LEAD, IsOwner("assigned_to_uid")),
    (Entity.TASK, "request_changes"): (ADMIN, LEAD),
    (Entity.TASK, "complete"): (ADMIN, LEAD),
    # Activities, notifications and the user directory
    (Entity.ACTIVITY, "list_all"): (roles(Role.COO, Role.DIRECTOR, Role.BDM, Role.ESTIMATOR),),
    (Entity.ACTIVITY, "create"): (ANY_ROLE,),
    (Entity.NOTIFICATION, "retry"): (ADMIN,),
    (Entity.NOTIFICATION, "create"): (ADMIN,),
    (Entity.NOTIFICATION, "update"): (IsOwner("user_uid"),),
    (Entity.NOTIFICATION, "delete"): (IsOwner("user_uid"),),
    (Entity.USER, "list_all"): (ADMIN, roles(Role.DESIGN_MANAGER)),
    (Entity.USER, "create"): (COO,),
    (Entity.USER, "update"): (roles(Role.DIRECTOR),),
    # Dashboards
    (Entity.DASHBOARD, "company_stats"): (ADMIN,),
    (Entity.DASHBOARD, "projects_summary"): (ANY_ROLE,),
    (Entity.DASHBOARD, "team_performance"): (ADMIN,),
    (Entity.DASHBOARD, "personal"): (ANY_ROLE,),
    # Project files
    (Entity.PROJECT_FILE, "create"): (ADMIN, LEAD, DESIGNER),
    (Entity.PROJECT_FILE, "list_all"): (ADMIN,),
    (Entity.PROJECT_FILE, "list_project"): (ADMIN, LEAD, DESIGNER),
    (Entity.PROJECT_FILE, "read"): (ADMIN, LEAD, DESIGNER),
    (Entity.PROJECT_FILE, "delete"): (ADMIN, IsOwner("uploaded_by_uid")),
}


def can_perform(
    actor: Principal,
    entity: Entity,
    action: str,
    record: Any | None = None,
    *,
    project: Any | None = None,
) -> bool:
    """Whether ``actor`` may perform ``action`` on ``record``.

    ``project`` is the parent project used by delegated-ownership rules. For
    the project entity itself the record doubles as its own parent.
    """

    rules = PERMISSIONS.get((entity, action))
    if not rules:
        return False

    if project is None and entity == Entity.PROJECT:
        project = record

    return any(rule.allows(actor, record, project) for rule in rules)


def ensure_can_perform(
    actor: Principal,
    entity: Entity,
    action: str,
    record: Any | None = None,
    *,
    project: Any | None = None,
) -> None:
    if not can_perform(actor, entity, action, record, project=project):
        raise Forbidden()
