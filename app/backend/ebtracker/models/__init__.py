"""ORM model package."""

from ebtracker.models.entities import (
    Activity,
    Deliverable,
    InboxNotification,
    Invoice,
    NotificationOutbox,
    Payment,
    Project,
    ProjectFile,
    Proposal,
    Task,
    TimeOffRequest,
    Timesheet,
    User,
    Variation,
)

__all__ = [
    "Activity",
    "Deliverable",
    "InboxNotification",
    "Invoice",
    "NotificationOutbox",
    "Payment",
    "Project",
    "ProjectFile",
    "Proposal",
    "Task",
    "TimeOffRequest",
    "Timesheet",
    "User",
    "Variation",
]
