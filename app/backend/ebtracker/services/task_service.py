"""Project tasks."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any
from uuid import UUID

from ebtracker.core.auth import RequestUserContext
from ebtracker.core.errors import ValidationError
from ebtracker.models.entities import Task, TaskPriority, TaskStatus, User
from ebtracker.policy.oracle import Entity, can_perform
from ebtracker.services.base import EntityService, iso, provided_fields


@dataclass(slots=True)
class TaskCreateData:
    project_id: UUID
    title: str
    description: str | None = None
    assigned_to_uid: str | None = None
    due_date: date | None = None
    priority: TaskPriority = TaskPriority.MEDIUM


@dataclass(slots=True)
class TaskUpdateData:
    title: str | None = None
    description: str | None = None
    assigned_to_uid: str | None = None
    due_date: date | None = None
    priority: TaskPriority | None = None


class TaskService(EntityService):
    entity = Entity.TASK

    def create_task(self, *, context: RequestUserContext, data: TaskCreateData) -> Task:
        project = self._project_or_404(data.project_id)
        self._authorize(context, "create", project=project)
        assignee = self._assignee(data.assigned_to_uid)

        now = datetime.utcnow()
        task = Task(
            project_id=project.id,
            title=data.title.strip(),
            description=data.description,
            assigned_to_uid=assignee.uid if assignee else None,
            assigned_to_name=assignee.name if assignee else None,
            due_date=data.due_date,
            priority=data.priority,
            status=TaskStatus.TODO,
            created_by_uid=context.uid,
            created_by_name=context.name,
            created_at=now,
            updated_at=now,
        )
        self.repository.add(task)
        self._log_activity(
            context,
            "task_created",
            f"Task '{task.title}' created in {project.project_code}",
            record_id=task.id,
            project_id=project.id,
        )
        return self._commit(task)

    def list_tasks(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID | None = None,
        assigned_to_uid: str | None = None,
        status: TaskStatus | None = None,
    ) -> list[Task]:
        if can_perform(context, self.entity, "list_all"):
            return list(
                self.repository.list_tasks(project_id=project_id, assigned_to_uid=assigned_to_uid, status=status)
            )
        if project_id is not None:
            project = self._project_or_404(project_id)
            if can_perform(context, self.entity, "list_project", project=project):
                return list(
                    self.repository.list_tasks(project_id=project_id, assigned_to_uid=assigned_to_uid, status=status)
                )
        return list(self.repository.list_tasks(project_id=project_id, assigned_to_uid=context.uid, status=status))

    def get_task(self, *, context: RequestUserContext, task_id: UUID) -> Task:
        task = self._get_or_404(Task, task_id, "Task")
        self._authorize(context, "read", task, project=self._project_or_404(task.project_id))
        return task

    def update_task(self, *, context: RequestUserContext, task_id: UUID, data: TaskUpdateData) -> Task:
        task = self._get_or_404(Task, task_id, "Task")
        self._authorize(context, "update", task, project=self._project_or_404(task.project_id))

        changes = provided_fields(data)
        if "assigned_to_uid" in changes:
            assignee = self._assignee(changes["assigned_to_uid"])
            changes["assigned_to_name"] = assignee.name
        for key, value in changes.items():
            setattr(task, key, value)
        task.updated_at = datetime.utcnow()
        return self._commit(task)

    def transition_task(
        self, *, context: RequestUserContext, task_id: UUID, action: str, payload: dict[str, Any] | None = None
    ) -> Task:
        task = self._get_or_404(Task, task_id, "Task")
        project = self._project_or_404(task.project_id)
        self.engine.apply(self.entity, task, action, payload, context=context, project=project)
        return self._get_or_404(Task, task_id, "Task")

    def delete_task(self, *, context: RequestUserContext, task_id: UUID) -> None:
        task = self._get_or_404(Task, task_id, "Task")
        self._authorize(context, "delete", task)
        self.repository.delete(task)
        self.db.commit()

    def _assignee(self, uid: str | None) -> User | None:
        if uid is None:
            return None
        user = self.repository.get_user_by_uid(uid)
        if user is None or not user.active:
            raise ValidationError("Assignee must be an active user.", fields=["assigned_to_uid"])
        return user

    @staticmethod
    def serialize_task(task: Task) -> dict[str, Any]:
        return {
            "id": str(task.id),
            "project_id": str(task.project_id),
            "title": task.title,
            "description": task.description,
            "assigned_to_uid": task.assigned_to_uid,
            "assigned_to_name": task.assigned_to_name,
            "due_date": iso(task.due_date),
            "priority": task.priority.value,
            "status": task.status.value,
            "created_by_uid": task.created_by_uid,
            "created_by_name": task.created_by_name,
            "completed_at": iso(task.completed_at),
            "created_at": iso(task.created_at),
            "updated_at": iso(task.updated_at),
        }
