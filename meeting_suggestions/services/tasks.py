from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from .. import db
from ..errors import StorageError
from ..models.suggestion import Task, TaskLabel

DEFAULT_PRIORITY = "medium"
DEFAULT_ESTIMATED_HOURS = 1.0
DEFAULT_DUE_IN = timedelta(days=7)


class TaskStore:
    """Creates Tasks for approved suggestions and lists existing task labels."""

    def create_task(
        self,
        title: str,
        description: Optional[str],
        meeting_id: Optional[int],
        project_id: Optional[str] = None,
        priority: Optional[str] = None,
        estimated_hours: Optional[float] = None,
        assigned_to: Optional[str] = None,
        due_date: Optional[datetime] = None,
        created_by: Optional[str] = None,
    ) -> Task:
        due = due_date or (datetime.now(timezone.utc) + DEFAULT_DUE_IN)
        task_id = db.insert_task(
            title=title,
            description=description,
            project_id=project_id,
            meeting_id=meeting_id,
            priority=priority or DEFAULT_PRIORITY,
            estimated_hours=estimated_hours or DEFAULT_ESTIMATED_HOURS,
            assigned_to=assigned_to or created_by,
            due_date=due.isoformat(timespec="seconds"),
            created_by=created_by,
        )
        row = db.get_task(task_id)
        if row is None:
            raise StorageError(f"Task {task_id} vanished after insert")
        return Task(**row)

    def labels_for(self, project_id: Optional[str] = None, meeting_id: Optional[int] = None) -> List[TaskLabel]:
        rows: List[Dict[str, Any]] = db.list_task_labels(project_id=project_id, meeting_id=meeting_id)
        return [TaskLabel(title=r["title"], description=r.get("description")) for r in rows]
