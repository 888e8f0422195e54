from __future__ import annotations

import json
import logging

from ..models.suggestion import Suggestion, Task

logger = logging.getLogger("app.notifications")


class Notifier:
    """Fire-and-forget hook informed when an approved suggestion becomes a Task.

    Delivery (email, push) lives elsewhere; this implementation records the
    event in the log. Subclass and override ``task_created`` to forward it.
    """

    def task_created(self, task: Task, suggestion: Suggestion) -> None:
        logger.info(
            json.dumps({
                "event": "task_created_from_suggestion",
                "task_id": task.id,
                "suggestion_id": suggestion.id,
                "meeting_id": suggestion.meeting_id,
                "assigned_to": task.assigned_to,
            })
        )

    def safe_task_created(self, task: Task, suggestion: Suggestion) -> None:
        try:
            self.task_created(task, suggestion)
        except Exception:
            logger.warning(
                f"notification for task {task.id} failed; approval kept",
                exc_info=True,
            )
