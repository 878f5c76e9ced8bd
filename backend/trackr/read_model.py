"""Read-only access to tasks and users for the notification engine."""

import logging
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .events import SubjectType
from .models import COMPLETED_STATUSES, Subtask, Task, User

logger = logging.getLogger(__name__)


class DataSourceError(RuntimeError):
    """Raised when tasks or users cannot be loaded at all."""


class TaskReader:
    """Queries over tasks and subtasks."""

    def __init__(self, db: Session):
        self.db = db

    def open_tasks_with_due_dates(self) -> list[Task]:
        """Get tasks that have a due date and are not completed.

        Raises:
            DataSourceError: If the task store cannot be queried
        """
        try:
            return (
                self.db.query(Task)
                .options(selectinload(Task.assignments))
                .filter(
                    Task.due_date.isnot(None),
                    Task.status.notin_(COMPLETED_STATUSES),
                )
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to load tasks: {e}")
            raise DataSourceError(f"Cannot load tasks: {e}") from e

    def get_subject(
        self, subject_type: SubjectType, subject_id: int
    ) -> Optional[Union[Task, Subtask]]:
        """Get the task or subtask a notification is about."""
        model = Task if subject_type == SubjectType.TASK else Subtask
        return self.db.query(model).filter(model.id == subject_id).first()


class UserDirectory:
    """Lookups over users."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def all(self) -> list[User]:
        return self.db.query(User).all()
