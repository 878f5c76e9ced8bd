"""SQLAlchemy models for Trackr notifications."""

from datetime import date, datetime, timezone
from sqlalchemy import (
    create_engine,
    Column,
    ForeignKey,
    String,
    Integer,
    DateTime,
    JSON,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.types import TypeDecorator

from .config import get_settings

settings = get_settings()
connect_args = (
    {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
)
engine = create_engine(
    settings.database_url,
    echo=settings.env == "development",
    connect_args=connect_args,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# Task statuses that end the due-date lifecycle
COMPLETED_STATUSES = ("completed", "archived")


class DueDate(TypeDecorator):
    """Naive UTC timestamp stored as ISO-8601 text.

    Rows written by other tools may hold anything; a value that does not
    parse loads as the raw string and is rejected per task by the
    due-date classifier.
    """

    impl = String
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, datetime):
            if value.tzinfo is not None:
                value = value.astimezone(timezone.utc).replace(tzinfo=None)
            return value.isoformat(sep=" ")
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day).isoformat(sep=" ")
        raise TypeError(f"Cannot store {type(value).__name__} as a due date")

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, datetime):
            return value
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return value


class User(Base):
    """A person who can be assigned work and notified."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)  # None is valid: never notified
    created_at = Column(DateTime, default=datetime.utcnow)


class Task(Base):
    """A unit of work with an optional due date."""

    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    project_name = Column(String, nullable=True)
    status = Column(String, nullable=False, default="pending")
    due_date = Column(DueDate, nullable=True)  # naive UTC
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    assignments = relationship(
        "TaskAssignment", back_populates="task", cascade="all, delete-orphan"
    )
    subtasks = relationship("Subtask", back_populates="task")

    @property
    def assignee_refs(self) -> list:
        from .assignees import AssigneeId

        return [AssigneeId(a.user_id) for a in self.assignments]


class TaskAssignment(Base):
    """Identifier-based assignment of a user to a task."""

    __tablename__ = "task_assignments"
    __table_args__ = (UniqueConstraint("task_id", "user_id"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    task = relationship("Task", back_populates="assignments")


class Subtask(Base):
    """Subtask whose assignees are stored as display names (legacy)."""

    __tablename__ = "subtasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False)
    name = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending")
    assignees_json = Column(JSON, default=list)  # ["Jane Doe", "sam"]
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    task = relationship("Task", back_populates="subtasks")

    @property
    def assignees(self) -> list[str]:
        return self.assignees_json or []

    @assignees.setter
    def assignees(self, value: list[str]):
        self.assignees_json = value

    @property
    def assignee_refs(self) -> list:
        from .assignees import AssigneeName

        return [AssigneeName(name) for name in self.assignees]


class TaskComment(Base):
    """Discussion comment on a task; @handles in the content notify users."""

    __tablename__ = "task_comments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(Integer, ForeignKey("tasks.id"), nullable=False)
    author_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class NotificationRecord(Base):
    """Ledger of issued notifications; one row per logical event."""

    __tablename__ = "notification_records"
    __table_args__ = (
        UniqueConstraint(
            "subject_type",
            "subject_id",
            "condition",
            "recipient_id",
            name="uq_notification_key",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    subject_type = Column(String, nullable=False)  # "task" | "subtask"
    subject_id = Column(Integer, nullable=False)
    condition = Column(String, nullable=False)  # "due_soon" | "overdue"
    recipient_id = Column(Integer, nullable=False)
    outcome = Column(String, nullable=True)  # None while reserved
    message_id = Column(String, nullable=True)
    error_detail = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


def init_db():
    """Initialize database tables."""
    Base.metadata.create_all(bind=engine)


def get_db():
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
