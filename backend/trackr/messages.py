"""Plain-text notification messages."""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from .due_dates import days_overdue, days_until_due, to_utc
from .events import NotificationPayload, SubjectType

if TYPE_CHECKING:
    from .models import Task, User


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


def _format_due(task: "Task") -> str:
    due = to_utc(task.due_date)
    return due.strftime("%Y-%m-%d %H:%M UTC") if due else "No date"


def _project_line(task: "Task") -> str:
    return f"Project: {task.project_name}\n" if task.project_name else ""


def dashboard_url(base_url: str) -> str:
    return f"{base_url.rstrip('/')}/dashboard"


def snooze_url(base_url: str, task_id: int) -> str:
    return f"{base_url.rstrip('/')}/api/snooze-task/{task_id}"


def format_due_soon(
    task: "Task", user: "User", now: datetime, base_url: str
) -> NotificationPayload:
    """Reminder for a task inside the due_soon window."""
    days = days_until_due(task.due_date, now)
    when = "today" if days == 0 else f"in {_plural(days, 'day')}"
    return NotificationPayload(
        subject=f'Reminder: "{task.name}" is due {when}',
        body=(
            f"Hi {user.name},\n\n"
            f'Your task "{task.name}" is due {when}.\n'
            f"{_project_line(task)}"
            f"Due: {_format_due(task)}\n\n"
            f"Open your dashboard: {dashboard_url(base_url)}\n"
            f"Snooze this reminder: {snooze_url(base_url, task.id)}\n"
        ),
    )


def format_overdue(
    task: "Task", user: "User", now: datetime, base_url: str
) -> NotificationPayload:
    """Notice for a task past its due date."""
    days = max(1, days_overdue(task.due_date, now))
    return NotificationPayload(
        subject=f'Overdue: "{task.name}"',
        body=(
            f"Hi {user.name},\n\n"
            f'Your task "{task.name}" is {_plural(days, "day")} overdue.\n'
            f"{_project_line(task)}"
            f"Was due: {_format_due(task)}\n\n"
            f"Open your dashboard: {dashboard_url(base_url)}\n"
            f"Snooze this reminder: {snooze_url(base_url, task.id)}\n"
        ),
    )


def format_assignment(
    subject_type: SubjectType,
    subject_name: str,
    user: "User",
    assigned_by: Optional[str],
    base_url: str,
    description: Optional[str] = None,
) -> NotificationPayload:
    """Notice that a task or subtask was assigned to the user."""
    kind = "Subtask" if subject_type == SubjectType.SUBTASK else "Task"
    lines = [
        f"Hi {user.name},",
        "",
        f'{assigned_by or "Someone"} assigned you the {kind.lower()} "{subject_name}".',
    ]
    if description:
        lines.append(description)
    lines += ["", f"Open your dashboard: {dashboard_url(base_url)}", ""]
    return NotificationPayload(
        subject=f"New {kind} Assigned: {subject_name}",
        body="\n".join(lines),
    )


def format_mention(
    subject_type: SubjectType,
    subject_name: str,
    user: "User",
    mentioned_by: Optional[str],
    content: str,
    base_url: str,
    project_name: Optional[str] = None,
) -> NotificationPayload:
    """Notice that the user was @mentioned in a comment."""
    kind = "subtask" if subject_type == SubjectType.SUBTASK else "task"
    author = mentioned_by or "Someone"
    lines = [
        f"Hi {user.name},",
        "",
        f'{author} mentioned you in a comment on the {kind} "{subject_name}".',
    ]
    if project_name:
        lines.append(f"Project: {project_name}")
    lines.append("")
    lines += [f"> {line}" for line in content.strip().splitlines()]
    lines += ["", f"Open your dashboard: {dashboard_url(base_url)}", ""]
    return NotificationPayload(
        subject=f'{author} mentioned you on "{subject_name}"',
        body="\n".join(lines),
    )
