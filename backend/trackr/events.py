"""Notification vocabulary shared by the scan and assignment paths."""

from dataclasses import dataclass
from enum import Enum


class SubjectType(Enum):
    """Kinds of work items a notification can be about."""

    TASK = "task"
    SUBTASK = "subtask"


class Condition(Enum):
    """Reasons a notification is issued."""

    DUE_SOON = "due_soon"
    OVERDUE = "overdue"
    ASSIGNED = "assigned"
    MENTIONED = "mentioned"


class DispatchStatus(Enum):
    """Outcome of delivering one notification to one recipient.

    SENT, SKIPPED_NO_ADDRESS and FAILED are terminal ledger outcomes.
    SKIPPED_SELF and SKIPPED_DISABLED only occur on the assignment and
    mention paths.
    """

    SENT = "sent"
    SKIPPED_NO_ADDRESS = "skipped-no-address"
    SKIPPED_SELF = "skipped-self"
    SKIPPED_DISABLED = "skipped-disabled"
    FAILED = "failed"


@dataclass(frozen=True)
class NotificationKey:
    """Identity of a logical notification in the ledger.

    Attributes:
        subject_type: What the notification is about
        subject_id: ID of the task or subtask
        condition: Why it is being sent
        recipient_id: The user being notified
    """

    subject_type: SubjectType
    subject_id: int
    condition: Condition
    recipient_id: int

    @property
    def dedupe_key(self) -> str:
        """Readable form of the key, used in log lines."""
        return (
            f"{self.subject_type.value}:{self.subject_id}:"
            f"{self.condition.value}:{self.recipient_id}"
        )


@dataclass(frozen=True)
class NotificationPayload:
    """Plain-text content handed to the delivery channel."""

    subject: str
    body: str
