"""Assignment notifications.

Called right after a task or subtask assignment, or a comment with
@mentions, is persisted. These are one-shot events, so the ledger is not
consulted; callers invoke each once per mutation.
"""

import logging
from typing import TYPE_CHECKING, Union

from .assignees import AssigneeReference, AssigneeResolver, ResolutionMiss
from .dispatcher import DispatchOutcome, NotificationDispatcher
from .events import Condition, DispatchStatus, NotificationPayload, SubjectType
from .messages import format_assignment, format_mention
from .notification_config import NotificationConfig
from .read_model import TaskReader

if TYPE_CHECKING:
    from .models import User

logger = logging.getLogger(__name__)


class AssignmentNotifier:
    """Resolves a new assignee or mentioned user and notifies them immediately."""

    def __init__(
        self,
        tasks: TaskReader,
        resolver: AssigneeResolver,
        dispatcher: NotificationDispatcher,
        config: NotificationConfig,
        base_url: str = "",
    ):
        self.tasks = tasks
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.config = config
        self.base_url = base_url

    async def notify_assignment(
        self,
        subject_type: SubjectType,
        subject_id: int,
        reference: AssigneeReference,
        acting_user_id: int,
    ) -> Union[DispatchOutcome, ResolutionMiss]:
        """Notify the assignee of a task or subtask.

        Args:
            subject_type: TASK or SUBTASK
            subject_id: ID of the assigned item
            reference: Who was assigned
            acting_user_id: The user who made the assignment

        Returns:
            DispatchOutcome (SKIPPED_SELF for self-assignment) or the
            ResolutionMiss when the assignee cannot be determined
        """
        recipient = self._recipient(
            Condition.ASSIGNED, subject_type, subject_id, reference, acting_user_id
        )
        if isinstance(recipient, (DispatchOutcome, ResolutionMiss)):
            return recipient

        subject = self.tasks.get_subject(subject_type, subject_id)
        subject_name = subject.name if subject else f"#{subject_id}"
        description = getattr(subject, "description", None)
        actor = self.resolver.directory.get(acting_user_id)

        payload = format_assignment(
            subject_type,
            subject_name,
            recipient,
            assigned_by=actor.name if actor else None,
            base_url=self.base_url,
            description=description,
        )
        return await self._dispatch(recipient, payload, "Assignment")

    async def notify_mention(
        self,
        subject_type: SubjectType,
        subject_id: int,
        reference: AssigneeReference,
        acting_user_id: int,
        content: str,
    ) -> Union[DispatchOutcome, ResolutionMiss]:
        """Notify a user @mentioned in a comment on a task or subtask.

        Same outcomes as notify_assignment; the comment author mentioning
        themselves is SKIPPED_SELF.
        """
        recipient = self._recipient(
            Condition.MENTIONED, subject_type, subject_id, reference, acting_user_id
        )
        if isinstance(recipient, (DispatchOutcome, ResolutionMiss)):
            return recipient

        subject = self.tasks.get_subject(subject_type, subject_id)
        author = self.resolver.directory.get(acting_user_id)

        payload = format_mention(
            subject_type,
            subject.name if subject else f"#{subject_id}",
            recipient,
            mentioned_by=author.name if author else None,
            content=content,
            base_url=self.base_url,
            project_name=getattr(subject, "project_name", None),
        )
        return await self._dispatch(recipient, payload, "Comment")

    def _recipient(
        self,
        condition: Condition,
        subject_type: SubjectType,
        subject_id: int,
        reference: AssigneeReference,
        acting_user_id: int,
    ) -> Union["User", DispatchOutcome, ResolutionMiss]:
        """Resolve the recipient, or the outcome that ends the notification early."""
        recipient = self.resolver.resolve(reference)
        if isinstance(recipient, ResolutionMiss):
            logger.warning(
                f"{condition.value.capitalize()} on {subject_type.value} {subject_id} "
                f"not notified ({recipient})"
            )
            return recipient

        if recipient.id == acting_user_id:
            logger.debug(f"User {recipient.id} is the actor, not notifying")
            return DispatchOutcome(DispatchStatus.SKIPPED_SELF)

        if not self.config.is_trigger_enabled(condition.value):
            logger.debug(f"Trigger {condition.value} disabled, not notifying")
            return DispatchOutcome(DispatchStatus.SKIPPED_DISABLED)

        return recipient

    async def _dispatch(
        self, recipient: "User", payload: NotificationPayload, saved: str
    ) -> DispatchOutcome:
        outcome = await self.dispatcher.dispatch(recipient, payload)
        if outcome.status == DispatchStatus.FAILED:
            logger.warning(
                f"{saved} saved, notification not confirmed for user "
                f"{recipient.id}: {outcome.error}"
            )
        return outcome
