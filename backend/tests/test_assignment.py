"""Tests for assignment notifications."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from trackr.assignees import (
    AssigneeHandle,
    AssigneeId,
    AssigneeName,
    AssigneeResolver,
    MissReason,
    ResolutionMiss,
)
from trackr.assignment import AssignmentNotifier
from trackr.dispatcher import NotificationDispatcher
from trackr.events import DispatchStatus, SubjectType
from trackr.models import NotificationRecord, Subtask, Task
from trackr.notification_config import NotificationConfig
from trackr.read_model import TaskReader, UserDirectory


@pytest.fixture
def task(db_session):
    task = Task(name="Design review", description="Check the mockups")
    db_session.add(task)
    db_session.commit()
    return task


@pytest.fixture
def subtask(db_session, task):
    subtask = Subtask(task_id=task.id, name="Export assets", assignees=["Bob Jones"])
    db_session.add(subtask)
    db_session.commit()
    return subtask


def make_notifier(db, channel, config=None, timeout=3.0) -> AssignmentNotifier:
    return AssignmentNotifier(
        tasks=TaskReader(db),
        resolver=AssigneeResolver(UserDirectory(db)),
        dispatcher=NotificationDispatcher(channel, timeout),
        config=config or NotificationConfig(),
        base_url="https://trackr.test",
    )


class TestNotifyAssignment:
    """Tests for notify_assignment."""

    @pytest.mark.asyncio
    async def test_task_assignment_sends(self, db_session, users, task, channel):
        outcome = await make_notifier(db_session, channel).notify_assignment(
            SubjectType.TASK, task.id, AssigneeId(users["bob"].id), users["alice"].id
        )

        assert outcome.status == DispatchStatus.SENT
        address, subject, body = channel.sent[0]
        assert address == "bob@example.com"
        assert subject == "New Task Assigned: Design review"
        assert "Alice Smith assigned you" in body

    @pytest.mark.asyncio
    async def test_subtask_assignment_by_name(self, db_session, users, subtask, channel):
        outcome = await make_notifier(db_session, channel).notify_assignment(
            SubjectType.SUBTASK, subtask.id, AssigneeName(" bob jones "), users["alice"].id
        )

        assert outcome.status == DispatchStatus.SENT
        assert channel.sent[0][1] == "New Subtask Assigned: Export assets"

    @pytest.mark.asyncio
    async def test_self_assignment_skipped(self, db_session, users, task):
        channel = MagicMock()
        channel.send = AsyncMock()

        outcome = await make_notifier(db_session, channel).notify_assignment(
            SubjectType.TASK, task.id, AssigneeId(users["alice"].id), users["alice"].id
        )

        assert outcome.status == DispatchStatus.SKIPPED_SELF
        channel.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_self_assignment_by_name_skipped(self, db_session, users, subtask, channel):
        outcome = await make_notifier(db_session, channel).notify_assignment(
            SubjectType.SUBTASK, subtask.id, AssigneeName("Bob Jones"), users["bob"].id
        )
        assert outcome.status == DispatchStatus.SKIPPED_SELF
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_no_email_distinct_from_self(self, db_session, users, task, channel):
        outcome = await make_notifier(db_session, channel).notify_assignment(
            SubjectType.TASK, task.id, AssigneeId(users["carol"].id), users["alice"].id
        )
        assert outcome.status == DispatchStatus.SKIPPED_NO_ADDRESS

    @pytest.mark.asyncio
    async def test_unresolved_name_returns_miss(self, db_session, users, subtask, channel):
        result = await make_notifier(db_session, channel).notify_assignment(
            SubjectType.SUBTASK, subtask.id, AssigneeName("Nobody"), users["alice"].id
        )

        assert isinstance(result, ResolutionMiss)
        assert result.reason == MissReason.NOT_FOUND
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_does_not_touch_ledger(self, db_session, users, task, channel):
        notifier = make_notifier(db_session, channel)
        for _ in range(2):
            await notifier.notify_assignment(
                SubjectType.TASK, task.id, AssigneeId(users["bob"].id), users["alice"].id
            )

        assert len(channel.sent) == 2
        assert db_session.query(NotificationRecord).count() == 0

    @pytest.mark.asyncio
    async def test_timeout_degrades_to_failed(self, db_session, users, task, make_channel):
        channel = make_channel(delay=1)

        outcome = await make_notifier(db_session, channel, timeout=0.01).notify_assignment(
            SubjectType.TASK, task.id, AssigneeId(users["bob"].id), users["alice"].id
        )

        assert outcome.status == DispatchStatus.FAILED
        assert "timed out" in outcome.error

    @pytest.mark.asyncio
    async def test_disabled_trigger(self, db_session, users, task, channel):
        config = NotificationConfig()
        config.triggers["assigned"] = False

        outcome = await make_notifier(db_session, channel, config).notify_assignment(
            SubjectType.TASK, task.id, AssigneeId(users["bob"].id), users["alice"].id
        )

        assert outcome.status == DispatchStatus.SKIPPED_DISABLED
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_missing_subject_uses_id(self, db_session, users, channel):
        await make_notifier(db_session, channel).notify_assignment(
            SubjectType.TASK, 777, AssigneeId(users["bob"].id), users["alice"].id
        )
        assert channel.sent[0][1] == "New Task Assigned: #777"


class TestNotifyMention:
    """Tests for notify_mention."""

    @pytest.mark.asyncio
    async def test_mention_sends(self, db_session, users, task, channel):
        outcome = await make_notifier(db_session, channel).notify_mention(
            SubjectType.TASK, task.id, AssigneeHandle("bob"), users["alice"].id,
            "@bob can you take a look?",
        )

        assert outcome.status == DispatchStatus.SENT
        address, subject, body = channel.sent[0]
        assert address == "bob@example.com"
        assert subject == 'Alice Smith mentioned you on "Design review"'
        assert "> @bob can you take a look?" in body

    @pytest.mark.asyncio
    async def test_self_mention_skipped(self, db_session, users, task, channel):
        outcome = await make_notifier(db_session, channel).notify_mention(
            SubjectType.TASK, task.id, AssigneeHandle("AliceS"), users["alice"].id,
            "note to self @AliceS",
        )

        assert outcome.status == DispatchStatus.SKIPPED_SELF
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_disabled_trigger(self, db_session, users, task, channel):
        config = NotificationConfig()
        config.triggers["mentioned"] = False

        outcome = await make_notifier(db_session, channel, config).notify_mention(
            SubjectType.TASK, task.id, AssigneeHandle("bob"), users["alice"].id, "@bob"
        )

        assert outcome.status == DispatchStatus.SKIPPED_DISABLED
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_unknown_handle_returns_miss(self, db_session, users, task, channel):
        result = await make_notifier(db_session, channel).notify_mention(
            SubjectType.TASK, task.id, AssigneeHandle("nobody"), users["alice"].id, "@nobody"
        )

        assert isinstance(result, ResolutionMiss)
        assert result.reason == MissReason.NOT_FOUND
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_mention_does_not_touch_ledger(self, db_session, users, task, channel):
        await make_notifier(db_session, channel).notify_mention(
            SubjectType.TASK, task.id, AssigneeHandle("bob"), users["alice"].id, "@bob"
        )
        assert db_session.query(NotificationRecord).count() == 0
