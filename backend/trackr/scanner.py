"""Scheduled due-date scan.

One scan cycle:
1. Load open tasks with due dates
2. Classify each task (normal tasks are skipped)
3. Resolve the assignees of due_soon and overdue tasks
4. Reserve each (task, condition, recipient) key in the ledger, dispatch,
   record the outcome
5. Return a RunReport

The runner holds no clock or timer; callers pass `now`.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from .assignees import AssigneeResolver, ResolutionMiss
from .dispatcher import NotificationDispatcher
from .due_dates import DueDateClassifier, InvalidTimestamp, Urgency
from .events import (
    Condition,
    DispatchStatus,
    NotificationKey,
    NotificationPayload,
    SubjectType,
)
from .ledger import LedgerUnavailable, NotificationLedger
from .messages import format_due_soon, format_overdue
from .notification_config import NotificationConfig
from .read_model import DataSourceError, TaskReader

if TYPE_CHECKING:
    from .models import Task, User

logger = logging.getLogger(__name__)

# Errors that mean the stores are unreachable; these abort the whole scan
FATAL_ERRORS = (DataSourceError, LedgerUnavailable)


def _first_exception(futures) -> Optional[BaseException]:
    for future in futures:
        if not future.cancelled() and future.exception() is not None:
            return future.exception()
    return None


@dataclass
class RunReport:
    """Counters for one scan cycle."""

    evaluated_at: datetime
    tasks_examined: int = 0
    due_soon: int = 0
    overdue: int = 0
    sent: int = 0
    skipped_no_address: int = 0
    unresolved: int = 0
    failed: int = 0
    deduplicated: int = 0
    errors: int = 0
    deadline_exceeded: bool = False

    def count(self, status: DispatchStatus) -> None:
        if status == DispatchStatus.SENT:
            self.sent += 1
        elif status == DispatchStatus.SKIPPED_NO_ADDRESS:
            self.skipped_no_address += 1
        elif status == DispatchStatus.FAILED:
            self.failed += 1

    def to_dict(self) -> dict:
        data = asdict(self)
        data["evaluated_at"] = self.evaluated_at.isoformat()
        return data


class ScheduledScanRunner:
    """Runs due-date scans against the task store and ledger."""

    def __init__(
        self,
        tasks: TaskReader,
        resolver: AssigneeResolver,
        ledger: NotificationLedger,
        dispatcher: NotificationDispatcher,
        config: NotificationConfig,
        base_url: str = "",
    ):
        self.tasks = tasks
        self.resolver = resolver
        self.ledger = ledger
        self.dispatcher = dispatcher
        self.config = config
        self.base_url = base_url
        self.classifier = DueDateClassifier(config.due_soon_window)

    async def run_scan(self, now: datetime) -> RunReport:
        """Run one scan cycle.

        Args:
            now: The time the scan is evaluated at

        Returns:
            RunReport with per-outcome counts

        Raises:
            DataSourceError: If tasks cannot be loaded
            LedgerUnavailable: If the ledger cannot be read or written
        """
        report = RunReport(evaluated_at=now)
        logger.info(f"Running due-date scan at {now.isoformat()}")

        tasks = self.tasks.open_tasks_with_due_dates()
        report.tasks_examined = len(tasks)

        semaphore = asyncio.Semaphore(self.config.scan_concurrency)
        pending = {
            asyncio.create_task(self._process_task(task, now, report, semaphore))
            for task in tasks
        }
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.scan_deadline_seconds
        fatal = None

        try:
            while pending and fatal is None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                done, pending = await asyncio.wait(
                    pending, timeout=remaining, return_when=asyncio.FIRST_EXCEPTION
                )
                fatal = _first_exception(done)
        except asyncio.CancelledError:
            for future in pending:
                future.cancel()
            raise

        if pending:
            if fatal is None:
                logger.error(
                    f"Scan exceeded its {self.config.scan_deadline_seconds}s deadline"
                )
                report.deadline_exceeded = True
            for future in pending:
                future.cancel()
            # Cancelled work records its reserved keys as failed
            results = await asyncio.gather(*pending, return_exceptions=True)
            if fatal is None:
                fatal = next(
                    (r for r in results if isinstance(r, Exception)), None
                )

        if fatal is not None:
            logger.error(f"Scan aborted: {fatal}")
            raise fatal

        logger.info(f"Scan complete: {report.to_dict()}")
        return report

    async def _process_task(
        self,
        task: "Task",
        now: datetime,
        report: RunReport,
        semaphore: asyncio.Semaphore,
    ) -> None:
        try:
            urgency = self.classifier.classify(task.due_date, now)
        except InvalidTimestamp as e:
            logger.warning(f"Skipping task {task.id}: {e}")
            report.errors += 1
            return

        if urgency == Urgency.NORMAL:
            return

        if urgency == Urgency.DUE_SOON:
            report.due_soon += 1
        else:
            report.overdue += 1

        condition = Condition(urgency.value)
        if not self.config.is_trigger_enabled(condition.value):
            logger.debug(f"Trigger {condition.value} disabled, not notifying")
            return

        try:
            recipients = self._resolve_recipients(task, report)
        except FATAL_ERRORS:
            raise
        except Exception as e:
            logger.exception(f"Failed to resolve assignees for task {task.id}: {e}")
            report.errors += 1
            return

        results = await asyncio.gather(
            *(
                self._notify(task, condition, user, now, report, semaphore)
                for user in recipients
            ),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, FATAL_ERRORS):
                raise result
            if isinstance(result, Exception):
                logger.error(f"Task {task.id}: notification failed: {result}")
                report.errors += 1

    def _resolve_recipients(self, task: "Task", report: RunReport) -> list["User"]:
        recipients = {}
        for reference in task.assignee_refs:
            result = self.resolver.resolve(reference)
            if isinstance(result, ResolutionMiss):
                logger.warning(f"Task {task.id}: cannot resolve assignee ({result})")
                report.unresolved += 1
                continue
            recipients.setdefault(result.id, result)
        return list(recipients.values())

    def _build_payload(
        self, task: "Task", condition: Condition, user: "User", now: datetime
    ) -> NotificationPayload:
        if condition == Condition.DUE_SOON:
            return format_due_soon(task, user, now, self.base_url)
        return format_overdue(task, user, now, self.base_url)

    async def _notify(
        self,
        task: "Task",
        condition: Condition,
        user: "User",
        now: datetime,
        report: RunReport,
        semaphore: asyncio.Semaphore,
    ) -> None:
        key = NotificationKey(SubjectType.TASK, task.id, condition, user.id)
        payload = self._build_payload(task, condition, user, now)

        async with semaphore:
            reservation = self.ledger.try_reserve(key)
            if not reservation.reserved:
                report.deduplicated += 1
                return

            try:
                outcome = await self.dispatcher.dispatch(user, payload)
            except asyncio.CancelledError:
                # Reserved but never delivered; release it as failed
                self.ledger.record_outcome(
                    key, DispatchStatus.FAILED, error="scan deadline exceeded"
                )
                report.failed += 1
                raise

            self.ledger.record_outcome(
                key, outcome.status, message_id=outcome.message_id, error=outcome.error
            )
            report.count(outcome.status)
