"""Trackr Notifications - FastAPI Application.

Hosts the scheduled-notification trigger used by cron, the assignment and
comment endpoints that notify new assignees and @mentioned users, and an
optional in-process daily scan.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Awaitable, Optional, Union

from fastapi import FastAPI, HTTPException, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.orm import Session

from .assignees import (
    AssigneeHandle,
    AssigneeId,
    AssigneeName,
    AssigneeResolver,
    ResolutionMiss,
    extract_mentions,
    normalize_name,
)
from .assignment import AssignmentNotifier
from .channels import DeliveryChannel, get_channel
from .config import get_settings
from .dispatcher import DispatchOutcome, NotificationDispatcher
from .events import SubjectType
from .ledger import NotificationLedger
from .models import (
    Subtask,
    Task,
    TaskAssignment,
    TaskComment,
    User,
    SessionLocal,
    get_db,
    init_db,
)
from .notification_config import NotificationConfig, get_notification_config
from .read_model import TaskReader, UserDirectory
from .scanner import ScheduledScanRunner

# Configure logging
settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Scheduler for the optional in-process scan
scheduler = AsyncIOScheduler()


# =============================================================================
# Dependencies
# =============================================================================


def get_engine_config() -> NotificationConfig:
    """Engine tuning config, from NOTIFICATION_CONFIG_PATH or the default file."""
    path = (
        Path(settings.notification_config_path)
        if settings.notification_config_path
        else None
    )
    return get_notification_config(path)


def get_delivery_channel() -> DeliveryChannel:
    """Delivery channel for the configured environment."""
    return get_channel(settings)


def build_scan_runner(
    db: Session, config: NotificationConfig, channel: DeliveryChannel
) -> ScheduledScanRunner:
    """Wire a scan runner to a database session."""
    return ScheduledScanRunner(
        tasks=TaskReader(db),
        resolver=AssigneeResolver(UserDirectory(db)),
        ledger=NotificationLedger(db),
        dispatcher=NotificationDispatcher(channel, config.dispatch_timeout),
        config=config,
        base_url=settings.app_base_url,
    )


def build_assignment_notifier(
    db: Session, config: NotificationConfig, channel: DeliveryChannel
) -> AssignmentNotifier:
    """Wire an assignment notifier with the short assignment timeout."""
    return AssignmentNotifier(
        tasks=TaskReader(db),
        resolver=AssigneeResolver(UserDirectory(db)),
        dispatcher=NotificationDispatcher(channel, config.assignment_timeout),
        config=config,
        base_url=settings.app_base_url,
    )


# =============================================================================
# Scheduled Jobs
# =============================================================================


async def scheduled_scan_job():
    """Daily due-date scan when the in-process scheduler is enabled."""
    logger.info("Running scheduled due-date scan...")

    db = SessionLocal()
    try:
        runner = build_scan_runner(db, get_engine_config(), get_delivery_channel())
        report = await runner.run_scan(datetime.now(timezone.utc))
        logger.info(f"Scheduled scan complete: {report.to_dict()}")
    except Exception as e:
        logger.exception(f"Scheduled scan failed: {e}")
    finally:
        db.close()


# =============================================================================
# App Lifecycle
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting Trackr notifications...")
    init_db()

    if settings.scheduler_enabled:
        hour, minute = map(int, settings.scan_time.split(":"))
        scheduler.add_job(
            scheduled_scan_job,
            "cron",
            hour=hour,
            minute=minute,
            timezone=settings.user_timezone,
        )
        scheduler.start()
        logger.info(f"Scheduler started, daily scan at {settings.scan_time}")
    else:
        logger.info("In-process scheduler disabled, expecting external trigger")

    yield

    # Shutdown
    if scheduler.running:
        scheduler.shutdown()
    logger.info("Trackr notifications stopped")


app = FastAPI(
    title="Trackr Notifications",
    description="Due-date scans and assignment notifications",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# Pydantic Models
# =============================================================================


class RunReportResponse(BaseModel):
    evaluated_at: str
    tasks_examined: int
    due_soon: int
    overdue: int
    sent: int
    skipped_no_address: int
    unresolved: int
    failed: int
    deduplicated: int
    errors: int
    deadline_exceeded: bool


class ScanResponse(BaseModel):
    success: bool
    data: Optional[RunReportResponse] = None
    error: Optional[str] = None
    details: Optional[str] = None
    triggered_at: Optional[str] = None


class AssignTaskRequest(BaseModel):
    user_ids: list[int]
    assigned_by: int


class AssignSubtaskRequest(BaseModel):
    assignees: list[str]
    assigned_by: int


class NotificationResultResponse(BaseModel):
    assignee: str
    outcome: str  # sent | skipped-no-address | skipped-self | failed | unresolved | error
    detail: Optional[str] = None


class AssignmentResponse(BaseModel):
    success: bool
    subject_id: int
    added: list[str]
    notifications: list[NotificationResultResponse]


class CommentRequest(BaseModel):
    content: str
    author_id: int


class CommentResponse(BaseModel):
    success: bool
    comment_id: int
    mentioned: list[str]
    notifications: list[NotificationResultResponse]


# =============================================================================
# Helpers
# =============================================================================


async def run_scheduled_scan(
    db: Session,
    config: NotificationConfig,
    channel: DeliveryChannel,
    triggered_at: Optional[str] = None,
) -> JSONResponse:
    """Run a scan and wrap it in the trigger response envelope."""
    runner = build_scan_runner(db, config, channel)
    try:
        report = await runner.run_scan(datetime.now(timezone.utc))
    except Exception as e:
        logger.exception(f"Scheduled notifications failed: {e}")
        body = ScanResponse(
            success=False,
            error="Failed to process scheduled notifications",
            details=str(e) or type(e).__name__,
            triggered_at=triggered_at,
        )
        return JSONResponse(status_code=500, content=body.model_dump(exclude_none=True))

    body = ScanResponse(
        success=True,
        data=RunReportResponse(**report.to_dict()),
        triggered_at=triggered_at,
    )
    return JSONResponse(status_code=200, content=body.model_dump(exclude_none=True))


async def notify_quietly(
    notification: Awaitable[Union[DispatchOutcome, ResolutionMiss]],
    label: str,
) -> NotificationResultResponse:
    """Await a notification; failures are reported, never raised."""
    try:
        result = await notification
    except Exception as e:
        logger.exception(f"Notification for {label} failed: {e}")
        return NotificationResultResponse(assignee=label, outcome="error", detail=str(e))

    if isinstance(result, ResolutionMiss):
        return NotificationResultResponse(
            assignee=label, outcome="unresolved", detail=result.reason.value
        )
    return NotificationResultResponse(
        assignee=label,
        outcome=result.status.value,
        detail=result.error or result.message_id,
    )


# =============================================================================
# API Routes
# =============================================================================


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.utcnow().isoformat()}


@app.get("/scheduled-notifications", response_model=ScanResponse)
async def scheduled_notifications(
    db: Session = Depends(get_db),
    config: NotificationConfig = Depends(get_engine_config),
    channel: DeliveryChannel = Depends(get_delivery_channel),
):
    """Check for due-soon and overdue tasks and notify assignees."""
    return await run_scheduled_scan(db, config, channel)


@app.post("/scheduled-notifications", response_model=ScanResponse)
async def trigger_scheduled_notifications(
    db: Session = Depends(get_db),
    config: NotificationConfig = Depends(get_engine_config),
    channel: DeliveryChannel = Depends(get_delivery_channel),
):
    """Manual trigger, same as GET."""
    logger.info("Manual trigger for scheduled notifications")
    return await run_scheduled_scan(
        db, config, channel, triggered_at=datetime.now(timezone.utc).isoformat()
    )


@app.post("/tasks/{task_id}/assignments", response_model=AssignmentResponse)
async def assign_task(
    task_id: int,
    request: AssignTaskRequest,
    db: Session = Depends(get_db),
    config: NotificationConfig = Depends(get_engine_config),
    channel: DeliveryChannel = Depends(get_delivery_channel),
):
    """Assign users to a task and notify the new assignees."""
    task = db.query(Task).filter(Task.id == task_id).first()
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")

    wanted = list(dict.fromkeys(request.user_ids))
    known = {u.id for u in db.query(User).filter(User.id.in_(wanted)).all()}
    missing = [uid for uid in wanted if uid not in known]
    if missing:
        raise HTTPException(status_code=400, detail=f"Unknown user ids: {missing}")

    existing = {a.user_id for a in task.assignments}
    added = [uid for uid in wanted if uid not in existing]
    for uid in added:
        db.add(TaskAssignment(task_id=task.id, user_id=uid))
    db.commit()
    logger.info(f"Task {task.id}: assigned users {added}")

    notifier = build_assignment_notifier(db, config, channel)
    notifications = [
        await notify_quietly(
            notifier.notify_assignment(
                SubjectType.TASK, task_id, AssigneeId(uid), request.assigned_by
            ),
            label=str(uid),
        )
        for uid in added
    ]

    return AssignmentResponse(
        success=True,
        subject_id=task_id,
        added=[str(uid) for uid in added],
        notifications=notifications,
    )


@app.put("/subtasks/{subtask_id}/assignees", response_model=AssignmentResponse)
async def update_subtask_assignees(
    subtask_id: int,
    request: AssignSubtaskRequest,
    db: Session = Depends(get_db),
    config: NotificationConfig = Depends(get_engine_config),
    channel: DeliveryChannel = Depends(get_delivery_channel),
):
    """Replace a subtask's assignees (by name) and notify the new ones."""
    subtask = db.query(Subtask).filter(Subtask.id == subtask_id).first()
    if not subtask:
        raise HTTPException(status_code=404, detail="Subtask not found")

    names = [n.strip() for n in request.assignees if n and n.strip()]
    seen = {normalize_name(n) for n in subtask.assignees}
    added = []
    for name in names:
        if normalize_name(name) not in seen:
            seen.add(normalize_name(name))
            added.append(name)

    subtask.assignees = names
    db.commit()
    logger.info(f"Subtask {subtask.id}: assignees now {names}")

    notifier = build_assignment_notifier(db, config, channel)
    notifications = [
        await notify_quietly(
            notifier.notify_assignment(
                SubjectType.SUBTASK, subtask_id, AssigneeName(name), request.assigned_by
            ),
            label=name,
        )
        for name in added
    ]

    return AssignmentResponse(
        success=True,
        subject_id=subtask_id,
        added=added,
        notifications=notifications,
    )


@app.post("/tasks/{task_id}/comments", response_model=CommentResponse)
async def add_task_comment(
    task_id: int,
    request: CommentRequest,
    db: Session = Depends(get_db),
    config: NotificationConfig = Depends(get_engine_config),
    channel: DeliveryChannel = Depends(get_delivery_channel),
):
    """Post a comment on a task and notify the users it @mentions."""
    task = db.query(Task).filter(Task.id == task_id).first()
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")

    content = request.content.strip()
    if not content:
        raise HTTPException(status_code=400, detail="Comment content is required")
    if db.query(User).filter(User.id == request.author_id).first() is None:
        raise HTTPException(status_code=400, detail=f"Unknown user id: {request.author_id}")

    comment = TaskComment(task_id=task.id, author_id=request.author_id, content=content)
    db.add(comment)
    db.commit()

    mentioned = extract_mentions(content)
    logger.info(f"Task {task.id}: comment {comment.id} mentions {mentioned}")

    notifier = build_assignment_notifier(db, config, channel)
    notifications = [
        await notify_quietly(
            notifier.notify_mention(
                SubjectType.TASK,
                task_id,
                AssigneeHandle(handle),
                request.author_id,
                content,
            ),
            label=f"@{handle}",
        )
        for handle in mentioned
    ]

    return CommentResponse(
        success=True,
        comment_id=comment.id,
        mentioned=mentioned,
        notifications=notifications,
    )
