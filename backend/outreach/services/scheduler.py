"""Outreach scheduler - decides when proactive notifications go out.

Every job lives in one APScheduler job store, ordered by next run time:
- Fixed jobs fire daily (morning and evening check-ins) on a CronTrigger
- One-shot jobs fire once on a DateTrigger and are then discarded

Event entry points (task completion, AI agent decisions and tool calls)
are not timer based but share the same lifecycle: nothing is accepted
before start() or after stop(). Every path ends in DeliveryService.broadcast.
"""
import asyncio
import dataclasses
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from pydantic import ValidationError

from ..exceptions import SchedulerNotRunningError
from ..schemas.agent import AIDecision
from .content import ContentGenerator
from .delivery import DeliveryService
from .messages import (
    CATEGORY_EVENING,
    CATEGORY_MESSAGE,
    CATEGORY_MORNING,
    CATEGORY_TASK_COMPLETE,
    DeliveryOutcome,
    OutboundMessage,
    Urgency,
    category_for_urgency,
    count_successes,
)

logger = logging.getLogger(__name__)

# Fixed daily jobs: job id -> (content kind, notification title, category)
FIXED_JOBS = {
    "morning_outreach": ("morning", "Good Morning", CATEGORY_MORNING),
    "evening_outreach": ("evening", "Evening Check-in", CATEGORY_EVENING),
}

DEFAULT_AI_TITLE = "Checking in"

# A fixed job that missed its slot by more than this is skipped until tomorrow
FIXED_MISFIRE_GRACE_SECONDS = 300

JOB_IDLE = "idle"
JOB_FIRING = "firing"


@dataclass
class ScheduledJob:
    """Read-only view of a job in the job table."""
    id: str
    name: str
    kind: str  # fixed, once
    trigger: str
    state: str
    next_fire_time: Optional[datetime] = None
    last_fire_time: Optional[datetime] = None


@dataclass
class AIDecisionResult:
    """What happened to an AI decision: sent, declined or ignored."""
    status: str
    devices_notified: int = 0


@dataclass
class _JobEntry:
    name: str
    kind: str
    trigger: str
    action: Callable[[], Awaitable[Any]]
    state: str = JOB_IDLE
    last_fire_time: Optional[datetime] = None


class OutreachScheduler:
    """Owns fixed, one-shot, and event-driven outreach."""

    def __init__(
        self,
        delivery: DeliveryService,
        content: ContentGenerator,
        timezone_name: str = "UTC",
        morning_time: Tuple[int, int] = (8, 0),
        evening_time: Tuple[int, int] = (20, 0),
    ):
        self._delivery = delivery
        self._content = content
        self._timezone_name = timezone_name
        self._fixed_times = {
            "morning_outreach": morning_time,
            "evening_outreach": evening_time,
        }
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._entries: Dict[str, _JobEntry] = {}
        self._inflight: Set[asyncio.Task] = set()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Register the fixed jobs and start accepting work.

        Must be called from within a running event loop.
        """
        if self._running:
            return

        self.scheduler = AsyncIOScheduler(timezone=self._timezone_name)

        for job_id, (kind, _title, _category) in FIXED_JOBS.items():
            hour, minute = self._fixed_times[job_id]
            self._add_job(
                job_id,
                name=f"{kind} outreach",
                kind="fixed",
                trigger=CronTrigger(hour=hour, minute=minute, timezone=self._timezone_name),
                action=partial(self.run_outreach, kind),
                misfire_grace_time=FIXED_MISFIRE_GRACE_SECONDS,
            )

        self.scheduler.start()
        self._running = True
        logger.info(
            f"Scheduler started (morning={self._fixed_times['morning_outreach']}, "
            f"evening={self._fixed_times['evening_outreach']}, tz={self._timezone_name})"
        )

    def stop(self):
        """Drop pending triggers and reject new work.

        Firings already running are separate tasks and keep going; await
        drain() to wait for them.
        """
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            self._entries = {
                job_id: entry
                for job_id, entry in self._entries.items()
                if entry.state == JOB_FIRING
            }
            logger.info("Scheduler stopped")

    async def drain(self):
        """Wait until every in-flight firing has finished."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight))

    def _ensure_running(self):
        if not self._running:
            raise SchedulerNotRunningError("Scheduler is not running")

    def _add_job(
        self,
        job_id: str,
        name: str,
        kind: str,
        trigger,
        action: Callable[[], Awaitable[Any]],
        misfire_grace_time: Optional[int] = None,
    ):
        self._entries[job_id] = _JobEntry(name=name, kind=kind, trigger=str(trigger), action=action)
        self.scheduler.add_job(
            self._fire,
            trigger=trigger,
            args=[job_id],
            id=job_id,
            name=name,
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=misfire_grace_time,
        )

    async def _fire(self, job_id: str):
        """Start a job's action as its own task.

        The executor's future finishes right away, so shutting the executor
        down never cancels a firing halfway through its sends.
        """
        entry = self._entries.get(job_id)
        if entry is None:
            return
        if entry.state == JOB_FIRING:
            logger.warning(f"Job {job_id} is still running, skipping this firing")
            return

        entry.state = JOB_FIRING
        task = asyncio.create_task(self._run_entry(job_id, entry))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _run_entry(self, job_id: str, entry: _JobEntry):
        """Run the action. Failures are logged; the job goes back to idle."""
        try:
            await entry.action()
        except Exception as e:
            logger.error(f"Error running job {job_id}: {e}")
        finally:
            entry.state = JOB_IDLE
            entry.last_fire_time = datetime.now(timezone.utc)
            if entry.kind == "once" or not self._running:
                self._entries.pop(job_id, None)

    # Job table

    def get_job(self, job_id: str) -> Optional[ScheduledJob]:
        entry = self._entries.get(job_id)
        if entry is None:
            return None

        job = self.scheduler.get_job(job_id) if self.scheduler and self._running else None
        return ScheduledJob(
            id=job_id,
            name=entry.name,
            kind=entry.kind,
            trigger=entry.trigger,
            state=entry.state,
            next_fire_time=job.next_run_time if job else None,
            last_fire_time=entry.last_fire_time,
        )

    def list_jobs(self) -> List[ScheduledJob]:
        """All known jobs, soonest first; jobs with no next run go last."""
        jobs = [self.get_job(job_id) for job_id in list(self._entries)]
        far_future = datetime.max.replace(tzinfo=timezone.utc)
        return sorted(
            (job for job in jobs if job is not None),
            key=lambda job: job.next_fire_time or far_future,
        )

    def schedule_once(
        self,
        message: OutboundMessage,
        delay_minutes: float,
        job_id: Optional[str] = None,
    ) -> ScheduledJob:
        """Broadcast `message` once, `delay_minutes` from now."""
        self._ensure_running()
        if delay_minutes <= 0:
            raise ValueError("delay_minutes must be positive")

        job_id = job_id or f"once-{uuid.uuid4().hex[:12]}"
        if job_id in self._entries:
            raise ValueError(f"Job {job_id} already exists")

        run_at = datetime.now(timezone.utc) + timedelta(minutes=delay_minutes)
        self._add_job(
            job_id,
            name=f"one-shot: {message.title}",
            kind="once",
            trigger=DateTrigger(run_date=run_at),
            action=partial(self._send_scheduled, job_id, message),
        )
        logger.info(f"Scheduled one-shot job {job_id} for {run_at.isoformat()}")
        return self.get_job(job_id)

    def cancel(self, job_id: str) -> bool:
        """Cancel a pending one-shot job. Returns False if there was none."""
        entry = self._entries.get(job_id)
        if entry is None or entry.kind != "once" or entry.state == JOB_FIRING:
            return False

        try:
            self.scheduler.remove_job(job_id)
        except JobLookupError:
            return False

        self._entries.pop(job_id, None)
        logger.info(f"Cancelled one-shot job {job_id}")
        return True

    # Job actions

    async def run_outreach(self, kind: str) -> List[DeliveryOutcome]:
        """Generate and broadcast the morning or evening check-in."""
        job_id = f"{kind}_outreach"
        _kind, title, category = FIXED_JOBS[job_id]

        body = await self._content.generate(kind)
        message = OutboundMessage(
            title=title,
            body=body,
            category=category,
            data={"context_type": kind},
        )
        outcomes = await self._delivery.broadcast(message)
        logger.info(f"{title} outreach delivered to {count_successes(outcomes)}/{len(outcomes)} devices")
        return outcomes

    async def _send_scheduled(self, job_id: str, message: OutboundMessage):
        message = dataclasses.replace(message, data={**message.data, "job_id": job_id})
        outcomes = await self._delivery.broadcast(message)
        logger.info(f"One-shot job {job_id} delivered to {count_successes(outcomes)}/{len(outcomes)} devices")

    # Event entry points

    async def task_complete(self, name: str, result: str) -> List[DeliveryOutcome]:
        """Notify devices that a task finished."""
        self._ensure_running()
        message = OutboundMessage(
            title="Task complete",
            body=f"{name}: {result}" if result else name,
            category=CATEGORY_TASK_COMPLETE,
            data={"context_type": "task_complete", "task_name": name},
        )
        return await self._delivery.broadcast(message)

    async def handle_ai_decision(self, payload: Any) -> AIDecisionResult:
        """Act on an AI agent's notify decision.

        Malformed payloads are logged and ignored, never raised.
        """
        self._ensure_running()
        try:
            decision = AIDecision.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed AI decision ({e.error_count()} validation errors)")
            return AIDecisionResult(status="ignored")

        body = decision.message.strip()
        if not decision.should_notify or not body:
            logger.info(
                f"AI declined to notify (should_notify={decision.should_notify}, "
                f"empty_message={not body})"
            )
            return AIDecisionResult(status="declined")

        message = OutboundMessage(
            title=decision.title or DEFAULT_AI_TITLE,
            body=body,
            category=CATEGORY_MESSAGE,
            data={"context_type": "ai"},
        )
        outcomes = await self._delivery.broadcast(message)
        return AIDecisionResult(status="sent", devices_notified=count_successes(outcomes))

    async def notify_from_tool(self, title: str, message: str, urgency: Urgency) -> int:
        """Broadcast on behalf of the agent's notify tool; returns devices notified."""
        self._ensure_running()
        outbound = OutboundMessage(
            title=title,
            body=message,
            category=category_for_urgency(urgency),
            urgency=urgency,
            data={"context_type": "ai"},
        )
        outcomes = await self._delivery.broadcast(outbound)
        return count_successes(outcomes)
