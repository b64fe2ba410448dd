"""Scheduled tasks for a session: triggers, persistence and firing.

Cron expressions use the croniter dialect (five fields, optional
trailing seconds field) and are evaluated in UTC.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Annotated, Any, Awaitable, Callable, List, Literal, Optional, Union

from croniter import croniter
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from session_agent.exceptions import (
    InvalidTrigger,
    TaskAlreadyTerminal,
    TaskNotFound,
)
from session_agent.execution import new_id
from session_agent.storage import KeyValueStore

logger = logging.getLogger(__name__)

PENDING = "pending"
FIRED = "fired"
CANCELED = "canceled"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Triggers (discriminated union via "kind")
# ---------------------------------------------------------------------------


class AtTrigger(BaseModel):
    """Fire once at an absolute time."""

    kind: Literal["at"] = "at"
    at: datetime = Field(..., description="ISO 8601 time to run the task at")


class AfterTrigger(BaseModel):
    """Fire once after a delay from creation."""

    kind: Literal["after"] = "after"
    seconds: float = Field(..., description="Delay in seconds before the task runs")


class CronTrigger(BaseModel):
    """Fire repeatedly on a cron schedule (UTC)."""

    kind: Literal["cron"] = "cron"
    expression: str = Field(..., description="Cron expression, e.g. '0 9 * * 1'")


Trigger = Annotated[
    Union[AtTrigger, AfterTrigger, CronTrigger], Field(discriminator="kind")
]
trigger_adapter: TypeAdapter = TypeAdapter(Trigger)


def describe_trigger(trigger: Trigger) -> str:
    if isinstance(trigger, AtTrigger):
        return _as_utc(trigger.at).isoformat()
    if isinstance(trigger, AfterTrigger):
        return f"{trigger.seconds:g}s"
    return trigger.expression


def next_cron_time(expression: str, after: datetime) -> datetime:
    return croniter(expression, _as_utc(after)).get_next(datetime)


def first_run_at(trigger: Trigger, now: datetime) -> datetime:
    """Validate ``trigger`` against ``now`` and return its first due time."""
    if isinstance(trigger, AtTrigger):
        at = _as_utc(trigger.at)
        if at <= now:
            raise InvalidTrigger(f"Scheduled time {at.isoformat()} is not in the future")
        return at
    if isinstance(trigger, AfterTrigger):
        if not math.isfinite(trigger.seconds) or trigger.seconds < 0:
            raise InvalidTrigger(
                f"Delay must be a finite non-negative number, got {trigger.seconds}"
            )
        try:
            return now + timedelta(seconds=trigger.seconds)
        except OverflowError:
            raise InvalidTrigger(f"Delay of {trigger.seconds:g}s is out of range") from None
    if isinstance(trigger, CronTrigger):
        if not croniter.is_valid(trigger.expression):
            raise InvalidTrigger(f"Invalid cron expression '{trigger.expression}'")
        return next_cron_time(trigger.expression, now)
    raise InvalidTrigger(f"Unsupported trigger {trigger!r}")


# ---------------------------------------------------------------------------
# Task record
# ---------------------------------------------------------------------------


@dataclass
class ScheduledTask:
    id: str
    trigger: Trigger
    handler_name: str
    payload: Any
    created_at: datetime
    next_run_at: Optional[datetime]
    status: str = PENDING  # "pending" | "fired" | "canceled"
    last_fired_at: Optional[datetime] = None
    fire_count: int = 0
    metadata: dict = field(default_factory=dict)

    @property
    def recurring(self) -> bool:
        return isinstance(self.trigger, CronTrigger)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "trigger": self.trigger.model_dump(mode="json"),
            "handler_name": self.handler_name,
            "payload": self.payload,
            "created_at": self.created_at.isoformat(),
            "next_run_at": self.next_run_at.isoformat() if self.next_run_at else None,
            "status": self.status,
            "last_fired_at": (
                self.last_fired_at.isoformat() if self.last_fired_at else None
            ),
            "fire_count": self.fire_count,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "ScheduledTask":
        def parse(value):
            return datetime.fromisoformat(value) if value else None

        return cls(
            id=d["id"],
            trigger=trigger_adapter.validate_python(d["trigger"]),
            handler_name=d["handler_name"],
            payload=d.get("payload"),
            created_at=parse(d["created_at"]),
            next_run_at=parse(d.get("next_run_at")),
            status=d.get("status", PENDING),
            last_fired_at=parse(d.get("last_fired_at")),
            fire_count=d.get("fire_count", 0),
            metadata=d.get("metadata") or {},
        )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class SchedulerStore:
    """Schedule table of one session, kept in creation order.

    Every mutation goes through ``KeyValueStore.update`` so a cancel and
    a fire racing on the same task are serialized: whichever is observed
    first wins and the other sees ``TaskAlreadyTerminal``.
    """

    def __init__(
        self,
        store: KeyValueStore,
        session_id: str,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.session_id = session_id
        self.clock = clock or utcnow
        self.key = f"session:{session_id}:schedule"

    def _now(self, now: Optional[datetime] = None) -> datetime:
        return _as_utc(now or self.clock())

    async def create(
        self,
        trigger: Union[Trigger, dict],
        handler_name: str,
        payload: Any = None,
    ) -> str:
        if isinstance(trigger, dict):
            try:
                trigger = trigger_adapter.validate_python(trigger)
            except ValidationError as e:
                raise InvalidTrigger(f"Invalid trigger: {e}") from e
        now = self._now()
        task = ScheduledTask(
            id=new_id("task_"),
            trigger=trigger,
            handler_name=handler_name,
            payload=payload,
            created_at=now,
            next_run_at=first_run_at(trigger, now),
        )
        await self.store.append(self.key, task.to_dict())
        logger.info(
            f"Session {self.session_id}: scheduled task {task.id} "
            f"({trigger.kind} {describe_trigger(trigger)}) -> {handler_name}"
        )
        return task.id

    async def list(self) -> List[ScheduledTask]:
        """All tasks of the session in creation order."""
        rows = await self.store.get(self.key) or []
        return [ScheduledTask.from_dict(row) for row in rows]

    async def get(self, task_id: str) -> ScheduledTask:
        for task in await self.list():
            if task.id == task_id:
                return task
        raise TaskNotFound(f"Task '{task_id}' not found")

    async def _transition(
        self, task_id: str, change: Callable[[ScheduledTask], None]
    ) -> ScheduledTask:
        updated: List[ScheduledTask] = []

        def apply(rows):
            rows = list(rows or [])
            for i, row in enumerate(rows):
                if row["id"] != task_id:
                    continue
                task = ScheduledTask.from_dict(row)
                if task.status != PENDING:
                    raise TaskAlreadyTerminal(
                        f"Task '{task_id}' is already {task.status}"
                    )
                change(task)
                rows[i] = task.to_dict()
                updated.append(task)
                return rows
            raise TaskNotFound(f"Task '{task_id}' not found")

        await self.store.update(self.key, apply)
        return updated[0]

    async def cancel(self, task_id: str) -> ScheduledTask:
        def mark(task: ScheduledTask) -> None:
            task.status = CANCELED
            task.next_run_at = None

        task = await self._transition(task_id, mark)
        logger.info(f"Session {self.session_id}: canceled task {task_id}")
        return task

    async def due_tasks(self, now: Optional[datetime] = None) -> List[ScheduledTask]:
        now = self._now(now)
        return [
            task
            for task in await self.list()
            if task.status == PENDING
            and task.next_run_at is not None
            and task.next_run_at <= now
        ]

    async def mark_fired(
        self, task_id: str, now: Optional[datetime] = None
    ) -> ScheduledTask:
        """Claim a pending task for dispatch.

        One-shot tasks become ``fired``; cron tasks stay ``pending`` with
        the next due time recomputed.
        """
        now = self._now(now)

        def mark(task: ScheduledTask) -> None:
            task.fire_count += 1
            task.last_fired_at = now
            if isinstance(task.trigger, CronTrigger):
                base = max(now, task.next_run_at or now)
                task.next_run_at = next_cron_time(task.trigger.expression, base)
            else:
                task.status = FIRED
                task.next_run_at = None

        task = await self._transition(task_id, mark)
        logger.info(
            f"Session {self.session_id}: fired task {task_id} "
            f"(status={task.status}, count={task.fire_count})"
        )
        return task

    async def fire_due(
        self,
        dispatch: Callable[[ScheduledTask], Awaitable[Any]],
        now: Optional[datetime] = None,
    ) -> List[ScheduledTask]:
        """Claim and dispatch every due task; returns the tasks dispatched."""
        now = self._now(now)
        fired = []
        for task in await self.due_tasks(now):
            try:
                claimed = await self.mark_fired(task.id, now)
            except (TaskAlreadyTerminal, TaskNotFound) as e:
                logger.info(f"Session {self.session_id}: skipped task {task.id}: {e}")
                continue
            try:
                await dispatch(claimed)
            except Exception:
                logger.exception(
                    f"Session {self.session_id}: handler '{claimed.handler_name}' "
                    f"failed for task {claimed.id}"
                )
            fired.append(claimed)
        return fired
