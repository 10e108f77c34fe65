"""
Round clock: cancellable timers on top of APScheduler.

The engine asks for one timer at a time (countdown, ramp or intermission)
and gets back a TimerHandle. Cancelling the handle removes the job and
marks the handle inactive, so a firing that was already queued when the
cancel happened is dropped instead of reaching the engine.
"""

import asyncio
import itertools
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

import pytz
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from crashline.core.logger import get_logger

logger = get_logger("clock")

COUNTDOWN = "countdown"
RAMP = "ramp"
INTERMISSION = "intermission"


@dataclass(eq=False)
class TimerHandle:
    kind: str
    generation: int
    job_id: str
    once: bool = False
    active: bool = True


TimerCallback = Callable[[TimerHandle], None]


class RoundClock:
    """
    Owns the scheduler and at most one live timer per kind.

    Callbacks are wrapped in a coroutine so APScheduler runs them on the
    event loop instead of its thread pool; ticks of one timer are therefore
    strictly ordered.
    """

    def __init__(self):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._active: Dict[str, TimerHandle] = {}
        self._generations = itertools.count(1)

    @property
    def running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    def start(self):
        """Start the scheduler. Must be called from inside the running event loop."""
        if self.running:
            return
        self.scheduler = AsyncIOScheduler(
            event_loop=asyncio.get_running_loop(),
            timezone=pytz.utc,
            job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": None},
        )
        self.scheduler.start()
        logger.info("Round clock started")

    def shutdown(self):
        for handle in list(self._active.values()):
            self.cancel(handle)
        if self.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Round clock shutdown")
        self.scheduler = None

    def arm_interval(self, kind: str, seconds: float, callback: TimerCallback) -> TimerHandle:
        """Fire ``callback(handle)`` every ``seconds``, first after one interval."""
        trigger = IntervalTrigger(seconds=seconds, timezone=pytz.utc)
        return self._arm(kind, trigger, callback, once=False)

    def arm_once(self, kind: str, seconds: float, callback: TimerCallback) -> TimerHandle:
        run_date = datetime.now(pytz.utc) + timedelta(seconds=seconds)
        trigger = DateTrigger(run_date=run_date, timezone=pytz.utc)
        return self._arm(kind, trigger, callback, once=True)

    def cancel(self, handle: Optional[TimerHandle]):
        if handle is None or not handle.active:
            return
        handle.active = False
        if self._active.get(handle.kind) is handle:
            del self._active[handle.kind]
        if self.scheduler is None:
            return
        try:
            self.scheduler.remove_job(handle.job_id)
        except JobLookupError:
            # One-shot jobs are removed by the scheduler once they have run.
            logger.debug(f"Timer {handle.job_id} already finished")

    def active(self, kind: str) -> Optional[TimerHandle]:
        return self._active.get(kind)

    def _arm(self, kind: str, trigger, callback: TimerCallback, once: bool) -> TimerHandle:
        if not self.running:
            raise RuntimeError("Round clock is not started")
        self.cancel(self._active.get(kind))

        generation = next(self._generations)
        handle = TimerHandle(
            kind=kind, generation=generation, job_id=f"{kind}-{generation}", once=once
        )
        self._active[kind] = handle
        self.scheduler.add_job(
            self._fire,
            trigger,
            args=[handle, callback],
            id=handle.job_id,
            name=f"round {kind}",
        )
        logger.debug(f"Armed timer {handle.job_id}")
        return handle

    async def _fire(self, handle: TimerHandle, callback: TimerCallback):
        if not handle.active:
            logger.debug(f"Dropped stale firing of {handle.job_id}")
            return
        if handle.once:
            handle.active = False
            if self._active.get(handle.kind) is handle:
                del self._active[handle.kind]
        callback(handle)

