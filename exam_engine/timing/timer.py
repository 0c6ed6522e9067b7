"""
Countdown timer.

    ARMED ──start()──▶ TICKING ──time_left hits 0──▶ EXPIRED
                          │ suspend()/resume()
                          └──cancel()──▶ CANCELLED

The timer never calls back into its owner. Each tick produces events
(TimerTick, and exactly one TimerExpired) that run() pushes onto the owner's
asyncio.Queue.
"""

import asyncio
import logging
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel

from exam_engine import config

log = logging.getLogger(__name__)


class TimerState(str, Enum):
    ARMED = "armed"
    TICKING = "ticking"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class TimerTick(BaseModel):
    time_left: int
    total: int


class TimerExpired(BaseModel):
    total: int


TimerEvent = Union[TimerTick, TimerExpired]


class CountdownTimer:
    def __init__(self, time_left: int, total: Optional[int] = None, tick_seconds: float = config.TIMER_TICK_SECONDS):
        self.time_left = max(0, int(time_left))
        self.total = int(total if total is not None else time_left)
        self.tick_seconds = tick_seconds
        self.state = TimerState.ARMED
        self.suspended = False

    def start(self):
        if self.state == TimerState.ARMED:
            self.state = TimerState.TICKING

    def suspend(self):
        self.suspended = True

    def resume(self):
        self.suspended = False

    def cancel(self):
        if self.state in (TimerState.ARMED, TimerState.TICKING):
            self.state = TimerState.CANCELLED

    @property
    def running(self) -> bool:
        return self.state == TimerState.TICKING and not self.suspended

    def tick(self) -> List[TimerEvent]:
        """Advance one second. Returns the events produced (possibly none)."""
        if not self.running:
            return []
        events: List[TimerEvent] = []
        if self.time_left > 0:
            self.time_left -= 1
            events.append(TimerTick(time_left=self.time_left, total=self.total))
        if self.time_left <= 0:
            self.state = TimerState.EXPIRED
            events.append(TimerExpired(total=self.total))
            log.info("[TIMER] Expired")
        return events

    async def run(self, queue: "asyncio.Queue[TimerEvent]"):
        """Tick once per tick_seconds until expired or cancelled."""
        self.start()
        while self.state == TimerState.TICKING:
            await asyncio.sleep(self.tick_seconds)
            for event in self.tick():
                await queue.put(event)
