"""Adaptive-interval status polling.

:class:`BackoffSchedule` is a pure table mapping elapsed time to the next
interval, so tier boundaries can be checked without any network code.
:class:`PollScheduler` drives a status check on that schedule inside a single
cancellable asyncio task.
"""
from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterator, Sequence

from devgate.config import const

from .errors import NetworkError, PollTimeout
from .models import RemoteStatus, Result

__all__ = [
    "BackoffTier",
    "BackoffSchedule",
    "PollUpdate",
    "PollOutcome",
    "PollScheduler",
]

_log = logging.getLogger(__name__)

StatusCheck = Callable[[], Awaitable[Result[RemoteStatus]]]
UpdateCallback = Callable[["PollUpdate"], None]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class BackoffTier:
    until: float  # elapsed seconds at which the tier ends; math.inf for the last
    interval: float


@dataclass(frozen=True, slots=True)
class BackoffSchedule:
    tiers: tuple[BackoffTier, ...]
    budget: float

    def __post_init__(self) -> None:
        if not self.tiers:
            raise ValueError("backoff schedule needs at least one tier")
        bounds = [t.until for t in self.tiers]
        if bounds != sorted(bounds):
            raise ValueError("backoff tiers must be ordered by their upper bound")
        if any(t.interval <= 0 for t in self.tiers):
            raise ValueError("backoff intervals must be positive")

    @classmethod
    def from_pairs(cls, pairs: Sequence[tuple[float | None, float]], budget: float) -> "BackoffSchedule":
        tiers = tuple(BackoffTier(math.inf if until is None else float(until), float(interval)) for until, interval in pairs)
        return cls(tiers=tiers, budget=float(budget))

    @classmethod
    def default(cls) -> "BackoffSchedule":
        return cls.from_pairs(const.POLL_TIERS, const.POLL_BUDGET)

    def interval_for(self, elapsed: float) -> float:
        for tier in self.tiers:
            if elapsed < tier.until:
                return tier.interval
        return self.tiers[-1].interval

    def delays(self) -> Iterator[float]:
        """Successive sleeps before each check, stopping at the budget."""
        elapsed = 0.0
        while True:
            delay = self.interval_for(elapsed)
            if elapsed + delay > self.budget:
                return
            elapsed += delay
            yield delay

    @property
    def max_attempts(self) -> int:
        return sum(1 for _ in self.delays())


@dataclass(frozen=True, slots=True)
class PollUpdate:
    attempt: int
    elapsed: float
    status: RemoteStatus | None = None
    error: NetworkError | None = None

    @property
    def message(self) -> str:
        if self.error is not None:
            return "Retrying..."
        if self.status is not None and self.status.message:
            return f"{self.status.message} ({int(self.elapsed)}s)"
        return f"Checking... ({int(self.elapsed)}s)"


@dataclass(frozen=True, slots=True)
class PollOutcome:
    attempts: int
    elapsed: float
    status: RemoteStatus | None = None
    timeout: PollTimeout | None = None

    @property
    def timed_out(self) -> bool:
        return self.timeout is not None


async def _sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


def _current_task() -> asyncio.Task | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


@dataclass
class PollScheduler:
    schedule: BackoffSchedule = field(default_factory=BackoffSchedule.default)
    check_timeout: float = const.STATUS_TIMEOUT
    sleep: Sleep = _sleep
    _task: asyncio.Task | None = field(default=None, init=False, repr=False)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(self, check: StatusCheck, on_update: UpdateCallback | None = None) -> PollOutcome:
        """Poll until a terminal status or until the budget is spent."""
        attempts = 0
        elapsed = 0.0
        for delay in self.schedule.delays():
            await self.sleep(delay)
            attempts += 1
            elapsed += delay
            try:
                result = await asyncio.wait_for(check(), timeout=self.check_timeout)
            except asyncio.TimeoutError:
                result = Result.failure(NetworkError(f"status check exceeded {self.check_timeout}s"))

            if not result.ok:
                _log.debug("poll attempt %s failed: %s", attempts, result.error)
                update = PollUpdate(attempt=attempts, elapsed=elapsed, error=result.error)
            else:
                update = PollUpdate(attempt=attempts, elapsed=elapsed, status=result.value)
            status = update.status
            if status is not None and status.terminal:
                _log.info("poll finished after %s attempts: %s", attempts, status.kind)
                return PollOutcome(attempts=attempts, elapsed=elapsed, status=status)
            if on_update is not None:
                on_update(update)

        _log.info("poll budget exhausted after %s attempts", attempts)
        timeout = PollTimeout(
            "Timed out waiting for approval. Restart or use an activation code.",
            attempts=attempts,
            elapsed=elapsed,
        )
        return PollOutcome(attempts=attempts, elapsed=elapsed, timeout=timeout)

    def start(
        self,
        check: StatusCheck,
        on_update: UpdateCallback | None = None,
        on_done: Callable[[PollOutcome], Awaitable[None]] | None = None,
    ) -> asyncio.Task:
        """Run the loop in the background, replacing any loop already running."""
        self.cancel()

        async def _loop() -> PollOutcome:
            outcome = await self.run(check, on_update)
            if on_done is not None:
                await on_done(outcome)
            return outcome

        self._task = asyncio.create_task(_loop(), name="devgate-status-poll")
        return self._task

    def cancel(self) -> bool:
        task = self._task
        if task is not None and task is _current_task():
            # the loop is finishing through its own on_done callback
            return False
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            _log.debug("status poll cancelled")
            return True
        return False

    async def wait(self) -> PollOutcome | None:
        task = self._task
        if task is None:
            return None
        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled():
                return None
            raise
