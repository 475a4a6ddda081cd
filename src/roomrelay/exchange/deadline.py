# src/roomrelay/exchange/deadline.py
"""
Idle / hard deadline handling for a single chat exchange.

``DeadlineBudget`` is a pure value: given clock readings it answers which
deadline (if any) has elapsed, so the race between the two deadlines can be
tested without I/O. ``TimeoutController`` drives one budget on the running
event loop with a single timer that is re-armed on every activity signal,
and exposes the resulting one-shot cancellation token.

Guarantee: the idle deadline moves forward with activity, the hard deadline
never moves, so an exchange is cancelled no later than
``idle_timeout * hard_timeout_factor`` after it started.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from ..exceptions import CancellationError
from ..models import DeadlineKind

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_HARD_TIMEOUT_FACTOR = 1.5


@dataclass(frozen=True)
class DeadlineBudget:
    """
    Deadline state of one exchange, in event-loop clock seconds.

    Attributes:
        started_at: Clock reading when the exchange began.
        idle_timeout: Allowed silence between two activity signals.
        hard_timeout: Absolute budget from ``started_at``.
        last_activity: Clock reading of the most recent activity (initially ``started_at``).
    """
    started_at: float
    idle_timeout: float
    hard_timeout: float
    last_activity: float

    @classmethod
    def begin(
        cls,
        now: float,
        idle_timeout: float,
        hard_timeout_factor: float = DEFAULT_HARD_TIMEOUT_FACTOR,
    ) -> "DeadlineBudget":
        if idle_timeout <= 0:
            raise ValueError("idle_timeout must be positive")
        if hard_timeout_factor < 1.0:
            raise ValueError("hard_timeout_factor must be >= 1.0")
        return cls(
            started_at=now,
            idle_timeout=idle_timeout,
            hard_timeout=idle_timeout * hard_timeout_factor,
            last_activity=now,
        )

    @property
    def idle_deadline(self) -> float:
        return self.last_activity + self.idle_timeout

    @property
    def hard_deadline(self) -> float:
        return self.started_at + self.hard_timeout

    @property
    def next_deadline(self) -> float:
        return min(self.idle_deadline, self.hard_deadline)

    def touched(self, now: float) -> "DeadlineBudget":
        """Returns the budget with the idle deadline pushed back from ``now``."""
        return replace(self, last_activity=max(self.last_activity, now))

    def expired(self, now: float) -> Optional[DeadlineKind]:
        """Returns the kind of the earliest elapsed deadline, or None if both are pending."""
        elapsed = []
        if now >= self.hard_deadline:
            elapsed.append((self.hard_deadline, DeadlineKind.HARD))
        if now >= self.idle_deadline:
            elapsed.append((self.idle_deadline, DeadlineKind.IDLE))
        if not elapsed:
            return None
        return min(elapsed, key=lambda item: item[0])[1]

    def remaining(self, now: float) -> float:
        """Seconds until the next deadline (never negative)."""
        return max(0.0, self.next_deadline - now)


class TimeoutController:
    """
    Owns the deadline pair and the cancellation token of one exchange.

    Use as an async context manager so the timer is released on every exit
    path::

        async with TimeoutController(idle_timeout=75.0) as controller:
            text = await controller.guard(provider.chat_completion(...))
            controller.on_activity()
    """

    def __init__(
        self,
        idle_timeout: float,
        hard_timeout_factor: float = DEFAULT_HARD_TIMEOUT_FACTOR,
    ):
        self.idle_timeout = idle_timeout
        self.hard_timeout_factor = hard_timeout_factor
        self.budget: Optional[DeadlineBudget] = None
        self.expired_kind: Optional[DeadlineKind] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._handle: Optional[asyncio.TimerHandle] = None
        self._cancelled = asyncio.Event()
        self._closed = False
        self._on_cancel: List[Callable[[DeadlineKind], Any]] = []

    async def __aenter__(self) -> "TimeoutController":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def start(self) -> None:
        """Fix the hard deadline and arm the first timer."""
        if self.budget is not None:
            return
        self._loop = asyncio.get_running_loop()
        self.budget = DeadlineBudget.begin(self._loop.time(), self.idle_timeout, self.hard_timeout_factor)
        self._arm()

    def on_cancel(self, callback: Callable[[DeadlineKind], Any]) -> None:
        """Register a synchronous callback invoked once when a deadline fires."""
        self._on_cancel.append(callback)

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def elapsed(self) -> float:
        if self.budget is None or self._loop is None:
            return 0.0
        return self._loop.time() - self.budget.started_at

    @property
    def remaining(self) -> float:
        """Seconds until the next deadline; 0.0 once cancelled or before start."""
        if self.budget is None or self._loop is None or self.cancelled:
            return 0.0
        return self.budget.remaining(self._loop.time())

    def on_activity(self) -> None:
        """Signal one unit of backend output: pushes the idle deadline back."""
        if self.budget is None or self._loop is None or self._closed or self.cancelled:
            return
        self.budget = self.budget.touched(self._loop.time())
        self._arm()

    def _arm(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = self._loop.call_at(self.budget.next_deadline, self._on_timer)

    def _on_timer(self) -> None:
        self._handle = None
        if self._closed or self.cancelled:
            return
        kind = self.budget.expired(self._loop.time())
        if kind is None:
            # Fired a hair early or activity arrived meanwhile.
            self._arm()
            return
        self._fire(kind)

    def _fire(self, kind: DeadlineKind) -> None:
        if self._cancelled.is_set():
            return
        self.expired_kind = kind
        self._cancelled.set()
        logger.warning(f"Exchange cancelled: {kind.value} deadline elapsed after {self.elapsed:.2f}s")
        for callback in self._on_cancel:
            try:
                callback(kind)
            except Exception as e:
                logger.error(f"Cancellation callback failed: {e}", exc_info=True)

    def cancellation_error(self, streaming: bool = True) -> CancellationError:
        return CancellationError(self.expired_kind or DeadlineKind.IDLE, streaming=streaming)

    def raise_if_cancelled(self, streaming: bool = True) -> None:
        if self.cancelled:
            raise self.cancellation_error(streaming)

    async def wait_cancelled(self) -> DeadlineKind:
        """Suspend until a deadline fires."""
        await self._cancelled.wait()
        return self.expired_kind

    async def guard(self, awaitable: Awaitable[T], streaming: bool = True) -> T:
        """
        Await ``awaitable`` unless a deadline fires first.

        If the cancellation token is set before the result is available, the
        pending work is cancelled and CancellationError is raised. A result
        that is already available wins over a simultaneous cancellation.
        """
        future = asyncio.ensure_future(awaitable)
        if self.cancelled:
            future.cancel()
            await asyncio.wait({future})
            raise self.cancellation_error(streaming)

        waiter = asyncio.ensure_future(self.wait_cancelled())
        interrupted = False
        try:
            await asyncio.wait({future, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not future.done():
                interrupted = True
                future.cancel()
                await asyncio.wait({future})

        if interrupted:
            raise self.cancellation_error(streaming)
        return future.result()

    def close(self) -> None:
        """Release the pending timer. Safe to call on every exit path, more than once."""
        self._closed = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    @property
    def timer_pending(self) -> bool:
        return self._handle is not None
