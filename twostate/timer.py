"""
twostate/timer.py - Cancellable Preparation Timer

Single-shot delayed actions on a simulated clock. The host advances the clock
from its frame/tick loop with step(dt_ms); callbacks fire synchronously inside
that call, on the same logical thread as everything else.
"""

import itertools
from dataclasses import dataclass, field
from typing import Callable, List, Protocol


@dataclass
class TimerToken:
    """Handle for one scheduled action."""
    token_id: int
    due_ms: float
    callback: Callable[[], None] = field(repr=False)
    cancelled: bool = False
    fired: bool = False

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)


class Timer(Protocol):
    """What the engine needs from a clock service."""

    def schedule(self, duration_ms: float, callback: Callable[[], None]) -> TimerToken:
        ...

    def cancel(self, token: TimerToken) -> bool:
        ...


class StepTimer:
    """Simulated-time timer driven by explicit steps.

    Tokens due at the same time fire in scheduling order. A callback may
    schedule further actions; those fire within the same step if they fall
    due before the step's end.
    """

    def __init__(self, start_ms: float = 0.0):
        self.now_ms = float(start_ms)
        self._pending: List[TimerToken] = []
        self._ids = itertools.count(1)

    def schedule(self, duration_ms: float, callback: Callable[[], None]) -> TimerToken:
        if duration_ms < 0:
            raise ValueError(f"duration_ms must be >= 0, got {duration_ms}")
        token = TimerToken(next(self._ids), self.now_ms + duration_ms, callback)
        self._pending.append(token)
        return token

    def cancel(self, token: TimerToken) -> bool:
        """
        Cancel a scheduled action.

        Returns:
            bool: True if this call prevented the action from firing. Cancelling
            a token that already fired or was already cancelled is a no-op.
        """
        if not token.pending:
            return False
        token.cancelled = True
        self._pending.remove(token)
        return True

    def step(self, dt_ms: float) -> int:
        """Advance the clock by dt_ms, firing everything that falls due. Returns fire count."""
        if dt_ms < 0:
            raise ValueError(f"dt_ms must be >= 0, got {dt_ms}")
        return self.advance_to(self.now_ms + dt_ms)

    def advance_to(self, target_ms: float) -> int:
        fired = 0
        while True:
            due = [t for t in self._pending if t.due_ms <= target_ms]
            if not due:
                break
            token = min(due, key=lambda t: (t.due_ms, t.token_id))
            self._pending.remove(token)
            self.now_ms = max(self.now_ms, token.due_ms)
            token.fired = True
            token.callback()
            fired += 1
        self.now_ms = max(self.now_ms, target_ms)
        return fired

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def clear(self) -> None:
        """Cancel everything outstanding."""
        for token in list(self._pending):
            self.cancel(token)
