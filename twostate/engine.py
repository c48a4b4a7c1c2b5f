"""
twostate/engine.py - Two-State Measurement Engine

Lifecycle state machine for a single two-state system or a batch of them.
Owns the measurement state and the seed; regenerates the whole outcome buffer
from (seed, bias, active_count) through the seeded sampler; schedules the
cancellable preparation delay on an injected timer.

Lifecycle edges:
    any                  --prepare()-->                 preparingToBeMeasured
    preparingToBeMeasured --timer / prepare_now()-->    measuredAndHidden (classical)
                                                        readyToBeMeasured (quantum)
    measuredAndHidden    --reveal()-->                  revealed
    readyToBeMeasured    --reveal() / measure()-->      revealed (draws once)
    revealed             --hide()-->                    measuredAndHidden
    any                  --set_measurement_values_immediate()--> revealed / readyToBeMeasured
    any                  --reset()-->                   initial state

Single-threaded: every mutation happens inside one of the public operations or
inside the timer callback, which the host fires from its tick loop.
"""

from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from receipts import StopRule, emit_receipt

from .bias import BiasProperty
from .constants import (
    DEFAULT_BATCH_COUNT,
    MAX_COUNT,
    MULTI_COUNT_QUANTITIES,
    PREPARATION_TIME_MS,
    RECEIPT_LEDGER_LIMIT,
    SINGLE_COUNT,
    TENANT_ID,
    MeasurementState,
)
from .outcome_space import OutcomeSpace
from .sampler import OUTCOME_DTYPE, draw_seed, is_sentinel, sample_indices
from .snapshot import MeasurementSnapshot
from .statistics import Tally, tally_indices
from .timer import Timer, TimerToken

DataChangedListener = Callable[[], None]


@dataclass(frozen=True)
class MeasurementResult:
    """Values returned by measure()."""
    count: int
    values: Tuple[str, ...]


# =============================================================================
# STOPRULES
# =============================================================================

def stoprule_invalid_state(ledger: Deque[dict], operation: str, state: MeasurementState,
                           allowed: Iterable[MeasurementState],
                           tenant_id: str = TENANT_ID) -> None:
    """
    Emit an anomaly receipt for an operation called from the wrong state, then raise.

    Raises:
        StopRule: Always
    """
    allowed_values = [s.value for s in allowed]
    ledger.append(emit_receipt("anomaly", {
        "tenant_id": tenant_id,
        "metric": "measurement_state",
        "operation": operation,
        "state": state.value,
        "allowed": allowed_values,
        "classification": "violation",
        "action": "halt",
    }))
    raise StopRule(
        f"{operation}() is not valid in state '{state.value}'; "
        f"expected one of {allowed_values}"
    )


def stoprule_invalid_value(ledger: Deque[dict], operation: str, value, expected,
                           tenant_id: str = TENANT_ID) -> None:
    """
    Emit an anomaly receipt for an argument outside its valid set, then raise.

    Raises:
        StopRule: Always
    """
    ledger.append(emit_receipt("anomaly", {
        "tenant_id": tenant_id,
        "metric": operation,
        "value": value,
        "expected": list(expected),
        "classification": "violation",
        "action": "halt",
    }))
    raise StopRule(f"{operation}: {value!r} is not one of {list(expected)}")


# =============================================================================
# ENGINE
# =============================================================================

class MeasurementEngine:
    """
    Preparation/measurement/reveal engine for one or many two-state systems.

    The same engine serves a single system (max_count == 1) and a batch
    (max_count > 1); only the buffer capacity and the availability of tally()
    differ.

    Args:
        outcome_space: Labels and collapse behavior of the system variant
        bias: Live handle whose .value is the probability of label[0]
        timer: Clock service with schedule(ms, cb) / cancel(token)
        max_count: Capacity of the outcome buffer
        initial_count: Active count at construction and after reset()
        allowed_counts: Counts the active count may be set to
        preparation_time_ms: Delay between prepare() and its completion
        initial_label: Label every outcome shows before the first preparation
        seed_rng: Generator used to draw fresh seeds (defaults to unseeded)
        tenant_id: Tenant recorded on every receipt
    """

    def __init__(self,
                 outcome_space: OutcomeSpace,
                 bias: BiasProperty,
                 timer: Timer,
                 max_count: int = MAX_COUNT,
                 initial_count: Optional[int] = None,
                 allowed_counts: Optional[Sequence[int]] = None,
                 preparation_time_ms: float = PREPARATION_TIME_MS,
                 initial_label: Optional[str] = None,
                 seed_rng: Optional[np.random.Generator] = None,
                 tenant_id: str = TENANT_ID):
        if max_count < 1:
            raise ValueError(f"max_count must be >= 1, got {max_count}")
        if preparation_time_ms < 0:
            raise ValueError(f"preparation_time_ms must be >= 0, got {preparation_time_ms}")

        self.outcome_space = outcome_space
        self.bias = bias
        self.timer = timer
        self.max_count = max_count
        self.preparation_time_ms = float(preparation_time_ms)
        self.tenant_id = tenant_id
        self.receipt_ledger: Deque[dict] = deque(maxlen=RECEIPT_LEDGER_LIMIT)

        if allowed_counts is None:
            if max_count == SINGLE_COUNT:
                allowed_counts = (SINGLE_COUNT,)
            else:
                allowed_counts = tuple(q for q in MULTI_COUNT_QUANTITIES if q <= max_count)
        self.allowed_counts = tuple(sorted(set(int(c) for c in allowed_counts)))
        if not self.allowed_counts or any(c < 1 or c > max_count for c in self.allowed_counts):
            raise ValueError(f"allowed_counts must lie in [1, {max_count}], got {allowed_counts}")

        if initial_count is None:
            if DEFAULT_BATCH_COUNT in self.allowed_counts and max_count > SINGLE_COUNT:
                initial_count = DEFAULT_BATCH_COUNT
            else:
                initial_count = self.allowed_counts[0]
        if initial_count not in self.allowed_counts:
            raise ValueError(f"initial_count {initial_count} not in allowed_counts {self.allowed_counts}")
        self.initial_count = initial_count

        initial_label = initial_label if initial_label is not None else outcome_space.labels[0]
        # sentinel seed matching the initial label
        self.initial_seed = float(outcome_space.index_of(initial_label))

        self._seed_rng = seed_rng if seed_rng is not None else np.random.default_rng()
        self._buffer = np.empty(max_count, dtype=OUTCOME_DTYPE)
        self._listeners: List[DataChangedListener] = []
        self._token: Optional[TimerToken] = None
        self._restoring = False

        self._state = outcome_space.initial_state
        self._active_count = initial_count
        self._values_count = initial_count
        self._seed = self.initial_seed
        # True when a readyToBeMeasured reveal must keep the current seed
        self._collapse_committed = True
        self._apply_seed(self.initial_seed)

    # -------------------------------------------------------------------------
    # Read-only views
    # -------------------------------------------------------------------------

    @property
    def measurement_state(self) -> MeasurementState:
        return self._state

    @property
    def seed(self) -> float:
        return self._seed

    @property
    def is_batch(self) -> bool:
        return self.max_count > SINGLE_COUNT

    @property
    def valid_values(self) -> Tuple[str, str]:
        return self.outcome_space.labels

    @property
    def active_count(self) -> int:
        return self._active_count

    @active_count.setter
    def active_count(self, count: int) -> None:
        """Takes effect on the next draw; revealed values are never resized."""
        if count not in self.allowed_counts:
            stoprule_invalid_value(self.receipt_ledger, "active_count", count,
                                   self.allowed_counts, self.tenant_id)
        self._active_count = int(count)

    @property
    def values_valid(self) -> bool:
        """Whether measured_values currently reflects a committed measurement."""
        if self._state in (MeasurementState.HIDDEN, MeasurementState.REVEALED):
            return True
        return self._state is MeasurementState.READY and self._collapse_committed

    @property
    def measured_indices(self) -> np.ndarray:
        """Read-only uint8 view of the current values (0 = label[0])."""
        view = self._buffer[:self._values_count]
        view.flags.writeable = False
        return view

    @property
    def measured_values(self) -> List[str]:
        labels = self.outcome_space.labels
        return [labels[i] for i in self._buffer[:self._values_count].tolist()]

    @property
    def preparation_pending(self) -> bool:
        return self._token is not None and self._token.pending

    # -------------------------------------------------------------------------
    # Notifications
    # -------------------------------------------------------------------------

    def add_listener(self, listener: DataChangedListener) -> None:
        """Register a callback for the measured-data-changed signal."""
        self._listeners.append(listener)

    def remove_listener(self, listener: DataChangedListener) -> None:
        self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()

    # -------------------------------------------------------------------------
    # Internal mutation paths
    # -------------------------------------------------------------------------

    def _set_state(self, new_state: MeasurementState) -> None:
        if not self.outcome_space.allows(new_state):
            stoprule_invalid_value(
                self.receipt_ledger, "measurement_state", new_state.value,
                [s.value for s in MeasurementState if self.outcome_space.allows(s)],
                self.tenant_id,
            )
        old_state = self._state
        self._state = new_state
        self.receipt_ledger.append(emit_receipt("measurement_transition", {
            "tenant_id": self.tenant_id,
            "system_type": self.outcome_space.system_type.value,
            "from_state": old_state.value,
            "to_state": new_state.value,
            "seed": self._seed,
        }))

    def _apply_seed(self, seed: float) -> None:
        """Set the seed and regenerate the outcome buffer from it."""
        bias = self.bias.value  # read once per draw
        sentinel = is_sentinel(seed)
        # sentinels fill the whole buffer so any later count shows them
        fill = self.max_count if sentinel else self._active_count
        sample_indices(seed, bias, fill, out=self._buffer)
        self._seed = seed
        self._values_count = self._active_count
        self.receipt_ledger.append(emit_receipt("seed_applied", {
            "tenant_id": self.tenant_id,
            "seed": seed,
            "bias": bias,
            "count": self._active_count,
            "sentinel": sentinel,
        }))

    def _draw_new_seed(self) -> None:
        self._apply_seed(draw_seed(self._seed_rng))

    def _cancel_pending(self) -> None:
        if self._token is None:
            return
        if self.timer.cancel(self._token):
            self.receipt_ledger.append(emit_receipt("preparation_cancelled", {
                "tenant_id": self.tenant_id,
                "token_id": getattr(self._token, "token_id", None),
                "state": self._state.value,
            }))
        self._token = None

    def _complete_preparation(self) -> None:
        if self.outcome_space.lazy_collapse:
            self._collapse_committed = False
            self._set_state(MeasurementState.READY)
        else:
            self._draw_new_seed()
            self._set_state(MeasurementState.HIDDEN)
            self._notify()

    def _require_state(self, operation: str, *allowed: MeasurementState) -> None:
        if self._state not in allowed:
            stoprule_invalid_state(self.receipt_ledger, operation, self._state,
                                   allowed, self.tenant_id)

    # -------------------------------------------------------------------------
    # Lifecycle operations
    # -------------------------------------------------------------------------

    def prepare(self, reveal_when_prepared: bool = False) -> None:
        """
        Start preparing for measurement: flip the coin, or set up the superposition.

        Any outstanding preparation is cancelled first, so two completions can
        never race. When the delay elapses the engine moves to
        measuredAndHidden (classical, values drawn) or readyToBeMeasured
        (quantum, values deferred), then reveals if asked to.
        """
        self._cancel_pending()
        self._set_state(MeasurementState.PREPARING)

        def on_prepared() -> None:
            self._token = None
            self._complete_preparation()
            if reveal_when_prepared:
                self.reveal()

        self._token = self.timer.schedule(self.preparation_time_ms, on_prepared)
        self.receipt_ledger.append(emit_receipt("preparation_scheduled", {
            "tenant_id": self.tenant_id,
            "token_id": getattr(self._token, "token_id", None),
            "duration_ms": self.preparation_time_ms,
            "reveal_when_prepared": reveal_when_prepared,
        }))

    def prepare_now(self) -> None:
        """Run the preparation completion synchronously, skipping the delay."""
        self._cancel_pending()
        self._complete_preparation()

    def reveal(self) -> None:
        """
        Show the values. From readyToBeMeasured this is the first-time collapse:
        a new seed is drawn now, unless the values were fixed by
        set_measurement_values_immediate().
        """
        self._require_state("reveal", MeasurementState.HIDDEN, MeasurementState.READY)

        if self._state is MeasurementState.READY:
            if self._collapse_committed:
                # regenerate at the current count, deterministic for sentinels
                self._apply_seed(self._seed)
            else:
                self._draw_new_seed()
            self._collapse_committed = True

        self._set_state(MeasurementState.REVEALED)
        self._notify()

    def hide(self) -> None:
        """Hide revealed values without touching the seed or the values."""
        self._require_state("hide", MeasurementState.REVEALED)
        self._set_state(MeasurementState.HIDDEN)

    def measure(self) -> MeasurementResult:
        """
        Measure: collapse if not yet measured since preparation, otherwise
        return the most recent values unchanged.
        """
        self._require_state("measure", MeasurementState.READY, MeasurementState.HIDDEN,
                            MeasurementState.REVEALED)
        if self._state is MeasurementState.READY:
            self.reveal()
        values = tuple(self.measured_values)
        return MeasurementResult(len(values), values)

    def set_measurement_values_immediate(self, value: str) -> None:
        """
        Force every outcome to value without passing through preparation.

        Classical systems end up revealed; quantum systems end up
        readyToBeMeasured and resolve to value on the next reveal/measure.
        """
        if not self.outcome_space.is_valid(value):
            stoprule_invalid_value(self.receipt_ledger, "set_measurement_values_immediate",
                                   value, self.outcome_space.labels, self.tenant_id)
        self._cancel_pending()
        self._apply_seed(float(self.outcome_space.index_of(value)))
        self._collapse_committed = True
        self._set_state(MeasurementState.READY if self.outcome_space.lazy_collapse
                        else MeasurementState.REVEALED)
        self._notify()

    def reset(self) -> None:
        """Cancel any preparation and return to the initial state, seed and count."""
        self._cancel_pending()
        self._restoring = False
        self._active_count = self.initial_count
        self._apply_seed(self.initial_seed)
        self._collapse_committed = True
        self._set_state(self.outcome_space.initial_state)
        self._notify()

    # -------------------------------------------------------------------------
    # Batch statistics
    # -------------------------------------------------------------------------

    def tally(self) -> Tally:
        """Count label[0] vs label[1] over the revealed values of a batch."""
        if not self.is_batch:
            stoprule_invalid_value(self.receipt_ledger, "tally", self.max_count,
                                   ["max_count > 1"], self.tenant_id)
        self._require_state("tally", MeasurementState.REVEALED)
        return tally_indices(self._buffer[:self._values_count], self.outcome_space.labels)

    # -------------------------------------------------------------------------
    # Snapshot / restore
    # -------------------------------------------------------------------------

    def snapshot(self) -> MeasurementSnapshot:
        return MeasurementSnapshot(self._state, self._active_count, self._seed)

    def begin_restore(self) -> None:
        """Host is about to set state: drop any timer started by earlier interaction."""
        self._cancel_pending()
        self._restoring = True

    def check_snapshot(self, snapshot: MeasurementSnapshot) -> None:
        """
        Reject a snapshot this engine cannot hold, before anything is written.

        Raises:
            StopRule: state not reachable for this system type, or count not allowed
        """
        if not self.outcome_space.allows(snapshot.measurement_state):
            stoprule_invalid_value(
                self.receipt_ledger, "measurement_state", snapshot.measurement_state.value,
                [s.value for s in MeasurementState if self.outcome_space.allows(s)],
                self.tenant_id,
            )
        if snapshot.active_count not in self.allowed_counts:
            stoprule_invalid_value(self.receipt_ledger, "active_count", snapshot.active_count,
                                   self.allowed_counts, self.tenant_id)

    def apply_snapshot(self, snapshot: MeasurementSnapshot) -> None:
        """Write snapshot fields. Only valid between begin_restore() and end_restore()."""
        if not self._restoring:
            raise StopRule("apply_snapshot() called outside begin_restore()/end_restore()")
        self.check_snapshot(snapshot)
        self._active_count = snapshot.active_count
        self._apply_seed(snapshot.seed)
        # only a sentinel seed can have been committed without a reveal
        self._collapse_committed = is_sentinel(snapshot.seed)
        self._set_state(snapshot.measurement_state)

    def end_restore(self) -> None:
        """
        Finish restoration. A restored preparingToBeMeasured has no timer behind
        it, so it resolves to the stable state the timer would have produced.
        """
        self._restoring = False
        if self._state is MeasurementState.PREPARING:
            resolved = self.outcome_space.resolved_preparing_state
            if resolved is MeasurementState.READY:
                self._collapse_committed = is_sentinel(self._seed)
            self._set_state(resolved)
        self.receipt_ledger.append(emit_receipt("snapshot_restored", {
            "tenant_id": self.tenant_id,
            "state": self._state.value,
            "active_count": self._active_count,
            "seed": self._seed,
        }))
        self._notify()

    def restore_snapshot(self, snapshot: MeasurementSnapshot) -> None:
        """Restore a snapshot in one call. A rejected snapshot changes nothing."""
        self.check_snapshot(snapshot)
        self.begin_restore()
        self.apply_snapshot(snapshot)
        self.end_restore()

    def __repr__(self) -> str:
        return (f"MeasurementEngine({self.outcome_space.system_type.value}, "
                f"state={self._state.value}, count={self._active_count}, seed={self._seed})")


