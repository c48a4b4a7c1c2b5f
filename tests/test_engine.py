"""
tests/test_engine.py - Tests for twostate/engine.py

Lifecycle, lazy collapse, cancellation, count changes, notifications and
the receipts each operation leaves behind. All timing runs on StepTimer.
"""

import numpy as np
import pytest

from receipts import StopRule


def make_engine(system_type="classical", bias=0.5, count=None, rng_seed=7):
    from twostate import BiasProperty, MeasurementEngine, StepTimer, outcome_space_for

    timer = StepTimer()
    engine = MeasurementEngine(
        outcome_space_for(system_type),
        BiasProperty(bias),
        timer,
        initial_count=count,
        seed_rng=np.random.default_rng(rng_seed),
    )
    return engine, timer


def count_notifications(engine):
    calls = []
    engine.add_listener(lambda: calls.append(engine.measurement_state))
    return calls


def receipt_types(engine):
    return [r["receipt_type"] for r in engine.receipt_ledger]


class TestInitialState:

    def test_classical_starts_revealed_on_initial_label(self):
        from twostate import MeasurementState

        engine, _ = make_engine("classical")
        assert engine.measurement_state is MeasurementState.REVEALED
        assert engine.active_count == 100, "Batch default count should be 100"
        assert engine.measured_values == ["heads"] * 100
        assert engine.seed == 0.0

    def test_quantum_starts_ready(self):
        from twostate import MeasurementState

        engine, _ = make_engine("quantum")
        assert engine.measurement_state is MeasurementState.READY
        assert engine.valid_values == ("up", "down")

    def test_invalid_initial_count(self):
        with pytest.raises(ValueError):
            make_engine("classical", count=7)


class TestPreparation:

    def test_classical_single_prepare_timeline(self):
        """Preparing for t in [0, 1000), measuredAndHidden with new values at t=1000."""
        from twostate import (BiasProperty, CLASSICAL, MeasurementState,
                              StepTimer, TwoStateSystem)

        timer = StepTimer()
        coin = TwoStateSystem(CLASSICAL, BiasProperty(0.5), timer,
                              seed_rng=np.random.default_rng(1))
        old_seed = coin.seed
        coin.prepare()

        for _ in range(9):
            timer.step(111)
            assert coin.measurement_state is MeasurementState.PREPARING, \
                f"Still preparing at t={timer.now_ms}"
        timer.advance_to(1000)
        assert coin.measurement_state is MeasurementState.HIDDEN
        assert coin.seed != old_seed, "Completion must draw a new seed"
        assert not coin.preparation_pending

    def test_prepare_reveal_when_prepared(self):
        from twostate import MeasurementState

        engine, timer = make_engine("classical")
        engine.prepare(reveal_when_prepared=True)
        timer.step(1000)
        assert engine.measurement_state is MeasurementState.REVEALED

    def test_reentrant_prepare_cancels_previous(self):
        """Only the last prepare() completes, and only once."""
        from twostate import MeasurementState

        engine, timer = make_engine("classical")
        calls = count_notifications(engine)

        engine.prepare()
        timer.step(600)
        engine.prepare()
        timer.step(600)
        assert engine.measurement_state is MeasurementState.PREPARING, \
            "First timer was cancelled, second is not yet due"
        timer.step(400)
        assert engine.measurement_state is MeasurementState.HIDDEN
        assert len(calls) == 1, f"Expected exactly one completion, got {len(calls)}"
        assert "preparation_cancelled" in receipt_types(engine)
        assert timer.pending_count == 0

    def test_prepare_now_skips_delay(self):
        from twostate import MeasurementState

        engine, timer = make_engine("classical")
        engine.prepare()
        engine.prepare_now()
        assert engine.measurement_state is MeasurementState.HIDDEN
        assert timer.pending_count == 0, "Outstanding timer must be cancelled"
        timer.step(5000)
        assert engine.measurement_state is MeasurementState.HIDDEN


class TestLazyCollapse:
    """Quantum engines commit values on the first reveal after preparation."""

    def test_ready_after_preparation_without_draw(self):
        from twostate import MeasurementState

        engine, timer = make_engine("quantum")
        engine.prepare()
        timer.step(1000)
        assert engine.measurement_state is MeasurementState.READY
        assert engine.seed == 0.0, "No seed is drawn until the first measurement"
        assert not engine.values_valid

    def test_seed_changes_exactly_once(self):
        from twostate import MeasurementState

        engine, timer = make_engine("quantum")
        engine.prepare()
        timer.step(1000)

        first = engine.measure()
        seed_after_first = engine.seed
        assert engine.measurement_state is MeasurementState.REVEALED
        assert seed_after_first not in (0.0, 1.0)

        second = engine.measure()
        assert engine.seed == seed_after_first, "A second measure must not redraw"
        assert first == second, "Repeated measure returns the same values"
        assert first.count == 100

    def test_hide_then_reveal_keeps_values(self):
        engine, timer = make_engine("quantum")
        engine.prepare(reveal_when_prepared=True)
        timer.step(1000)
        before = list(engine.measured_values)
        engine.hide()
        engine.reveal()
        assert engine.measured_values == before

    def test_classical_never_ready(self):
        from twostate import MeasurementSnapshot, MeasurementState

        engine, _ = make_engine("classical")
        with pytest.raises(StopRule):
            engine.restore_snapshot(MeasurementSnapshot(MeasurementState.READY, 100, 0.5))


class TestImmediateValues:

    def test_cancels_pending_preparation(self):
        from twostate import MeasurementState

        engine, timer = make_engine("classical")
        engine.prepare()
        timer.step(500)
        engine.set_measurement_values_immediate("tails")

        assert engine.measurement_state is MeasurementState.REVEALED
        assert engine.measured_values == ["tails"] * 100
        timer.step(2000)
        assert engine.measurement_state is MeasurementState.REVEALED, \
            "Cancelled preparation must never complete"
        assert engine.measured_values == ["tails"] * 100

    def test_quantum_resolves_to_chosen_value(self):
        from twostate import MeasurementState

        engine, _ = make_engine("quantum")
        engine.set_measurement_values_immediate("down")
        assert engine.measurement_state is MeasurementState.READY
        result = engine.measure()
        assert result.values == ("down",) * 100
        assert engine.seed == 1.0

    def test_invalid_label(self):
        engine, _ = make_engine("classical")
        with pytest.raises(StopRule):
            engine.set_measurement_values_immediate("up")
        assert receipt_types(engine)[-1] == "anomaly"


class TestPreconditions:

    @pytest.mark.parametrize("operation", ["reveal", "hide", "measure"])
    def test_rejected_while_preparing(self, operation):
        engine, _ = make_engine("classical")
        engine.prepare()
        with pytest.raises(StopRule):
            getattr(engine, operation)()

    def test_hide_requires_revealed(self):
        engine, timer = make_engine("classical")
        engine.prepare()
        timer.step(1000)
        with pytest.raises(StopRule):
            engine.hide()

    def test_reveal_rejected_when_revealed(self):
        engine, _ = make_engine("classical")
        with pytest.raises(StopRule):
            engine.reveal()

    def test_reveal_rejected_when_revealed_during_restore(self):
        """Restoring does not widen reveal()'s precondition."""
        engine, _ = make_engine("classical")
        engine.begin_restore()
        with pytest.raises(StopRule):
            engine.reveal()
        engine.end_restore()

    def test_violation_leaves_anomaly_receipt(self):
        engine, _ = make_engine("classical")
        engine.prepare()
        with pytest.raises(StopRule):
            engine.reveal()
        anomaly = engine.receipt_ledger[-1]
        assert anomaly["receipt_type"] == "anomaly"
        assert anomaly["operation"] == "reveal"
        assert anomaly["state"] == "preparingToBeMeasured"


class TestActiveCount:

    def test_change_applies_on_next_draw(self):
        engine, timer = make_engine("classical", rng_seed=3)
        engine.active_count = 10
        assert len(engine.measured_values) == 100, "Revealed values are not resized"

        engine.prepare(reveal_when_prepared=True)
        timer.step(1000)
        assert len(engine.measured_values) == 10
        assert engine.tally().total == 10

    def test_sentinel_fills_any_count(self):
        engine, _ = make_engine("classical")
        engine.set_measurement_values_immediate("tails")
        engine.active_count = 10000
        engine.prepare()
        engine.set_measurement_values_immediate("tails")
        assert engine.measured_values == ["tails"] * 10000

    def test_disallowed_count(self):
        engine, _ = make_engine("classical")
        with pytest.raises(StopRule):
            engine.active_count = 50
        assert engine.active_count == 100


class TestTally:

    def test_counts_are_conserved(self):
        engine, timer = make_engine("classical", rng_seed=5)
        engine.active_count = 10000
        engine.prepare(reveal_when_prepared=True)
        timer.step(1000)
        tally = engine.tally()
        assert tally.count_label0 + tally.count_label1 == 10000
        assert abs(tally.fraction_label0 - 0.5) < 0.03

    def test_tally_requires_revealed(self):
        engine, timer = make_engine("classical")
        engine.prepare()
        timer.step(1000)
        with pytest.raises(StopRule):
            engine.tally()

    def test_tally_rejected_for_single(self):
        from twostate import BiasProperty, CLASSICAL, StepTimer, TwoStateSystem

        coin = TwoStateSystem(CLASSICAL, BiasProperty(), StepTimer())
        with pytest.raises(StopRule):
            coin.tally()


class TestNotifications:

    def test_classical_cycle(self):
        engine, timer = make_engine("classical")
        calls = count_notifications(engine)
        engine.prepare()
        assert calls == [], "prepare() itself does not change measured data"
        timer.step(1000)
        engine.reveal()
        engine.hide()
        assert len(calls) == 2, f"Expected completion + reveal, got {calls}"

    def test_quantum_cycle(self):
        from twostate import MeasurementState

        engine, timer = make_engine("quantum")
        calls = count_notifications(engine)
        engine.prepare()
        timer.step(1000)
        assert calls == [], "Quantum completion commits nothing"
        engine.measure()
        engine.measure()
        assert calls == [MeasurementState.REVEALED]

    def test_remove_listener(self):
        engine, _ = make_engine("classical")
        calls = []
        listener = lambda: calls.append(1)  # noqa: E731
        engine.add_listener(listener)
        engine.remove_listener(listener)
        engine.reset()
        assert calls == []


class TestReset:

    def test_reset_restores_initial_configuration(self):
        from twostate import MeasurementState

        engine, timer = make_engine("classical")
        engine.active_count = 10
        engine.prepare()
        engine.reset()
        assert engine.measurement_state is MeasurementState.REVEALED
        assert engine.active_count == 100
        assert engine.seed == 0.0
        assert engine.measured_values == ["heads"] * 100
        assert timer.pending_count == 0


class TestReceipts:

    def test_cycle_emits_receipts(self):
        engine, timer = make_engine("classical")
        engine.prepare(reveal_when_prepared=True)
        timer.step(1000)
        types = receipt_types(engine)
        for expected in ("preparation_scheduled", "seed_applied", "measurement_transition"):
            assert expected in types, f"Missing {expected} receipt in {types}"
        assert all(r["tenant_id"] == "twostate" for r in engine.receipt_ledger)

    def test_ledger_is_bounded(self):
        from twostate.constants import RECEIPT_LEDGER_LIMIT

        engine, _ = make_engine("classical")
        for _ in range(RECEIPT_LEDGER_LIMIT):
            engine.set_measurement_values_immediate("heads")
        assert len(engine.receipt_ledger) == RECEIPT_LEDGER_LIMIT
