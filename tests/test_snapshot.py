"""
tests/test_snapshot.py - Tests for twostate/snapshot.py and engine restore

A snapshot is three scalars; values are regenerated, never stored.
"""

import json

import numpy as np
import pytest

from receipts import StopRule


def make_engine(system_type="classical", rng_seed=21, bias=0.5):
    from twostate import BiasProperty, MeasurementEngine, StepTimer, outcome_space_for

    timer = StepTimer()
    engine = MeasurementEngine(outcome_space_for(system_type), BiasProperty(bias), timer,
                               seed_rng=np.random.default_rng(rng_seed))
    return engine, timer


class TestSerialization:

    def test_to_dict_uses_state_names(self):
        from twostate import MeasurementSnapshot, MeasurementState

        snap = MeasurementSnapshot(MeasurementState.HIDDEN, 10, 0.25)
        assert snap.to_dict() == {
            "measurement_state": "measuredAndHidden",
            "active_count": 10,
            "seed": 0.25,
        }

    def test_json_round_trip(self):
        from twostate import MeasurementSnapshot, MeasurementState

        snap = MeasurementSnapshot(MeasurementState.REVEALED, 10000, 0.6180339887)
        assert MeasurementSnapshot.from_json(snap.to_json()) == snap

    @pytest.mark.parametrize("data", [
        {"measurement_state": "revealed", "active_count": 10},
        {"measurement_state": "flipping", "active_count": 10, "seed": 0.5},
        {"measurement_state": "revealed", "active_count": True, "seed": 0.5},
        {"measurement_state": "revealed", "active_count": 2.5, "seed": 0.5},
        {"measurement_state": "revealed", "active_count": 0, "seed": 0.5},
        {"measurement_state": "revealed", "active_count": 10, "seed": "0.5"},
        {"measurement_state": "revealed", "active_count": 10, "seed": 1.5},
    ])
    def test_malformed_rejected(self, data):
        from twostate import MeasurementSnapshot

        with pytest.raises(ValueError):
            MeasurementSnapshot.from_dict(data)


class TestRestore:

    def test_classical_preparing_resolves_to_hidden(self):
        """Restored preparingToBeMeasured has no timer, so it resolves immediately."""
        from twostate import MeasurementSnapshot, MeasurementState

        engine, timer = make_engine("classical")
        engine.restore_snapshot(MeasurementSnapshot(MeasurementState.PREPARING, 100, 0.42))
        assert engine.measurement_state is MeasurementState.HIDDEN
        assert not engine.preparation_pending
        assert timer.pending_count == 0

    def test_quantum_preparing_resolves_to_ready(self):
        from twostate import MeasurementSnapshot, MeasurementState

        engine, timer = make_engine("quantum")
        engine.restore_snapshot(MeasurementSnapshot(MeasurementState.PREPARING, 10, 0.42))
        assert engine.measurement_state is MeasurementState.READY
        assert timer.pending_count == 0
        engine.measure()
        assert engine.seed != 0.42, "An uncommitted quantum restore collapses with a fresh seed"

    def test_revealed_batch_reproduced(self):
        """Restoring a snapshot with the same bias regenerates identical values."""
        from twostate import MeasurementState

        original, timer = make_engine("classical", rng_seed=99, bias=0.3)
        original.active_count = 10000
        original.prepare(reveal_when_prepared=True)
        timer.step(1000)
        data = json.loads(original.snapshot().to_json())

        from twostate import MeasurementSnapshot

        restored, _ = make_engine("classical", rng_seed=1, bias=0.3)
        restored.restore_snapshot(MeasurementSnapshot.from_dict(data))
        assert restored.measurement_state is MeasurementState.REVEALED
        assert restored.active_count == 10000
        assert np.array_equal(restored.measured_indices, original.measured_indices)
        assert restored.tally() == original.tally()

    def test_quantum_sentinel_ready_stays_committed(self):
        from twostate import MeasurementState

        engine, _ = make_engine("quantum")
        engine.set_measurement_values_immediate("down")
        snap = engine.snapshot()

        restored, _ = make_engine("quantum")
        restored.restore_snapshot(snap)
        assert restored.measurement_state is MeasurementState.READY
        assert restored.measure().values == ("down",) * 100

    def test_restore_cancels_pending_preparation(self):
        from twostate import MeasurementSnapshot, MeasurementState

        engine, timer = make_engine("classical")
        engine.prepare()
        engine.restore_snapshot(MeasurementSnapshot(MeasurementState.REVEALED, 10, 1.0))
        timer.step(5000)
        assert engine.measurement_state is MeasurementState.REVEALED
        assert engine.measured_values == ["tails"] * 10

    def test_restore_notifies_once(self):
        from twostate import MeasurementSnapshot, MeasurementState

        engine, _ = make_engine("classical")
        calls = []
        engine.add_listener(lambda: calls.append(1))
        engine.restore_snapshot(MeasurementSnapshot(MeasurementState.REVEALED, 10, 0.5))
        assert calls == [1]
        assert engine.receipt_ledger[-1]["receipt_type"] == "snapshot_restored"

    def test_apply_outside_restore(self):
        from twostate import MeasurementSnapshot, MeasurementState

        engine, _ = make_engine("classical")
        with pytest.raises(StopRule):
            engine.apply_snapshot(MeasurementSnapshot(MeasurementState.REVEALED, 10, 0.5))

    def test_disallowed_count(self):
        from twostate import MeasurementSnapshot, MeasurementState

        engine, _ = make_engine("classical")
        with pytest.raises(StopRule):
            engine.restore_snapshot(MeasurementSnapshot(MeasurementState.REVEALED, 42, 0.5))


class TestRejectedRestore:
    """A snapshot the engine cannot hold leaves it exactly as it was."""

    def test_unreachable_state_changes_nothing(self):
        from twostate import MeasurementSnapshot, MeasurementState

        engine, _ = make_engine("classical")
        before = engine.snapshot()
        values_before = list(engine.measured_values)
        calls = []
        engine.add_listener(lambda: calls.append(1))

        with pytest.raises(StopRule):
            engine.restore_snapshot(MeasurementSnapshot(MeasurementState.READY, 10, 0.3))

        assert engine.snapshot() == before, f"Engine changed to {engine.snapshot()}"
        assert engine.measured_values == values_before
        assert calls == [], "A rejected restore must not notify"
        types = [r["receipt_type"] for r in engine.receipt_ledger]
        assert types[-1] == "anomaly"
        assert "snapshot_restored" not in types

    def test_pending_preparation_survives(self):
        from twostate import MeasurementSnapshot, MeasurementState

        engine, timer = make_engine("classical")
        engine.prepare()
        with pytest.raises(StopRule):
            engine.restore_snapshot(MeasurementSnapshot(MeasurementState.HIDDEN, 42, 0.5))
        assert engine.preparation_pending, "Rejected restore must not cancel the timer"
        timer.step(1000)
        assert engine.measurement_state is MeasurementState.HIDDEN

    def test_later_restore_still_works(self):
        from twostate import MeasurementSnapshot, MeasurementState

        engine, _ = make_engine("classical")
        with pytest.raises(StopRule):
            engine.restore_snapshot(MeasurementSnapshot(MeasurementState.READY, 10, 0.3))
        with pytest.raises(StopRule):
            engine.apply_snapshot(MeasurementSnapshot(MeasurementState.REVEALED, 10, 0.3))
        engine.restore_snapshot(MeasurementSnapshot(MeasurementState.REVEALED, 10, 1.0))
        assert engine.measured_values == ["tails"] * 10

    def test_scene_restore_is_all_or_nothing(self):
        from twostate import ExperimentScene

        scene = ExperimentScene("classical")
        before = scene.snapshot()
        data = dict(before, bias=0.2)
        data["batch"] = {"measurement_state": "readyToBeMeasured", "active_count": 10, "seed": 0.3}

        with pytest.raises(StopRule):
            scene.restore(data)
        assert scene.snapshot() == before, "Neither engine nor bias may change"


class TestMalformedInput:

    @pytest.mark.parametrize("data", [5, "revealed", [1, 2], None])
    def test_non_mapping(self, data):
        from twostate import MeasurementSnapshot

        with pytest.raises(ValueError):
            MeasurementSnapshot.from_dict(data)

    def test_json_scalar(self):
        from twostate import MeasurementSnapshot

        with pytest.raises(ValueError):
            MeasurementSnapshot.from_json("5")
