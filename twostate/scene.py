"""
twostate/scene.py - Coin Experiment Scene

One experiment scene: a shared bias driving a single system and a batch,
a preparation/measurement mode switch, and the initial face state chosen by
the user. For quantum scenes the initial face state and the bias are coupled:
'up' means bias 1, 'down' means bias 0, anything in between is 'superposed'.
"""

from dataclasses import replace
from typing import Any, Dict, Optional

import numpy as np

from .bias import BiasProperty
from .constants import DEFAULT_BIAS, PREPARATION_TIME_MS
from .engine import MeasurementEngine
from .factory import build_engine
from .outcome_space import SystemType, outcome_space_for
from .single import TwoStateSystem
from .snapshot import MeasurementSnapshot
from .timer import StepTimer, Timer
from .types_config import scenarios_for


class ExperimentScene:
    """
    Classical or quantum coin scene.

    Args:
        system_type: SystemType or its string value
        timer: Shared clock (a fresh StepTimer when omitted)
        initial_bias: Starting probability of label[0]
        preparation_time_ms: Preparation delay for both engines
        seed_rng: Generator for fresh seeds, shared by both engines
    """

    def __init__(self,
                 system_type="classical",
                 timer: Optional[Timer] = None,
                 initial_bias: float = DEFAULT_BIAS,
                 preparation_time_ms: float = PREPARATION_TIME_MS,
                 seed_rng: Optional[np.random.Generator] = None):
        self.system_type = SystemType(system_type) if not isinstance(system_type, SystemType) else system_type
        self.outcome_space = outcome_space_for(self.system_type)
        self.timer = timer if timer is not None else StepTimer()
        self.bias = BiasProperty(initial_bias)

        single_config, batch_config = scenarios_for(self.system_type.value)
        self.single_system: TwoStateSystem = build_engine(
            replace(single_config, preparation_time_ms=preparation_time_ms),
            self.bias, self.timer, seed_rng,
        )
        self.batch: MeasurementEngine = build_engine(
            replace(batch_config, preparation_time_ms=preparation_time_ms),
            self.bias, self.timer, seed_rng,
        )

        # True while the user is preparing the experiment, False while measuring
        self.preparing_experiment = True
        self._initial_face_default = self.outcome_space.labels[0]
        self.initial_face_state = self._initial_face_default
        self._coupling_suspended = False

        if self.outcome_space.lazy_collapse:
            self.bias.add_listener(self._on_bias_changed)

    # -------------------------------------------------------------------------
    # Initial face state and bias coupling
    # -------------------------------------------------------------------------

    @property
    def valid_face_states(self):
        labels = self.outcome_space.labels
        if self.outcome_space.transient_label is not None:
            return labels + (self.outcome_space.transient_label,)
        return labels

    def set_initial_face_state(self, face_state: str) -> None:
        if face_state not in self.valid_face_states:
            raise ValueError(f"'{face_state}' is not one of {self.valid_face_states}")
        if face_state == self.initial_face_state:
            return
        self.initial_face_state = face_state
        if self.outcome_space.lazy_collapse and not self._coupling_suspended:
            if face_state != self.outcome_space.transient_label:
                self.bias.value = 1.0 if self.outcome_space.index_of(face_state) == 0 else 0.0

    def _on_bias_changed(self, new_bias: float, old_bias: float) -> None:
        if self._coupling_suspended:
            return
        if new_bias not in (0.0, 1.0):
            self.set_initial_face_state(self.outcome_space.transient_label)
        else:
            self.set_initial_face_state(self.outcome_space.label_at(0 if new_bias == 1.0 else 1))

    # -------------------------------------------------------------------------
    # Mode switch
    # -------------------------------------------------------------------------

    def set_preparing_experiment(self, preparing: bool) -> None:
        """
        Switch between preparation and measurement mode.

        Entering preparation puts both engines back through preparation
        instantly. Entering measurement sets every outcome to the chosen
        initial face; a superposed choice uses label[0], which is never shown.
        """
        if preparing == self.preparing_experiment:
            return
        self.preparing_experiment = preparing
        if preparing:
            self.single_system.prepare_now()
            self.batch.prepare_now()
        else:
            initial = self.initial_face_state
            if initial == self.outcome_space.transient_label:
                initial = self.outcome_space.labels[0]
            self.single_system.set_measurement_value_immediate(initial)
            self.batch.set_measurement_values_immediate(initial)

    def step(self, dt_ms: float) -> int:
        """Advance the shared clock (host tick)."""
        return self.timer.step(dt_ms)

    def reset(self) -> None:
        self._coupling_suspended = True
        try:
            self.preparing_experiment = True
            self.bias.reset()
            self.initial_face_state = self._initial_face_default
        finally:
            self._coupling_suspended = False
        self.single_system.reset()
        self.batch.reset()

    # -------------------------------------------------------------------------
    # Scene snapshot
    # -------------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        """Everything needed to rebuild the scene, bias included."""
        return {
            "system_type": self.system_type.value,
            "bias": self.bias.value,
            "preparing_experiment": self.preparing_experiment,
            "initial_face_state": self.initial_face_state,
            "single": self.single_system.snapshot().to_dict(),
            "batch": self.batch.snapshot().to_dict(),
        }

    def restore(self, data: Dict[str, Any]) -> None:
        """
        Restore a scene snapshot. Bias is set before the engines so their
        regenerated values match the snapshot's.

        Raises:
            ValueError: malformed snapshot or a different system type
            StopRule: an engine snapshot this scene cannot hold; nothing is changed
        """
        if data.get("system_type") != self.system_type.value:
            raise ValueError(
                f"Snapshot is for system_type '{data.get('system_type')}', scene is '{self.system_type.value}'"
            )
        face_state = data.get("initial_face_state", self._initial_face_default)
        if face_state not in self.valid_face_states:
            raise ValueError(f"'{face_state}' is not one of {self.valid_face_states}")
        single = MeasurementSnapshot.from_dict(data["single"])
        batch = MeasurementSnapshot.from_dict(data["batch"])
        bias = data["bias"]
        if isinstance(bias, bool) or not isinstance(bias, (int, float)):
            raise ValueError(f"bias must be numeric, got {type(bias).__name__}")
        BiasProperty._check(bias)
        self.single_system.check_snapshot(single)
        self.batch.check_snapshot(batch)

        self.single_system.begin_restore()
        self.batch.begin_restore()
        self._coupling_suspended = True
        try:
            self.bias.value = bias
            self.initial_face_state = face_state
            self.preparing_experiment = bool(data.get("preparing_experiment", True))
        finally:
            self._coupling_suspended = False
        self.single_system.apply_snapshot(single)
        self.batch.apply_snapshot(batch)
        self.single_system.end_restore()
        self.batch.end_restore()
