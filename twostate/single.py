"""
twostate/single.py - Single Two-State System

The engine with a capacity of one, plus the latest value mirrored into a
plain attribute for collaborators that only care about one outcome.
"""

from typing import Optional

import numpy as np

from .bias import BiasProperty
from .constants import PREPARATION_TIME_MS, SINGLE_COUNT, TENANT_ID
from .engine import MeasurementEngine
from .outcome_space import OutcomeSpace
from .timer import Timer


class TwoStateSystem(MeasurementEngine):
    """A single coin or a single quantum system."""

    def __init__(self,
                 outcome_space: OutcomeSpace,
                 bias: BiasProperty,
                 timer: Timer,
                 initial_label: Optional[str] = None,
                 preparation_time_ms: float = PREPARATION_TIME_MS,
                 seed_rng: Optional[np.random.Generator] = None,
                 tenant_id: str = TENANT_ID):
        super().__init__(
            outcome_space,
            bias,
            timer,
            max_count=SINGLE_COUNT,
            initial_count=SINGLE_COUNT,
            allowed_counts=(SINGLE_COUNT,),
            preparation_time_ms=preparation_time_ms,
            initial_label=initial_label,
            seed_rng=seed_rng,
            tenant_id=tenant_id,
        )
        # value of the most recent measurement
        self.measured_value: str = self.measured_values[0]
        self.add_listener(self._update_measured_value)

    def _update_measured_value(self) -> None:
        self.measured_value = self.outcome_space.label_at(int(self.measured_indices[0]))

    def set_measurement_value_immediate(self, value: str) -> None:
        """Set the value without transitioning through preparingToBeMeasured."""
        self.set_measurement_values_immediate(value)
