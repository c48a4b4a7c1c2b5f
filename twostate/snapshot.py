"""
twostate/snapshot.py - Persisted Measurement Snapshot

The whole reproducibility contract of an engine: measurement state, active
count and seed. Measured values are never persisted; they are regenerated
from (seed, bias, active_count). Bias is persisted by its own owner.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict

from .constants import MEASUREMENT_STATE_VALUES, MeasurementState

SNAPSHOT_FIELDS = ("measurement_state", "active_count", "seed")


@dataclass(frozen=True)
class MeasurementSnapshot:
    """Three scalars that reconstruct an engine of any batch size."""
    measurement_state: MeasurementState
    active_count: int
    seed: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "measurement_state": self.measurement_state.value,
            "active_count": self.active_count,
            "seed": self.seed,
        }

    def to_json(self, indent: int = None) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MeasurementSnapshot":
        """
        Parse and validate a snapshot dict.

        Raises:
            ValueError: missing fields, unknown state, non-positive count,
                or seed outside [0, 1]
        """
        if not isinstance(data, dict):
            raise ValueError(f"Snapshot must be a mapping, got {type(data).__name__}")
        missing = [name for name in SNAPSHOT_FIELDS if name not in data]
        if missing:
            raise ValueError(f"Snapshot missing fields: {missing}")

        state_value = data["measurement_state"]
        if state_value not in MEASUREMENT_STATE_VALUES:
            raise ValueError(
                f"Unknown measurement_state '{state_value}'. "
                f"Must be one of: {list(MEASUREMENT_STATE_VALUES)}"
            )

        count = data["active_count"]
        if isinstance(count, bool) or not isinstance(count, (int, float)) or int(count) != count:
            raise ValueError(f"active_count must be an integer, got {count!r}")
        if count < 1:
            raise ValueError(f"active_count must be >= 1, got {count}")

        seed = data["seed"]
        if isinstance(seed, bool) or not isinstance(seed, (int, float)):
            raise ValueError(f"seed must be numeric, got {type(seed).__name__}")
        if not (0.0 <= seed <= 1.0):
            raise ValueError(f"seed must be in [0, 1], got {seed}")

        return cls(MeasurementState(state_value), int(count), float(seed))

    @classmethod
    def from_json(cls, text: str) -> "MeasurementSnapshot":
        return cls.from_dict(json.loads(text))
