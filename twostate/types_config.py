"""
twostate/types_config.py - ExperimentConfig Dataclass and Scenario Presets

Immutable configuration for engine construction.
Frozen dataclass, no behavior.
"""

from dataclasses import dataclass
from typing import Tuple

from .constants import (
    CLASSICAL_LABELS,
    DEFAULT_BATCH_COUNT,
    DEFAULT_BIAS,
    MAX_COUNT,
    MULTI_COUNT_QUANTITIES,
    PREPARATION_TIME_MS,
    QUANTUM_LABELS,
    SINGLE_COUNT,
    TENANT_ID,
)


@dataclass(frozen=True)
class ExperimentConfig:
    """Engine configuration (immutable)."""
    system_type: str = "classical"
    max_count: int = MAX_COUNT
    initial_count: int = DEFAULT_BATCH_COUNT
    allowed_counts: Tuple[int, ...] = MULTI_COUNT_QUANTITIES
    preparation_time_ms: float = PREPARATION_TIME_MS
    initial_bias: float = DEFAULT_BIAS
    # label shown before the first preparation, must belong to system_type
    initial_label: str = CLASSICAL_LABELS[0]
    scenario_name: str = "CLASSICAL_BATCH"
    tenant_id: str = TENANT_ID

    def __post_init__(self):
        """Convert list counts to an immutable tuple."""
        if isinstance(self.allowed_counts, list):
            object.__setattr__(self, 'allowed_counts', tuple(self.allowed_counts))

    @property
    def is_batch(self) -> bool:
        return self.max_count > SINGLE_COUNT


# =============================================================================
# SCENARIO PRESETS (4 mandatory)
# =============================================================================

SCENARIO_CLASSICAL_SINGLE = ExperimentConfig(
    system_type="classical",
    max_count=SINGLE_COUNT,
    initial_count=SINGLE_COUNT,
    allowed_counts=(SINGLE_COUNT,),
    initial_label=CLASSICAL_LABELS[0],
    scenario_name="CLASSICAL_SINGLE"
)

SCENARIO_CLASSICAL_BATCH = ExperimentConfig(
    system_type="classical",
    max_count=MAX_COUNT,
    initial_count=DEFAULT_BATCH_COUNT,
    allowed_counts=MULTI_COUNT_QUANTITIES,
    initial_label=CLASSICAL_LABELS[0],
    scenario_name="CLASSICAL_BATCH"
)

SCENARIO_QUANTUM_SINGLE = ExperimentConfig(
    system_type="quantum",
    max_count=SINGLE_COUNT,
    initial_count=SINGLE_COUNT,
    allowed_counts=(SINGLE_COUNT,),
    initial_label=QUANTUM_LABELS[0],
    scenario_name="QUANTUM_SINGLE"
)

SCENARIO_QUANTUM_BATCH = ExperimentConfig(
    system_type="quantum",
    max_count=MAX_COUNT,
    initial_count=DEFAULT_BATCH_COUNT,
    allowed_counts=MULTI_COUNT_QUANTITIES,
    initial_label=QUANTUM_LABELS[0],
    scenario_name="QUANTUM_BATCH"
)

MANDATORY_SCENARIOS = {
    "CLASSICAL_SINGLE": SCENARIO_CLASSICAL_SINGLE,
    "CLASSICAL_BATCH": SCENARIO_CLASSICAL_BATCH,
    "QUANTUM_SINGLE": SCENARIO_QUANTUM_SINGLE,
    "QUANTUM_BATCH": SCENARIO_QUANTUM_BATCH,
}


def scenarios_for(system_type: str) -> Tuple[ExperimentConfig, ExperimentConfig]:
    """(single, batch) presets for a system type."""
    if system_type == "classical":
        return SCENARIO_CLASSICAL_SINGLE, SCENARIO_CLASSICAL_BATCH
    if system_type == "quantum":
        return SCENARIO_QUANTUM_SINGLE, SCENARIO_QUANTUM_BATCH
    raise ValueError(f"Unknown system_type '{system_type}'")
