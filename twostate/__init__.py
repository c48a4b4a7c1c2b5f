"""
twostate - Two-State Measurement Engine

Public API for coin-flip and two-state quantum measurement experiments.
Flat, focused files. One file = one responsibility.
"""

# =============================================================================
# CONSTANTS
# =============================================================================
from .constants import (
    MeasurementState,
    MEASUREMENT_STATE_VALUES,
    CLASSICAL_LABELS,
    QUANTUM_LABELS,
    SUPERPOSED_LABEL,
    SEED_ALL_FIRST,
    SEED_ALL_SECOND,
    MULTI_COUNT_QUANTITIES,
    MAX_COUNT,
    PREPARATION_TIME_MS,
)

# =============================================================================
# TYPES
# =============================================================================
from .outcome_space import OutcomeSpace, SystemType, CLASSICAL, QUANTUM, outcome_space_for
from .types_config import (
    ExperimentConfig,
    SCENARIO_CLASSICAL_SINGLE,
    SCENARIO_CLASSICAL_BATCH,
    SCENARIO_QUANTUM_SINGLE,
    SCENARIO_QUANTUM_BATCH,
    MANDATORY_SCENARIOS,
)
from .snapshot import MeasurementSnapshot

# =============================================================================
# COLLABORATORS
# =============================================================================
from .bias import BiasProperty
from .timer import StepTimer, TimerToken, Timer

# =============================================================================
# SAMPLER
# =============================================================================
from .sampler import (
    sample_indices,
    sample_outcomes,
    draw_seed,
    is_sentinel,
    seed_to_generator,
)

# =============================================================================
# ENGINE
# =============================================================================
from .engine import MeasurementEngine, MeasurementResult
from .single import TwoStateSystem
from .factory import build_engine
from .scene import ExperimentScene

# =============================================================================
# STATISTICS AND CONFIG
# =============================================================================
from .statistics import Tally, ConvergenceReport, binary_entropy, tally_indices, convergence_sweep
from .config_loader import load_config, config_from_dict, config_to_dict, save_config

__all__ = [
    # Constants
    "MeasurementState",
    "MEASUREMENT_STATE_VALUES",
    "CLASSICAL_LABELS",
    "QUANTUM_LABELS",
    "SUPERPOSED_LABEL",
    "SEED_ALL_FIRST",
    "SEED_ALL_SECOND",
    "MULTI_COUNT_QUANTITIES",
    "MAX_COUNT",
    "PREPARATION_TIME_MS",
    # Types
    "OutcomeSpace",
    "SystemType",
    "CLASSICAL",
    "QUANTUM",
    "outcome_space_for",
    "ExperimentConfig",
    "SCENARIO_CLASSICAL_SINGLE",
    "SCENARIO_CLASSICAL_BATCH",
    "SCENARIO_QUANTUM_SINGLE",
    "SCENARIO_QUANTUM_BATCH",
    "MANDATORY_SCENARIOS",
    "MeasurementSnapshot",
    # Collaborators
    "BiasProperty",
    "StepTimer",
    "TimerToken",
    "Timer",
    # Sampler
    "sample_indices",
    "sample_outcomes",
    "draw_seed",
    "is_sentinel",
    "seed_to_generator",
    # Engine
    "MeasurementEngine",
    "MeasurementResult",
    "TwoStateSystem",
    "build_engine",
    "ExperimentScene",
    # Statistics and config
    "Tally",
    "ConvergenceReport",
    "binary_entropy",
    "tally_indices",
    "convergence_sweep",
    "load_config",
    "config_from_dict",
    "config_to_dict",
    "save_config",
]
