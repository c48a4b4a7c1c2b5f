"""
twostate/factory.py - Engine Construction from Config

Single configs build a TwoStateSystem, batch configs a MeasurementEngine.
"""

from typing import Optional

import numpy as np

from .bias import BiasProperty
from .engine import MeasurementEngine
from .outcome_space import outcome_space_for
from .single import TwoStateSystem
from .timer import Timer
from .types_config import ExperimentConfig


def build_engine(config: ExperimentConfig, bias: BiasProperty, timer: Timer,
                 seed_rng: Optional[np.random.Generator] = None) -> MeasurementEngine:
    """
    Build an engine from an ExperimentConfig.

    Args:
        config: Validated ExperimentConfig
        bias: Shared bias handle, read on every draw
        timer: Clock service for the preparation delay
        seed_rng: Optional generator for fresh seeds

    Returns:
        TwoStateSystem when config.max_count == 1, else MeasurementEngine
    """
    space = outcome_space_for(config.system_type)
    if not config.is_batch:
        return TwoStateSystem(
            space,
            bias,
            timer,
            initial_label=config.initial_label,
            preparation_time_ms=config.preparation_time_ms,
            seed_rng=seed_rng,
            tenant_id=config.tenant_id,
        )
    return MeasurementEngine(
        space,
        bias,
        timer,
        max_count=config.max_count,
        initial_count=config.initial_count,
        allowed_counts=config.allowed_counts,
        preparation_time_ms=config.preparation_time_ms,
        initial_label=config.initial_label,
        seed_rng=seed_rng,
        tenant_id=config.tenant_id,
    )
