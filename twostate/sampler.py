"""
twostate/sampler.py - Seeded Outcome Sampler

Pure functions mapping (seed, bias, count) to an array of outcomes. The whole
point is determinism: a batch of 10,000 outcomes is persisted as one float and
regenerated here on demand.

Seeds 0.0 and 1.0 are sentinels that force every outcome to label[0] or
label[1]. Any other seed initializes a numpy PCG64 generator from the float's
IEEE-754 bit pattern, so equal floats always give equal streams.
"""

from typing import List, Optional

import numpy as np

from .constants import SEED_ALL_FIRST, SEED_ALL_SECOND, SEED_SENTINELS
from .outcome_space import OutcomeSpace

OUTCOME_DTYPE = np.uint8


def is_sentinel(seed: float) -> bool:
    """True for the two seeds that bypass the generator."""
    return seed in SEED_SENTINELS


def seed_to_generator(seed: float) -> np.random.Generator:
    """
    Build the deterministic generator for a non-sentinel seed.

    Args:
        seed: Float in the open interval (0, 1)

    Returns:
        np.random.Generator backed by PCG64, keyed on the seed's 64 bits
    """
    bits = int(np.array(seed, dtype=np.float64).view(np.uint64))
    return np.random.Generator(np.random.PCG64(bits))


def _check_arguments(seed: float, bias: float, count: int) -> None:
    if not (0.0 <= seed <= 1.0):
        raise ValueError(f"seed must be in [0, 1], got {seed}")
    if not (0.0 <= bias <= 1.0):
        raise ValueError(f"bias must be in [0, 1], got {bias}")
    if count < 1:
        raise ValueError(f"count must be a positive integer, got {count}")


def sample_indices(seed: float, bias: float, count: int,
                   out: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Regenerate outcome indices for a batch.

    Args:
        seed: Seed in [0, 1]; 0 and 1 are sentinels
        bias: Probability of index 0, read once by the caller
        count: Number of outcomes to produce
        out: Optional preallocated uint8 buffer with len >= count. Only the
            first count entries are written.

    Returns:
        np.ndarray: uint8 view of length count, 0 = label[0], 1 = label[1]

    Edge cases:
        - seed == 0 -> all zeros, for any bias
        - seed == 1 -> all ones, for any bias
        - bias == 0 with a random seed -> all ones (r < 0 never holds)
    """
    _check_arguments(seed, bias, count)

    if out is None:
        out = np.empty(count, dtype=OUTCOME_DTYPE)
    elif len(out) < count:
        raise ValueError(f"output buffer holds {len(out)} values, {count} requested")
    target = out[:count]

    if seed == SEED_ALL_FIRST:
        target.fill(0)
    elif seed == SEED_ALL_SECOND:
        target.fill(1)
    else:
        draws = seed_to_generator(seed).random(count)
        # index 0 when r < bias, else index 1
        np.greater_equal(draws, bias, out=target, casting="unsafe")
    return target


def sample_outcomes(seed: float, bias: float, count: int,
                    outcome_space: OutcomeSpace) -> List[str]:
    """Same as sample_indices, mapped to the outcome space's labels."""
    labels = outcome_space.labels
    return [labels[i] for i in sample_indices(seed, bias, count).tolist()]


def draw_seed(rng: np.random.Generator) -> float:
    """
    Draw a fresh seed from the open interval (0, 1).

    A draw that lands on a sentinel is re-drawn, never returned and never
    raised as an error.
    """
    while True:
        seed = float(rng.random())
        if not is_sentinel(seed):
            return seed
