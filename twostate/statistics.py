"""
twostate/statistics.py - Batch Statistics

Tallies of revealed batches, Shannon entropy of the observed outcomes, exact
binomial intervals, and the convergence sweep used to check that the seeded
sampler honors its bias.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import numpy as np
from scipy.stats import beta

from .constants import CONVERGENCE_TOLERANCE, DEFAULT_CONFIDENCE
from .sampler import draw_seed, sample_indices


# =============================================================================
# ENTROPY
# =============================================================================

def binary_entropy(p: float) -> float:
    """
    Shannon entropy H = -p*log2(p) - (1-p)*log2(1-p), in bits.

    Edge cases:
        - p == 0 or p == 1 -> 0.0 (no uncertainty)
        - p == 0.5 -> 1.0 bit exactly
    """
    if p <= 0.0 or p >= 1.0:
        return 0.0
    return -p * math.log2(p) - (1.0 - p) * math.log2(1.0 - p)


# =============================================================================
# TALLY
# =============================================================================

@dataclass(frozen=True)
class Tally:
    """Counts of each label over the revealed values of a batch."""
    count_label0: int
    count_label1: int
    labels: Tuple[str, str]

    @property
    def total(self) -> int:
        return self.count_label0 + self.count_label1

    @property
    def fraction_label0(self) -> float:
        return self.count_label0 / self.total if self.total else 0.0

    @property
    def fraction_label1(self) -> float:
        return self.count_label1 / self.total if self.total else 0.0

    @property
    def entropy_bits(self) -> float:
        return binary_entropy(self.fraction_label0)

    def interval_label0(self, confidence: float = DEFAULT_CONFIDENCE) -> Tuple[float, float]:
        """
        Clopper-Pearson exact interval for the label[0] fraction.

        Uses scipy.stats.beta.ppf: lower = beta.ppf(alpha/2, k, n-k+1),
        upper = beta.ppf(1-alpha/2, k+1, n-k).
        """
        k, n = self.count_label0, self.total
        alpha = 1.0 - confidence
        lower = 0.0 if k == 0 else float(beta.ppf(alpha / 2, k, n - k + 1))
        upper = 1.0 if k == n else float(beta.ppf(1 - alpha / 2, k + 1, n - k))
        return lower, upper

    def as_dict(self) -> Dict[str, Any]:
        return {
            self.labels[0]: self.count_label0,
            self.labels[1]: self.count_label1,
            "total": self.total,
            "fraction_label0": self.fraction_label0,
            "entropy_bits": self.entropy_bits,
        }


def tally_indices(indices: np.ndarray, labels: Tuple[str, str]) -> Tally:
    """Count index-0 and index-1 entries of an outcome array."""
    count_label1 = int(np.count_nonzero(indices))
    return Tally(len(indices) - count_label1, count_label1, tuple(labels))


# =============================================================================
# CONVERGENCE
# =============================================================================

@dataclass(frozen=True)
class ConvergenceReport:
    """Outcome of averaging observed label[0] fractions over many seeds."""
    bias: float
    count: int
    n_seeds: int
    mean_fraction: float
    max_abs_deviation: float
    tolerance: float

    @property
    def deviation(self) -> float:
        return abs(self.mean_fraction - self.bias)

    @property
    def passed(self) -> bool:
        return self.deviation < self.tolerance

    def as_dict(self) -> Dict[str, Any]:
        return {
            "bias": self.bias,
            "count": self.count,
            "n_seeds": self.n_seeds,
            "mean_fraction": self.mean_fraction,
            "deviation": self.deviation,
            "max_abs_deviation": self.max_abs_deviation,
            "tolerance": self.tolerance,
            "passed": self.passed,
        }


def convergence_sweep(bias: float, count: int, n_seeds: int,
                      rng: Optional[np.random.Generator] = None,
                      tolerance: float = CONVERGENCE_TOLERANCE,
                      progress=None) -> ConvergenceReport:
    """
    Average the observed label[0] fraction over n_seeds fresh seeds.

    Args:
        bias: Probability of label[0]
        count: Batch size per seed
        n_seeds: Number of distinct seeds to draw
        rng: Generator for drawing seeds (defaults to an unseeded one)
        tolerance: Allowed |mean_fraction - bias|
        progress: Optional wrapper for the seed iterator (e.g. tqdm)

    Returns:
        ConvergenceReport
    """
    if n_seeds < 1:
        raise ValueError(f"n_seeds must be positive, got {n_seeds}")
    rng = rng if rng is not None else np.random.default_rng()
    buffer = np.empty(count, dtype=np.uint8)
    fractions = np.empty(n_seeds, dtype=np.float64)

    iterator = range(n_seeds)
    if progress is not None:
        iterator = progress(iterator)
    for i in iterator:
        values = sample_indices(draw_seed(rng), bias, count, out=buffer)
        fractions[i] = 1.0 - np.count_nonzero(values) / count

    return ConvergenceReport(
        bias=bias,
        count=count,
        n_seeds=n_seeds,
        mean_fraction=float(fractions.mean()),
        max_abs_deviation=float(np.max(np.abs(fractions - bias))),
        tolerance=tolerance,
    )
