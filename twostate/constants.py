"""
twostate/constants.py - Measurement Constants

All constants for the two-state measurement engine. Centralized for tuning.
Pure data, no behavior.
"""

from enum import Enum

# =============================================================================
# MEASUREMENT STATES
# =============================================================================


class MeasurementState(Enum):
    """Lifecycle stage of a two-state system between preparation and observation."""
    PREPARING = "preparingToBeMeasured"   # transient, timer outstanding
    READY = "readyToBeMeasured"           # quantum only, values not committed
    HIDDEN = "measuredAndHidden"
    REVEALED = "revealed"


MEASUREMENT_STATE_VALUES = tuple(state.value for state in MeasurementState)

# =============================================================================
# OUTCOME LABELS
# =============================================================================

CLASSICAL_LABELS = ("heads", "tails")
QUANTUM_LABELS = ("up", "down")
SUPERPOSED_LABEL = "superposed"  # never a measured value

# =============================================================================
# SEED SENTINELS
# =============================================================================

SEED_ALL_FIRST = 0.0   # every outcome -> label[0]
SEED_ALL_SECOND = 1.0  # every outcome -> label[1]
SEED_SENTINELS = (SEED_ALL_FIRST, SEED_ALL_SECOND)

# =============================================================================
# COUNTS
# =============================================================================

SINGLE_COUNT = 1
MULTI_COUNT_QUANTITIES = (10, 100, 10000)
DEFAULT_BATCH_COUNT = MULTI_COUNT_QUANTITIES[1]
MAX_COUNT = max(MULTI_COUNT_QUANTITIES)

# =============================================================================
# TIMING
# =============================================================================

PREPARATION_TIME_MS = 1000.0  # visual effect only, duration is arbitrary

# =============================================================================
# BIAS
# =============================================================================

DEFAULT_BIAS = 0.5
BIAS_MIN = 0.0
BIAS_MAX = 1.0

# =============================================================================
# RECEIPTS
# =============================================================================

TENANT_ID = "twostate"
RECEIPT_LEDGER_LIMIT = 4096  # oldest receipts drop first

# =============================================================================
# STATISTICS
# =============================================================================

CONVERGENCE_TOLERANCE = 0.02
DEFAULT_CONFIDENCE = 0.95
