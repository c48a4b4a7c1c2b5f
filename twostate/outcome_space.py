"""
twostate/outcome_space.py - Outcome Space per System Variant

The two measurable labels of a system, plus the capability flag that decides
whether the variant collapses lazily (quantum) or commits values at
preparation time (classical).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from .constants import (
    CLASSICAL_LABELS,
    QUANTUM_LABELS,
    SUPERPOSED_LABEL,
    MeasurementState,
)


class SystemType(Enum):
    """Scale of the modeled system: everyday objects or quantum ones."""
    CLASSICAL = "classical"
    QUANTUM = "quantum"


@dataclass(frozen=True)
class OutcomeSpace:
    """Ordered pair of outcome labels for one system variant (immutable).

    Attributes:
        system_type: Which variant these labels belong to
        labels: (label[0], label[1]); bias is the probability of label[0]
        transient_label: Display-only label that is never measured
        lazy_collapse: True when values are drawn on first reveal instead of
            at the end of preparation. Only lazy variants may be
            readyToBeMeasured.
    """
    system_type: SystemType
    labels: Tuple[str, str]
    transient_label: Optional[str] = None
    lazy_collapse: bool = False

    def __post_init__(self):
        if isinstance(self.labels, list):
            object.__setattr__(self, 'labels', tuple(self.labels))
        if len(self.labels) != 2 or self.labels[0] == self.labels[1]:
            raise ValueError(f"An outcome space needs two distinct labels, got {self.labels}")

    def index_of(self, label: str) -> int:
        """Index of a measured label. Raises ValueError for anything else."""
        try:
            return self.labels.index(label)
        except ValueError:
            raise ValueError(
                f"'{label}' is not a measurable {self.system_type.value} outcome; "
                f"expected one of {self.labels}"
            ) from None

    def is_valid(self, label: str) -> bool:
        return label in self.labels

    def label_at(self, index: int) -> str:
        return self.labels[index]

    def allows(self, state: MeasurementState) -> bool:
        """Whether this variant may ever be in the given state."""
        if state is MeasurementState.READY:
            return self.lazy_collapse
        return True

    @property
    def initial_state(self) -> MeasurementState:
        # classical starts shown, quantum starts unobserved
        return MeasurementState.READY if self.lazy_collapse else MeasurementState.REVEALED

    @property
    def resolved_preparing_state(self) -> MeasurementState:
        """Stable state that replaces preparingToBeMeasured when no timer exists."""
        return MeasurementState.READY if self.lazy_collapse else MeasurementState.HIDDEN


CLASSICAL = OutcomeSpace(SystemType.CLASSICAL, CLASSICAL_LABELS)
QUANTUM = OutcomeSpace(SystemType.QUANTUM, QUANTUM_LABELS, SUPERPOSED_LABEL, lazy_collapse=True)

_SPACES = {
    SystemType.CLASSICAL: CLASSICAL,
    SystemType.QUANTUM: QUANTUM,
}


def outcome_space_for(system_type) -> OutcomeSpace:
    """Look up the outcome space for a SystemType or its string value."""
    if not isinstance(system_type, SystemType):
        system_type = SystemType(system_type)
    return _SPACES[system_type]
