"""
twostate/bias.py - Shared Bias Property

A live, externally owned probability for index-0 outcomes. Engines hold a
reference and read .value at the instant of each draw; they never write it.
"""

from typing import Callable, List

from .constants import BIAS_MAX, BIAS_MIN, DEFAULT_BIAS

BiasListener = Callable[[float, float], None]


class BiasProperty:
    """Mutable bias in [0, 1] with change listeners.

    Listeners are called as listener(new_value, old_value) only when the value
    actually changes.
    """

    def __init__(self, initial_value: float = DEFAULT_BIAS):
        self._check(initial_value)
        self._initial_value = float(initial_value)
        self._value = float(initial_value)
        self._listeners: List[BiasListener] = []

    @staticmethod
    def _check(value: float) -> None:
        if not (BIAS_MIN <= value <= BIAS_MAX):
            raise ValueError(f"bias must be between {BIAS_MIN} and {BIAS_MAX}, got {value}")

    @property
    def value(self) -> float:
        return self._value

    @value.setter
    def value(self, new_value: float) -> None:
        self._check(new_value)
        new_value = float(new_value)
        old_value = self._value
        if new_value == old_value:
            return
        self._value = new_value
        for listener in list(self._listeners):
            listener(new_value, old_value)

    def add_listener(self, listener: BiasListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: BiasListener) -> None:
        self._listeners.remove(listener)

    def reset(self) -> None:
        self.value = self._initial_value

    def __repr__(self) -> str:
        return f"BiasProperty({self._value})"
