"""
Named model parameters.

Rate matrix entries, root frequencies, Gamma shapes and branch lengths all
refer to parameters by name. Each evaluation reads a plain ``dict`` of
values from a :class:`Parameters` collection, so calculations never see a
collection that is being modified.
"""

import math
from dataclasses import dataclass, replace
from typing import Iterable, Iterator

from .exceptions import ParameterException


@dataclass
class Parameter:
    """
    A single named value.

    Attributes
    ----------
    name : str
        Parameter name
    value : float
        Current value
    estimate : bool
        True if an optimizer may change the value
    lower, upper : float
        Bounds enforced by :meth:`Parameters.set_value`
    """

    name: str
    value: float
    estimate: bool = False
    lower: float = -math.inf
    upper: float = math.inf

    @classmethod
    def fixed(cls, name: str, value: float) -> "Parameter":
        return cls(name, float(value), estimate=False)

    @classmethod
    def estimated(cls, name: str, value: float = 1.0) -> "Parameter":
        return cls(name, float(value), estimate=True)

    @classmethod
    def estimated_positive(cls, name: str, value: float = 1.0) -> "Parameter":
        return cls(name, float(value), estimate=True, lower=0.0)

    @classmethod
    def estimated_bounded(cls, name: str, lower: float, upper: float, value: float = None) -> "Parameter":
        if lower > upper:
            raise ParameterException(f"Lower bound {lower} above upper bound {upper} for '{name}'")
        if value is None:
            value = lower + 0.8 * (upper - lower) if math.isfinite(upper - lower) else 1.0
        return cls(name, float(value), estimate=True, lower=lower, upper=upper)

    def __str__(self) -> str:
        return f"{self.name}\t{self.value}"


class Parameters:
    """Ordered collection of uniquely named parameters."""

    def __init__(self, params: Iterable[Parameter] = ()):
        self._params: dict[str, Parameter] = {}
        for p in params:
            self.add(p)

    def add(self, parameter: Parameter) -> None:
        if parameter.name in self._params:
            raise ParameterException(f"Parameter '{parameter.name}' already exists")
        self._params[parameter.name] = parameter

    def add_all(self, other: "Parameters") -> None:
        for p in other:
            self.add(p)

    def get(self, name: str) -> Parameter:
        try:
            return self._params[name]
        except KeyError:
            raise ParameterException(f'No parameter with the name "{name}" exists.') from None

    def value(self, name: str) -> float:
        return self.get(name).value

    def set_value(self, name: str, value: float) -> None:
        p = self.get(name)
        if value < p.lower or value > p.upper:
            raise ParameterException(
                f"Value {value} for '{name}' outside bounds [{p.lower}, {p.upper}]"
            )
        p.value = float(value)

    def values(self) -> dict[str, float]:
        """Snapshot of all values keyed by name."""
        return {name: p.value for name, p in self._params.items()}

    def for_estimation(self) -> "Parameters":
        """View holding only the parameters an optimizer may change."""
        free = Parameters()
        free._params = {n: p for n, p in self._params.items() if p.estimate}
        return free

    @property
    def number_estimate(self) -> int:
        return sum(1 for p in self._params.values() if p.estimate)

    def copy(self) -> "Parameters":
        return Parameters(replace(p) for p in self._params.values())

    def __contains__(self, name: str) -> bool:
        return name in self._params

    def __iter__(self) -> Iterator[Parameter]:
        return iter(self._params.values())

    def __len__(self) -> int:
        return len(self._params)

    def __str__(self) -> str:
        return "\n".join(str(p) for p in self._params.values())

    def __repr__(self) -> str:
        return f"Parameters({list(self._params)})"
