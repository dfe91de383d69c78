"""
Rate categories: one rate matrix plus its root frequency policy.

Matrix and frequency entries may be numbers, parameter names, or products
of names and numbers such as ``"a*pC"``. They are compiled once at
construction and evaluated against a dictionary of parameter values each
time a model is evaluated.
"""

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Mapping, Optional, Sequence, Union

import numpy as np

from ..exceptions import ModelException, ParameterException, RateException
from ..settings import DEFAULT_SETTINGS, CalculationSettings
from . import distributions

Values = Mapping[str, float]
Entry = Union[float, int, str, Callable[[Values], float]]

_NAME = re.compile(r'^[A-Za-z_][A-Za-z0-9_.]*$')


class FrequencyType(str, Enum):
    """Root frequency policy of a rate category."""
    MODEL = "model"
    EQUAL = "equal"
    STATIONARY = "stationary"
    QSTAT = "qstat"
    FITZJOHN = "fitzjohn"


def compile_entry(entry: Entry) -> Callable[[Values], float]:
    """
    Turn a matrix or frequency entry into a function of parameter values.

    Parameters
    ----------
    entry : float, str or callable
        A number, a parameter name, a ``*``-separated product of names and
        numbers, or a callable taking the value dictionary

    Raises
    ------
    ModelException
        If a string entry is not a product of names and numbers
    """
    if callable(entry):
        return entry
    if isinstance(entry, (int, float, np.floating, np.integer)):
        constant = float(entry)
        return lambda values: constant

    constant = 1.0
    names = []
    for token in str(entry).split('*'):
        token = token.strip()
        try:
            constant *= float(token)
            continue
        except ValueError:
            pass
        if not _NAME.match(token):
            raise ModelException(f"Cannot interpret rate expression '{entry}'")
        names.append(token)

    def evaluate(values: Values) -> float:
        result = constant
        for name in names:
            try:
                result *= values[name]
            except KeyError:
                raise ParameterException(
                    f"Expression '{entry}' uses parameter '{name}' which has no value"
                ) from None
        return result

    evaluate.names = tuple(names)
    return evaluate


@dataclass(eq=False)
class RateCategory:
    """
    Markov model component: rate matrix, state alphabet and root frequencies.

    Parameters
    ----------
    rates : sequence of sequences of entries, or callable
        Square matrix of off-diagonal rates (the diagonal is ignored and
        always derived so rows sum to zero), or a callable mapping the
        parameter value dictionary to such a matrix
    frequencies : FrequencyType or sequence of entries
        Policy for the root frequencies, or explicit (unnormalised)
        frequency entries in state order
    states : sequence of str
        State alphabet; position gives the matrix index
    name : str, optional
        Display name
    multiplier : entry
        Factor applied to the whole matrix (used for Gamma categories)

    Raises
    ------
    RateException
        If the matrix is not square or does not match the states
    ModelException
        If a matrix or frequency entry is a malformed expression
    """

    rates: object
    frequencies: object
    states: Sequence[str]
    name: Optional[str] = None
    multiplier: Entry = 1.0

    def __post_init__(self):
        self.states = tuple(self.states)
        if len(set(self.states)) != len(self.states):
            raise RateException(f"Duplicate states in {self.states}")
        n = len(self.states)

        if callable(self.rates):
            self._rate_function = self.rates
            self._rate_entries = None
        else:
            rows = [list(r) for r in self.rates]
            if len(rows) != n or any(len(r) != n for r in rows):
                raise RateException(
                    f"Rate matrix must be square with one row per state ({n}), "
                    f"got {len(rows)} rows of lengths {sorted({len(r) for r in rows})}"
                )
            self._rate_function = None
            self._rate_entries = [
                [None if i == j else compile_entry(rows[i][j]) for j in range(n)]
                for i in range(n)
            ]

        if isinstance(self.frequencies, (FrequencyType, str)):
            self.frequency_type = FrequencyType(self.frequencies)
            self._frequency_entries = None
        else:
            self.frequency_type = FrequencyType.MODEL
            if callable(self.frequencies):
                self._frequency_entries = self.frequencies
            else:
                entries = list(self.frequencies)
                if len(entries) != n:
                    raise RateException(f"Expected {n} frequencies, got {len(entries)}")
                self._frequency_entries = [compile_entry(e) for e in entries]

        self._multiplier = compile_entry(self.multiplier)
        self.state_index = {s: i for i, s in enumerate(self.states)}

    @property
    def n_states(self) -> int:
        return len(self.states)

    def multiply_by(self, multiplier: Entry, name: Optional[str] = None) -> "RateCategory":
        """Copy of this category with an extra rate multiplier."""
        inner = self._multiplier
        extra = compile_entry(multiplier)
        return replace(
            self,
            name=name if name is not None else self.name,
            multiplier=lambda values: inner(values) * extra(values),
        )

    def model_frequencies(self, values: Values) -> np.ndarray:
        """Explicit frequencies normalised to sum to one (MODEL policy only)."""
        if callable(self._frequency_entries):
            f = np.asarray(self._frequency_entries(values), dtype=float)
        else:
            f = np.array([e(values) for e in self._frequency_entries])
        if f.shape != (self.n_states,) or np.any(f < 0) or not np.all(np.isfinite(f)):
            raise RateException(f"Invalid frequencies: {f}")
        total = f.sum()
        if total <= 0.0:
            raise RateException("Frequencies sum to zero")
        return f / total

    def rate_matrix(self, values: Values, frequencies: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Evaluate the rate matrix, multiplier included, with derived diagonal.

        With a MODEL frequency policy the normalised frequencies are also
        available to the entries as ``_<state>`` (e.g. ``"_A"``).
        """
        if frequencies is not None:
            values = dict(values)
            values.update({f"_{s}": frequencies[i] for i, s in enumerate(self.states)})

        n = self.n_states
        if self._rate_function is not None:
            Q = np.array(self._rate_function(values), dtype=float)
            if Q.shape != (n, n):
                raise RateException(f"Rate function returned shape {Q.shape}, expected {(n, n)}")
        else:
            Q = np.zeros((n, n))
            for i in range(n):
                for j in range(n):
                    if i != j:
                        Q[i, j] = self._rate_entries[i][j](values)

        np.fill_diagonal(Q, 0.0)
        if not np.all(np.isfinite(Q)):
            raise RateException(f"Rate matrix{self._label()} contains non-finite rates")
        if np.any(Q < 0.0):
            raise RateException(f"Rate matrix{self._label()} contains negative rates")
        np.fill_diagonal(Q, -Q.sum(axis=1))

        m = self._multiplier(values)
        if m < 0.0 or not np.isfinite(m):
            raise RateException(f"Invalid rate multiplier {m}{self._label()}")
        return Q * m

    def evaluate(
        self, values: Values, settings: CalculationSettings = DEFAULT_SETTINGS
    ) -> tuple[np.ndarray, np.ndarray]:
        """
        Rate matrix and root frequencies for the given parameter values.

        Frequencies for the FITZJOHN policy are the stationary distribution;
        they only enter the overall rate normalisation, as the root itself
        is weighted by the conditional likelihoods.
        """
        if self.frequency_type == FrequencyType.MODEL:
            f = self.model_frequencies(values)
            return self.rate_matrix(values, f), f

        Q = self.rate_matrix(values)
        n = self.n_states
        if self.frequency_type == FrequencyType.EQUAL:
            f = np.full(n, 1.0 / n)
        elif self.frequency_type == FrequencyType.QSTAT:
            f = distributions.quasi_stationary(Q, settings.distribution)
        else:
            f = distributions.stationary(Q, settings.distribution)
        return Q, f

    @staticmethod
    def total_rate(Q: np.ndarray, frequencies: np.ndarray) -> float:
        """Expected substitution rate: sum over i != j of f_i * Q[i, j]."""
        off = Q - np.diag(np.diag(Q))
        return float(np.dot(frequencies, off.sum(axis=1)))

    def _label(self) -> str:
        return f" of '{self.name}'" if self.name else ""

    def __repr__(self) -> str:
        return f"RateCategory(name={self.name!r}, states={self.states}, frequencies={self.frequency_type.value})"
