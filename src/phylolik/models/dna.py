"""
Standard nucleotide substitution models.

Each factory returns ``(model, parameters)``: the model, and a
:class:`Parameters` collection with the model's own parameters at their
starting values (estimated ones at 1.0). Branch-length parameters come from
the tree and are not included. States are ordered T, C, A, G.
"""

import numpy as np

from ..core.matrix import create_reversible_Q
from ..exceptions import ParameterException
from ..io.sequences import NUCLEOTIDES
from ..parameters import Parameter, Parameters
from .model import Model
from .rates import FrequencyType, RateCategory

# Index pairs in T, C, A, G order
_TRANSITIONS = {(0, 1), (1, 0), (2, 3), (3, 2)}
# Exchangeability parameter for each unordered pair; A<->G is the reference
_GTR_PAIRS = {(0, 1): "a", (0, 2): "b", (0, 3): "c", (1, 2): "d", (1, 3): "e"}

FREQUENCY_PARAMETERS = ("pT", "pC", "pA", "pG")


def _frequency_parameters() -> Parameters:
    # pT is the reference frequency; the others are relative to it
    return Parameters([
        Parameter.fixed("pT", 1.0),
        Parameter.estimated_positive("pC"),
        Parameter.estimated_positive("pA"),
        Parameter.estimated_positive("pG"),
    ])


def _value(values, name: str) -> float:
    try:
        return values[name]
    except KeyError:
        raise ParameterException(f"No value for parameter '{name}'") from None


def _frequencies(values) -> np.ndarray:
    f = np.array([_value(values, p) for p in FREQUENCY_PARAMETERS], dtype=float)
    return f / f.sum()


def _category(exchangeability, equal_frequencies: bool) -> RateCategory:
    if equal_frequencies:
        pi = np.full(4, 0.25)
        rates = lambda values: create_reversible_Q(exchangeability(values), pi, normalize=False)
        return RateCategory(rates, FrequencyType.EQUAL, NUCLEOTIDES)

    rates = lambda values: create_reversible_Q(exchangeability(values), _frequencies(values), normalize=False)
    return RateCategory(rates, list(FREQUENCY_PARAMETERS), NUCLEOTIDES)


def _equal_exchange(values) -> np.ndarray:
    return np.ones((4, 4))


def _kappa_exchange(values) -> np.ndarray:
    r = np.ones((4, 4))
    for i, j in _TRANSITIONS:
        r[i, j] = _value(values, "k")
    return r


def _gtr_exchange(values) -> np.ndarray:
    r = np.ones((4, 4))
    for (i, j), name in _GTR_PAIRS.items():
        r[i, j] = r[j, i] = _value(values, name)
    return r


def _build(exchangeability, equal_frequencies: bool, parameters: Parameters,
           gamma_categories: int = 0) -> tuple[Model, Parameters]:
    category = _category(exchangeability, equal_frequencies)
    if gamma_categories:
        parameters.add(Parameter.estimated_positive("g"))
        return Model.gamma_rates(category, "g", gamma_categories), parameters
    return Model(category), parameters


def jukes_cantor(gamma_categories: int = 0) -> tuple[Model, Parameters]:
    """Jukes-Cantor (1969): equal rates and equal frequencies."""
    return _build(_equal_exchange, True, Parameters(), gamma_categories)


def kimura(gamma_categories: int = 0) -> tuple[Model, Parameters]:
    """Kimura (1980): transition/transversion ratio ``k``, equal frequencies."""
    return _build(_kappa_exchange, True, Parameters([Parameter.estimated_positive("k")]), gamma_categories)


def felsenstein81(gamma_categories: int = 0) -> tuple[Model, Parameters]:
    """Felsenstein (1981): equal rates, free frequencies ``pT``..``pG``."""
    return _build(_equal_exchange, False, _frequency_parameters(), gamma_categories)


def hky(gamma_categories: int = 0) -> tuple[Model, Parameters]:
    """Hasegawa-Kishino-Yano (1985): ratio ``k`` and free frequencies."""
    parameters = Parameters([Parameter.estimated_positive("k")])
    parameters.add_all(_frequency_parameters())
    return _build(_kappa_exchange, False, parameters, gamma_categories)


def gtr(gamma_categories: int = 0) -> tuple[Model, Parameters]:
    """
    General time reversible model.

    Exchangeabilities ``a`` (T-C), ``b`` (T-A), ``c`` (T-G), ``d`` (C-A)
    and ``e`` (C-G) are relative to A-G, which is fixed at one.
    """
    parameters = Parameters([Parameter.estimated_positive(n) for n in "abcde"])
    parameters.add_all(_frequency_parameters())
    return _build(_gtr_exchange, False, parameters, gamma_categories)


DNA_MODELS = {
    "JC": jukes_cantor,
    "K80": kimura,
    "F81": felsenstein81,
    "HKY": hky,
    "GTR": gtr,
}
