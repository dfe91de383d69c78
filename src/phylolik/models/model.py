"""
Mixture models built from rate categories.
"""

from dataclasses import dataclass
from typing import Iterator, Mapping, Sequence, Union

import numpy as np

from ..exceptions import ModelException, ParameterException
from ..parameters import Parameters
from ..settings import DEFAULT_SETTINGS, CalculationSettings
from .distributions import discrete_gamma_rates
from .rates import Entry, FrequencyType, RateCategory, compile_entry


@dataclass(frozen=True)
class EvaluatedCategory:
    """
    A rate category evaluated at fixed parameter values.

    Attributes
    ----------
    name : str
        Category name
    Q : ndarray, shape (n, n)
        Rate matrix after model rescaling
    frequencies : ndarray, shape (n,)
        Root frequencies
    weight : float
        Normalised mixture weight
    fitzjohn : bool
        True if the root is weighted by the conditional likelihoods
    """

    name: str
    Q: np.ndarray
    frequencies: np.ndarray
    weight: float
    fitzjohn: bool = False


class Model:
    """
    Mixture of rate categories sharing one state alphabet.

    Parameters
    ----------
    categories : RateCategory, mapping or sequence of pairs
        A single category (weight one), a mapping from category to weight
        entry, or a sequence of ``(category, weight entry)`` pairs. Weight
        entries follow the same rules as rate entries and are normalised
        to sum to one at evaluation time.
    rescale : bool
        If True, all categories are scaled by a common factor so that the
        weighted mean substitution rate is one

    Raises
    ------
    ModelException
        If the categories differ in number of states or state order
    """

    def __init__(
        self,
        categories: Union[RateCategory, Mapping[RateCategory, Entry], Sequence[tuple[RateCategory, Entry]]],
        rescale: bool = True,
    ):
        if isinstance(categories, RateCategory):
            pairs = [(categories, 1.0)]
        elif isinstance(categories, Mapping):
            pairs = list(categories.items())
        else:
            pairs = list(categories)
        if not pairs:
            raise ModelException("A model needs at least one rate category")

        self.categories: list[RateCategory] = [c for c, _ in pairs]
        self._weights = [compile_entry(w) for _, w in pairs]
        self.rescale = rescale

        first = self.categories[0]
        for c in self.categories[1:]:
            if c.n_states != first.n_states:
                raise ModelException("Rates have different number of states")
            if c.states != first.states:
                raise ModelException("Rates have different states")

        self.states: tuple[str, ...] = first.states
        self.state_index: dict[str, int] = dict(first.state_index)

    @classmethod
    def gamma_rates(cls, category: RateCategory, shape: str, n_categories: int, rescale: bool = True) -> "Model":
        """
        Discrete Gamma rate variation across sites.

        Builds ``n_categories`` equally weighted copies of ``category``, the
        i-th scaled by the mean rate of the i-th Gamma category.

        Parameters
        ----------
        category : RateCategory
            Base category
        shape : str
            Name of the parameter holding the Gamma shape (alpha)
        n_categories : int
            Number of discrete categories
        """
        if n_categories < 1:
            raise ModelException(f"Need at least one Gamma category, got {n_categories}")

        def multiplier(i: int):
            def rate(values):
                if shape not in values:
                    raise ParameterException(f"No value for Gamma shape parameter '{shape}'")
                return discrete_gamma_rates(values[shape], n_categories)[i]
            return rate

        return cls(
            [
                (category.multiply_by(multiplier(i), name=f"Gamma Category {i + 1}"), 1.0 / n_categories)
                for i in range(n_categories)
            ],
            rescale=rescale,
        )

    @property
    def n_states(self) -> int:
        return len(self.states)

    @property
    def n_categories(self) -> int:
        return len(self.categories)

    @property
    def has_single_rate(self) -> bool:
        return len(self.categories) == 1

    def evaluate(
        self,
        parameters: Union[Parameters, Mapping[str, float]],
        settings: CalculationSettings = DEFAULT_SETTINGS,
    ) -> tuple[EvaluatedCategory, ...]:
        """
        Evaluate every category at the given parameter values.

        Returns
        -------
        tuple[EvaluatedCategory, ...]
            One record per category, in construction order
        """
        values = parameters.values() if isinstance(parameters, Parameters) else dict(parameters)

        weights = np.array([w(values) for w in self._weights], dtype=float)
        if np.any(weights < 0) or not np.all(np.isfinite(weights)) or weights.sum() <= 0:
            raise ModelException(f"Invalid category weights: {weights}")
        weights = weights / weights.sum()

        evaluated = [c.evaluate(values, settings) for c in self.categories]

        scale = 1.0
        if self.rescale:
            total = sum(w * RateCategory.total_rate(Q, f) for w, (Q, f) in zip(weights, evaluated))
            if total > 0.0:
                scale = 1.0 / total

        result = []
        for i, (category, weight, (Q, f)) in enumerate(zip(self.categories, weights, evaluated)):
            Q = Q * scale
            Q.setflags(write=False)
            f.setflags(write=False)
            result.append(EvaluatedCategory(
                name=category.name or f"Category {i + 1}",
                Q=Q,
                frequencies=f,
                weight=float(weight),
                fitzjohn=category.frequency_type == FrequencyType.FITZJOHN,
            ))
        return tuple(result)

    def __iter__(self) -> Iterator[RateCategory]:
        return iter(self.categories)

    def __len__(self) -> int:
        return len(self.categories)

    def __repr__(self) -> str:
        return f"Model(n_categories={self.n_categories}, states={self.states})"
