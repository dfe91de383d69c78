"""
Transition probability snapshot.

A :class:`Probabilities` object evaluates a model (or one model per site
class) at fixed parameter values and precomputes, for every rate category
and every branch, the transition matrix exp(Q * length). The snapshot is
immutable, so it can be shared between site calculations.
"""

import logging
import warnings
from typing import Mapping, Optional, Union

import numpy as np

from ..core.matrix import (
    check_detailed_balance,
    eigen_decompose,
    eigen_decompose_rev,
    exponential_from_eigen,
    matrix_exponential,
)
from ..exceptions import ModelException, TreeException
from ..io.trees import Tree
from ..models.model import EvaluatedCategory, Model
from ..parameters import Parameters
from ..settings import DEFAULT_SETTINGS, CalculationSettings, ExpMethod

logger = logging.getLogger(__name__)

Models = Union[Model, Mapping[Optional[str], Model]]


def as_model_map(models: Models) -> dict[Optional[str], Model]:
    """Normalise a model or a site-class mapping of models to a dict."""
    if isinstance(models, Model):
        return {None: models}
    model_map = dict(models)
    if not model_map:
        raise ModelException("No models given")
    first = next(iter(model_map.values()))
    for site_class, model in model_map.items():
        if model.states != first.states:
            raise ModelException(
                f"Model for site class '{site_class}' uses a different state alphabet"
            )
    return model_map


class Probabilities:
    """
    Transition matrices, root frequencies and weights at fixed parameters.

    Parameters
    ----------
    models : Model or mapping of site class to Model
        A single model applies to every site regardless of class
    tree : Tree
        Tree topology; branch lengths are taken from ``parameters`` where a
        parameter is named after the branch's child node, and from the
        tree otherwise
    parameters : Parameters or mapping
        Parameter values for rate expressions and branch lengths
    settings : CalculationSettings
        Exponentiation and distribution settings

    Raises
    ------
    TreeException
        If a branch length is missing or negative
    ModelException, RateException, ParameterException
        If a model cannot be evaluated
    """

    def __init__(
        self,
        models: Models,
        tree: Tree,
        parameters: Union[Parameters, Mapping[str, float]],
        settings: CalculationSettings = DEFAULT_SETTINGS,
    ):
        self.models = as_model_map(models)
        self.settings = settings
        values = parameters.values() if isinstance(parameters, Parameters) else dict(parameters)

        lengths = {}
        for b in tree.branches:
            length = values[b.child] if b.child in values else b.length
            if length is None:
                raise TreeException(f"No branch length for branch above '{b.child}'")
            if length < 0.0:
                raise TreeException(f"Negative branch length {length} above '{b.child}'")
            lengths[b.child] = float(length)
        self.tree = tree.with_lengths(lengths)
        self._lengths = np.array([lengths[b.child] for b in self.tree.branches])

        first = next(iter(self.models.values()))
        self.states: tuple[str, ...] = first.states
        self.state_index: dict[str, int] = dict(first.state_index)

        self._categories: dict[Optional[str], tuple[EvaluatedCategory, ...]] = {}
        self._matrices: dict[Optional[str], tuple[np.ndarray, ...]] = {}
        for site_class, model in self.models.items():
            categories = model.evaluate(values, settings)
            self._categories[site_class] = categories
            self._matrices[site_class] = tuple(self._branch_matrices(c) for c in categories)

        logger.debug(
            "Built probabilities for %d site class(es), %d branches, method=%s",
            len(self.models), len(self._lengths), settings.exponentiation.value,
        )

    @property
    def n_states(self) -> int:
        return len(self.states)

    @property
    def site_classes(self) -> list[Optional[str]]:
        return list(self.models)

    def has_class(self, site_class: Optional[str]) -> bool:
        return site_class in self.models or list(self.models) == [None]

    def categories(self, site_class: Optional[str] = None) -> tuple[EvaluatedCategory, ...]:
        return self._categories[self._key(site_class)]

    def weights(self, site_class: Optional[str] = None) -> np.ndarray:
        return np.array([c.weight for c in self.categories(site_class)])

    def frequencies(self, site_class: Optional[str] = None, category: int = 0) -> np.ndarray:
        return self.categories(site_class)[category].frequencies

    def matrices(self, site_class: Optional[str] = None, category: int = 0) -> np.ndarray:
        """Transition matrices, shape (n_branches, n, n), in post-order branch order."""
        return self._matrices[self._key(site_class)][category]

    def matrix(self, child: str, site_class: Optional[str] = None, category: int = 0) -> np.ndarray:
        """Transition matrix of the branch above ``child``; rows index the parent state."""
        return self.matrices(site_class, category)[self.tree.branch_index(child)]

    def _key(self, site_class: Optional[str]) -> Optional[str]:
        if site_class in self.models:
            return site_class
        if list(self.models) == [None]:
            return None
        raise ModelException(f"No model for site class '{site_class}'")

    def _branch_matrices(self, category: EvaluatedCategory) -> np.ndarray:
        Q, settings = category.Q, self.settings

        decomposition = None
        if settings.exponentiation == ExpMethod.EIGEN:
            f = category.frequencies
            if np.all(f > 0) and check_detailed_balance(Q, f, rtol=1e-8):
                decomposition = eigen_decompose_rev(Q, f)
            else:
                decomposition = eigen_decompose(Q)

        cache: dict[float, np.ndarray] = {}
        result = np.empty((len(self._lengths), Q.shape[0], Q.shape[0]))
        for i, length in enumerate(self._lengths):
            if length not in cache:
                if length == 0.0:
                    P = np.eye(Q.shape[0])
                elif decomposition is not None:
                    P = exponential_from_eigen(decomposition, length)
                else:
                    P = matrix_exponential(
                        Q, length, settings.exponentiation,
                        terms=settings.taylor_terms, force_square=settings.force_square,
                    )
                cache[length] = _clean(P, category.name)
            result[i] = cache[length]
        result.setflags(write=False)
        return result


def _clean(P: np.ndarray, name: str) -> np.ndarray:
    """Clip rounding negatives to zero and renormalise rows."""
    if np.any(P < 0.0):
        if P.min() < -1e-8:
            warnings.warn(
                f"Transition matrix for '{name}' has negative entries (min {P.min():.3g}); "
                "clipping to zero",
                RuntimeWarning,
            )
        P = np.clip(P, 0.0, None)
        P = P / P.sum(axis=1, keepdims=True)
    return P
