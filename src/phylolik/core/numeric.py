"""
Partial likelihood vectors with a pluggable numeric representation.

Pruning multiplies many probabilities together and plain doubles underflow
on deep trees or long alignments. A :class:`Partials` object stores a
vector of values together with the natural log of a common scale factor.
With the SCALED representation the vector is renormalised so that its
largest entry is one after every multiplication (PAML-style scaling); with
STANDARD the scale factor stays at zero and the arithmetic is that of
ordinary doubles. Callers use the same operations in both cases.
"""

from dataclasses import dataclass

import numpy as np

from ..settings import Representation


@dataclass
class Partials:
    """
    Vector of partial likelihoods over states.

    Attributes
    ----------
    values : ndarray, shape (n_states,)
        Relative likelihood of each state
    log_scale : float
        Natural log of the factor the values have been divided by
    representation : Representation
        Whether to rescale after each multiplication
    """

    values: np.ndarray
    log_scale: float = 0.0
    representation: Representation = Representation.SCALED

    @classmethod
    def from_mask(cls, mask: np.ndarray, representation: Representation = Representation.SCALED) -> "Partials":
        """Indicator vector: one for allowed states, zero otherwise."""
        return cls(np.asarray(mask, dtype=float).copy(), 0.0, representation)

    def copy(self) -> "Partials":
        return Partials(self.values.copy(), self.log_scale, self.representation)

    def propagate(self, P: np.ndarray) -> "Partials":
        """
        Push this vector up a branch.

        Returns the vector whose entry i is sum_j P[i, j] * values[j], i.e.
        the likelihood of the subtree below the branch given parent state i.
        """
        return Partials(P @ self.values, self.log_scale, self.representation)

    def propagate_down(self, P: np.ndarray) -> "Partials":
        """
        Push this vector down a branch.

        Returns the vector whose entry j is sum_i values[i] * P[i, j], used
        when passing likelihood from outside a subtree to the subtree root.
        """
        return Partials(self.values @ P, self.log_scale, self.representation)

    def multiply(self, other: "Partials") -> None:
        """Multiply in place by another partial vector."""
        self.values = self.values * other.values
        self.log_scale += other.log_scale
        self.rescale()

    def rescale(self) -> None:
        if self.representation != Representation.SCALED:
            return
        largest = float(np.max(self.values)) if self.values.size else 0.0
        # An all-zero vector stays as it is: the subtree is impossible
        if largest > 0.0:
            self.values = self.values / largest
            self.log_scale += float(np.log(largest))

    def log_values(self) -> np.ndarray:
        """Per-state log likelihoods (-inf where a state is impossible)."""
        with np.errstate(divide="ignore"):
            return np.log(self.values) + self.log_scale

    def log_weighted_sum(self, weights: np.ndarray) -> float:
        """Log of sum_i weights[i] * value[i], including the scale factor."""
        total = float(np.dot(weights, self.values))
        if total <= 0.0:
            return -np.inf
        return float(np.log(total)) + self.log_scale

    def log_self_weighted(self) -> float:
        """
        Log of sum_i value[i]^2 / sum_i value[i].

        This is the root likelihood when the root distribution is taken to
        be proportional to the conditional likelihoods themselves.
        """
        total = float(np.sum(self.values))
        if total <= 0.0:
            return -np.inf
        return float(np.log(float(np.dot(self.values, self.values)) / total)) + self.log_scale
