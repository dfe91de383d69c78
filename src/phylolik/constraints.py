"""
Per-site restrictions on the states allowed at tree nodes.

A :class:`Constrainer` hands out a :class:`SiteConstraints` object for each
site. Ancestral reconstruction never chooses a disallowed state and the
simulator discards sites whose states violate the constraints.
"""

from abc import ABC, abstractmethod
from typing import Iterable

from .exceptions import ConstraintException
from .io.sequences import Site
from .io.trees import Tree


class SiteConstraints:
    """
    Allowed state sets per node for one site.

    Parameters
    ----------
    states : Iterable[str]
        Full state alphabet; unconstrained nodes allow all of it
    """

    def __init__(self, states: Iterable[str]):
        self.states = frozenset(states)
        self._constraints: dict[str, frozenset[str]] = {}

    def add_constraint(self, node: str, allowed: str | Iterable[str]) -> None:
        """Restrict ``node`` to ``allowed`` (a single state or a collection)."""
        allowed = frozenset((allowed,)) if isinstance(allowed, str) else frozenset(allowed)
        unknown = allowed - self.states
        if unknown:
            raise ConstraintException(
                f"Constraint for '{node}' uses states not in the model: {sorted(unknown)}"
            )
        self._constraints[node] = allowed

    def constraint(self, node: str) -> frozenset[str]:
        return self._constraints.get(node, self.states)

    def is_constrained(self, node: str) -> bool:
        return node in self._constraints

    def meets_constraints(self, site: Site) -> bool:
        """True if every constrained taxon's possible states fall inside its allowed set."""
        return all(
            site.character(node) <= allowed
            for node, allowed in self._constraints.items()
            if node in site.characters
        )

    def copy(self) -> "SiteConstraints":
        clone = SiteConstraints(self.states)
        clone._constraints = dict(self._constraints)
        return clone

    def __repr__(self) -> str:
        return f"SiteConstraints({ {k: sorted(v) for k, v in self._constraints.items()} })"


class Constrainer(ABC):
    """Source of per-site constraints."""

    @abstractmethod
    def get_constraints(self, tree: Tree, site: Site) -> SiteConstraints:
        """Return the constraints that apply to ``site`` on ``tree``."""


class NoConstraints(Constrainer):
    """Constrainer that allows every state at every node."""

    def __init__(self, states: Iterable[str]):
        self.states = frozenset(states)

    def get_constraints(self, tree: Tree, site: Site) -> SiteConstraints:
        return SiteConstraints(self.states)


class FixedConstraints(Constrainer):
    """Constrainer returning the same constraints for every site."""

    def __init__(self, constraints: SiteConstraints):
        self.constraints = constraints

    def get_constraints(self, tree: Tree, site: Site) -> SiteConstraints:
        return self.constraints.copy()
