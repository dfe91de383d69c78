"""
Forward simulation of sites under a substitution model.
"""

import logging
from typing import Mapping, Optional, Sequence, Union

import numpy as np

from ..constraints import Constrainer
from ..exceptions import AlignmentException, ModelException, RateException, SimulationException, TreeException
from ..io.sequences import Alignment, Ambiguous, Site
from ..io.trees import Tree
from ..likelihood.calculator import check_taxa
from ..likelihood.probabilities import Models, Probabilities, as_model_map
from ..parameters import Parameters
from ..settings import DEFAULT_SETTINGS, CalculationSettings

logger = logging.getLogger(__name__)

Trees = Union[Tree, Mapping[Optional[str], Tree]]


class Simulator:
    """
    Simulate alignment columns on a tree.

    For each site a rate category is drawn from the mixture weights, a root
    state from that category's root frequencies, and then every child's
    state from the transition matrix row of its parent's state, top-down.
    All draws use inverse-CDF sampling of a single uniform variate.

    Parameters
    ----------
    models : Model or mapping of site class to Model
    trees : Tree or mapping of site class to Tree
        Rooted tree, or one tree per site class. All trees must share the
        same leaves. Branch lengths come from ``parameters`` or the tree
    parameters : Parameters or mapping
        Model parameter values
    missing : Alignment, optional
        Patterns that can never be observed. A simulated site is discarded
        when, after recoding, every leaf's possible states fall inside the
        pattern's possible states (or the two characters are identical)
    constrainer : Constrainer, optional
        Sites (internal nodes included) whose simulated states violate its
        constraints are discarded
    seed : int, optional
        Random seed for reproducibility
    internal : bool
        Also emit the states of internal nodes
    recode : Mapping[str, str], optional
        Replace each simulated state with a code before emission. Several
        states may share one code; the emitted sites carry an ambiguity
        table expanding each code back into its states
    max_attempts : int, optional
        Give up on a site after this many rejected draws. By default
        rejection sampling never gives up, so constraints that can never be
        met make :meth:`get_site` loop forever
    settings : CalculationSettings

    Raises
    ------
    RateException
        If a rate category weights its root by the conditional likelihoods
        (FitzJohn), since such root frequencies depend on the data
    TreeException
        If per-class trees do not share their leaves (and, when ``internal``
        is set, their internal node names)

    Examples
    --------
    >>> from phylolik.models.dna import jukes_cantor
    >>> model, params = jukes_cantor()
    >>> tree = Tree.from_newick("((A:0.1,B:0.2):0.05,C:0.3);")
    >>> sim = Simulator(model, tree, params, seed=1)
    >>> len(sim.get_alignment(100))
    100
    """

    def __init__(
        self,
        models: Models,
        trees: Trees,
        parameters: Union[Parameters, Mapping[str, float]],
        missing: Optional[Alignment] = None,
        constrainer: Optional[Constrainer] = None,
        seed: Optional[int] = None,
        internal: bool = False,
        recode: Optional[Mapping[str, str]] = None,
        max_attempts: Optional[int] = None,
        settings: CalculationSettings = DEFAULT_SETTINGS,
    ):
        if max_attempts is not None and max_attempts < 1:
            raise ValueError(f"max_attempts must be positive, got {max_attempts}")

        if isinstance(trees, Tree):
            self._probabilities = {None: Probabilities(models, trees, parameters, settings)}
        else:
            tree_map = dict(trees)
            if not tree_map:
                raise TreeException("No trees given")
            model_map = as_model_map(models)
            self._probabilities = {
                site_class: Probabilities(_model_for(model_map, site_class), tree, parameters, settings)
                for site_class, tree in tree_map.items()
            }
        self.trees: dict[Optional[str], Tree] = {c: p.tree for c, p in self._probabilities.items()}
        _check_trees(self.trees, internal)

        for p in self._probabilities.values():
            for site_class in p.site_classes:
                for category in p.categories(site_class):
                    if category.fitzjohn:
                        raise RateException(
                            f"Root frequencies of '{category.name}' depend on the likelihood "
                            "(FitzJohn root); such a category cannot be simulated"
                        )

        if missing is not None:
            for tree in self.trees.values():
                check_taxa(missing, tree)
        self.missing = missing
        self.constrainer = constrainer
        self.internal = internal
        self.max_attempts = max_attempts
        self.rng = np.random.default_rng(seed)

        self.states: tuple[str, ...] = next(iter(self._probabilities.values())).states
        self.recode = dict(recode) if recode is not None else None
        self.ambiguous = None
        if self.recode is not None:
            table: dict[str, set[str]] = {}
            for state in self.states:
                table.setdefault(self.recode.get(state, state), set()).add(state)
            self.ambiguous = Ambiguous(table)

        self._cumulative: dict[Optional[str], list[tuple[np.ndarray, np.ndarray]]] = {}
        self._weights: dict[Optional[str], np.ndarray] = {}

    def get_site(self, site_class: Optional[str] = None) -> Site:
        """
        Draw one site, resampling until it is admissible.

        Raises
        ------
        AlignmentException
            If no tree is given for ``site_class``
        SimulationException
            If ``max_attempts`` draws in a row were rejected
        """
        tree = self._tree(site_class)
        attempts = 0
        while True:
            attempts += 1
            site = self._draw(site_class)
            if self._meets_constraints(tree, site):
                emitted = self._emit(tree, site)
                if not self._is_missing(tree, emitted):
                    return emitted
            logger.debug("Rejected simulated site %s (attempt %d)", site, attempts)
            if self.max_attempts is not None and attempts >= self.max_attempts:
                raise SimulationException(
                    f"No admissible site after {attempts} attempts; "
                    "constraints or missing-data patterns may exclude every outcome"
                )

    def get_alignment(self, sites: Union[int, Sequence[Optional[str]]]) -> Alignment:
        """
        Simulate independent sites.

        Parameters
        ----------
        sites : int or sequence of site classes
            Number of unclassed sites, or the site class of every site
        """
        if isinstance(sites, (int, np.integer)):
            if sites < 1:
                raise ValueError(f"Alignment length must be positive, got {sites}")
            classes = [None] * int(sites)
        else:
            classes = list(sites)
            if not classes:
                raise ValueError("Need at least one site class")
        return Alignment([self.get_site(c) for c in classes])

    def _source(self, site_class: Optional[str]) -> Probabilities:
        if site_class in self._probabilities:
            return self._probabilities[site_class]
        if list(self._probabilities) == [None]:
            return self._probabilities[None]
        raise AlignmentException(f"No tree for site class '{site_class}'")

    def _tree(self, site_class: Optional[str]) -> Tree:
        return self._source(site_class).tree

    def _draw(self, site_class: Optional[str]) -> Site:
        tree = self._tree(site_class)
        weights, per_category = self._tables(site_class)
        category = _sample(weights, self.rng.random())
        frequencies, matrices = per_category[category]

        drawn = np.empty(len(tree.nodes), dtype=int)
        drawn[tree.root_id] = _sample(frequencies, self.rng.random())
        for k in range(len(tree.branches) - 1, -1, -1):
            branch = tree.branches[k]
            drawn[branch.child_id] = _sample(matrices[k, drawn[branch.parent_id]], self.rng.random())

        return Site({node.name: self.states[drawn[node.id]] for node in tree.nodes}, site_class)

    def _tables(self, site_class: Optional[str]):
        """Cumulative weights, root frequencies and transition rows for a class."""
        if site_class not in self._cumulative:
            probabilities = self._source(site_class)
            categories = probabilities.categories(site_class)
            self._weights[site_class] = np.cumsum([c.weight for c in categories])
            self._cumulative[site_class] = [
                (
                    np.cumsum(c.frequencies),
                    np.cumsum(probabilities.matrices(site_class, i), axis=2),
                )
                for i, c in enumerate(categories)
            ]
        return self._weights[site_class], self._cumulative[site_class]

    def _meets_constraints(self, tree: Tree, site: Site) -> bool:
        if self.constrainer is None:
            return True
        return self.constrainer.get_constraints(tree, site).meets_constraints(site)

    def _is_missing(self, tree: Tree, site: Site) -> bool:
        """True if the emitted site's leaves fall inside an unobservable pattern."""
        if self.missing is None:
            return False
        for pattern in self.missing.unique_sites():
            if pattern.site_class is not None and pattern.site_class != site.site_class:
                continue
            if all(
                site.raw_character(t) == pattern.raw_character(t)
                or site.character(t) <= pattern.character(t)
                for t in tree.leaves
            ):
                return True
        return False

    def _emit(self, tree: Tree, site: Site) -> Site:
        if not self.internal:
            site = site.limit_to_taxa(tree.leaves)
        if self.recode is not None:
            site = site.recode(self.recode, self.ambiguous)
        return site

    def __repr__(self) -> str:
        return (
            f"Simulator(states={''.join(self.states)}, trees={len(self.trees)}, "
            f"internal={self.internal})"
        )


def _model_for(model_map, site_class):
    if site_class in model_map:
        return model_map[site_class]
    if list(model_map) == [None]:
        return model_map[None]
    raise ModelException(f"No model for site class '{site_class}'")


def _check_trees(trees: Mapping[Optional[str], Tree], internal: bool) -> None:
    first = next(iter(trees.values()))
    for site_class, tree in trees.items():
        if set(tree.leaves) != set(first.leaves):
            raise TreeException(f"Tree for site class '{site_class}' has different leaves")
        if internal and set(tree.internal) != set(first.internal):
            raise TreeException(
                f"Tree for site class '{site_class}' has different internal nodes; "
                "cannot emit internal states"
            )


def _sample(cumulative: np.ndarray, u: float) -> int:
    """Inverse-CDF draw: the first index whose cumulative probability exceeds ``u``."""
    i = int(np.searchsorted(cumulative, u * cumulative[-1], side="right"))
    return min(i, len(cumulative) - 1)
