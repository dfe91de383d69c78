"""
Joint ancestral state reconstruction.

Finds, for each site, the assignment of states to all internal nodes that
maximises the joint likelihood of the data and the assignment. Two
interchangeable algorithms implement :class:`JointReconstructor`:

- :class:`DynamicProgrammingReconstructor` (Pupko et al. 2000), exact and
  linear in the number of nodes, for single-rate-category models.
- :class:`BranchAndBoundReconstructor` (Pupko et al. 2002), which handles
  rate mixtures by searching assignments and pruning any partial
  assignment whose summed likelihood cannot beat the best found so far.

Both resolve ties the same way: among assignments whose log-likelihoods
are within ``TIE_TOLERANCE`` of the best, the one whose state indices,
read in pre-order (root first), are lexicographically smallest wins. For
dynamic programming this is the same as taking the first best state in
alphabet order at every step of the backtrack.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Mapping, Optional, Union

import numpy as np

from ..constraints import Constrainer, NoConstraints, SiteConstraints
from ..exceptions import AncestralException, LikelihoodException, UnexpectedError
from ..io.sequences import Alignment, Site
from ..io.trees import Tree
from ..likelihood.calculator import check_taxa, site_likelihood, state_mask
from ..likelihood.probabilities import Models, Probabilities, as_model_map
from ..parameters import Parameters
from ..settings import DEFAULT_SETTINGS, CalculationSettings

logger = logging.getLogger(__name__)

TIE_TOLERANCE = 1e-9


class JointMethod(str, Enum):
    """Joint reconstruction algorithm."""
    AUTO = "auto"
    DP = "dp"
    BB = "bb"


class JointReconstructor(ABC):
    """
    Most probable joint assignment of internal node states.

    Parameters
    ----------
    models : Model or mapping of site class to Model
    alignment : Alignment
    tree : Tree
    constrainer : Constrainer, optional
        Assignments violating the constraints are never returned
    settings : CalculationSettings
    """

    def __init__(
        self,
        models: Models,
        alignment: Alignment,
        tree: Tree,
        constrainer: Optional[Constrainer] = None,
        settings: CalculationSettings = DEFAULT_SETTINGS,
    ):
        self.models = as_model_map(models)
        self.alignment = alignment
        self.tree = tree
        self.settings = settings
        check_taxa(alignment, tree)
        states = next(iter(self.models.values())).states
        self.constrainer = constrainer if constrainer is not None else NoConstraints(states)

    def calculate(self, parameters: Union[Parameters, Mapping[str, float]]) -> Alignment:
        """
        Reconstruct every site.

        Returns
        -------
        Alignment
            The observed alignment with a row added for every internal node
        """
        assignments = self.reconstruct(parameters)
        sites = []
        for site in self.alignment:
            characters = dict(site.characters)
            characters.update(assignments[site])
            sites.append(Site(characters, site.site_class, site.ambiguous, site.site_id))
        return Alignment(sites)

    def reconstruct(self, parameters: Union[Parameters, Mapping[str, float]]) -> dict[Site, dict[str, str]]:
        """Best assignment (node name to state) for each unique site pattern."""
        probabilities = Probabilities(self.models, self.tree, parameters, self.settings)
        return {site: self.reconstruct_site(probabilities, site) for site in self.alignment.unique_sites()}

    @abstractmethod
    def reconstruct_site(self, probabilities: Probabilities, site: Site) -> dict[str, str]:
        """Best assignment of states to internal nodes for one site."""

    def _named(self, probabilities: Probabilities, assignment: dict[int, int]) -> dict[str, str]:
        tree, states = probabilities.tree, probabilities.states
        return {tree.nodes[node].name: states[s] for node, s in assignment.items()}


def dynamic_programming(
    probabilities: Probabilities,
    site: Site,
    category: int,
    constraints: SiteConstraints,
    root_weighted: bool = True,
) -> tuple[dict[int, int], float]:
    """
    Pupko's dynamic programme under a single rate category.

    Parameters
    ----------
    probabilities : Probabilities
    site : Site
    category : int
        Index of the rate category to use
    constraints : SiteConstraints
        Allowed states per node
    root_weighted : bool
        Multiply by the root frequencies (False treats every root state as
        equally likely a priori)

    Returns
    -------
    assignment : dict[int, int]
        State index for each internal node id
    log_likelihood : float
        Joint log-likelihood of the data and the assignment, excluding the
        category weight

    Raises
    ------
    AncestralException
        If no assignment satisfies the constraints with non-zero likelihood
    """
    tree = probabilities.tree
    index = probabilities.state_index
    n = len(index)
    matrices = probabilities.matrices(site.site_class, category)
    rows = np.arange(n)

    with np.errstate(divide="ignore"):
        best_below = [
            None if node.is_leaf else np.log(state_mask(constraints.constraint(node.name), index))
            for node in tree.nodes
        ]
        choices: dict[int, np.ndarray] = {}

        for k, branch in enumerate(tree.branches):
            child = tree.nodes[branch.child_id]
            if child.is_leaf:
                mask = state_mask(site.character(child.name), index)
                if not mask.any():
                    raise LikelihoodException(
                        f"Character '{site.raw_character(child.name)}' of '{child.name}' "
                        "matches no model state - alignment state not in model?"
                    )
                if constraints.is_constrained(child.name):
                    mask *= state_mask(constraints.constraint(child.name), index)
                # Leaf states are summed over, not reconstructed
                message = np.log(matrices[k] @ mask)
            else:
                table = np.log(matrices[k]) + best_below[child.id][np.newaxis, :]
                choice = _first_best(table)
                choices[child.id] = choice
                message = table[rows, choice]
            best_below[branch.parent_id] = best_below[branch.parent_id] + message

        root = best_below[tree.root_id]
        if root_weighted:
            root = root + np.log(probabilities.frequencies(site.site_class, category))

    root_state = int(_first_best(root[np.newaxis, :])[0])
    if not np.isfinite(root[root_state]):
        raise AncestralException(f"No admissible ancestral assignment for site {site}")

    assignment = {tree.root_id: root_state}
    for node in tree.preorder():
        if node.parent is not None and not node.is_leaf:
            assignment[node.id] = int(choices[node.id][assignment[node.parent]])
    return assignment, float(root[root_state])


def _first_best(table: np.ndarray) -> np.ndarray:
    """Per row, the first column within TIE_TOLERANCE of the row maximum."""
    best = table.max(axis=1, keepdims=True)
    return np.argmax(table >= best - TIE_TOLERANCE, axis=1)


class DynamicProgrammingReconstructor(JointReconstructor):
    """
    Exact joint reconstruction by dynamic programming.

    Ambiguous leaf characters are handled by summing over their candidate
    states. Only single-category models are supported.

    Raises
    ------
    AncestralException
        If any model has more than one rate category
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        if not all(m.has_single_rate for m in self.models.values()):
            raise AncestralException(
                "Dynamic programming reconstruction requires a single rate category"
            )

    def reconstruct_site(self, probabilities: Probabilities, site: Site) -> dict[str, str]:
        constraints = self.constrainer.get_constraints(probabilities.tree, site)
        fitzjohn = probabilities.categories(site.site_class)[0].fitzjohn
        assignment, _ = dynamic_programming(probabilities, site, 0, constraints, root_weighted=not fitzjohn)
        return self._named(probabilities, assignment)


class BranchAndBoundReconstructor(JointReconstructor):
    """
    Joint reconstruction by branch-and-bound search.

    Internal nodes are assigned in pre-order. The search starts from the
    dynamic programming answer under the site's most probable rate
    category. A partial assignment is abandoned when the site likelihood
    summed over all completions of it (an upper bound on any single
    completion) falls below the incumbent.
    """

    def reconstruct_site(self, probabilities: Probabilities, site: Site) -> dict[str, str]:
        tree = probabilities.tree
        states = probabilities.states
        base = self.constrainer.get_constraints(tree, site)
        order = [node for node in tree.preorder() if not node.is_leaf]

        def score(assigned: dict[int, int]) -> float:
            constraints = base.copy()
            for node_id, s in assigned.items():
                constraints.add_constraint(tree.nodes[node_id].name, states[s])
            return site_likelihood(probabilities, site, constraints).log_likelihood

        category = site_likelihood(probabilities, site, base).most_probable_category()
        fitzjohn = probabilities.categories(site.site_class)[category].fitzjohn
        seed, _ = dynamic_programming(probabilities, site, category, base, root_weighted=not fitzjohn)

        best_assignment = dict(seed)
        best_score = score(seed)
        if not np.isfinite(best_score):
            raise UnexpectedError(f"Dynamic programming seed has zero likelihood for site {site}")
        best_key = tuple(seed[node.id] for node in order)
        visited = 0

        allowed = [
            [i for i, s in enumerate(states) if s in base.constraint(node.name)]
            for node in order
        ]

        def search(depth: int, assigned: dict[int, int]) -> None:
            nonlocal best_assignment, best_score, best_key, visited
            if depth == len(order):
                value = score(assigned)
                key = tuple(assigned[node.id] for node in order)
                if value > best_score + TIE_TOLERANCE or (
                    value >= best_score - TIE_TOLERANCE and key < best_key
                ):
                    best_assignment, best_score, best_key = dict(assigned), max(value, best_score), key
                return

            node = order[depth]
            first = seed[node.id]
            candidates = [first] + [s for s in allowed[depth] if s != first]
            for s in candidates:
                assigned[node.id] = s
                visited += 1
                bound = score(assigned) if depth + 1 < len(order) else None
                if bound is None or bound >= best_score - TIE_TOLERANCE:
                    search(depth + 1, assigned)
                del assigned[node.id]

        search(0, {})
        logger.debug("Branch and bound visited %d partial assignments for site %s", visited, site)
        return self._named(probabilities, best_assignment)


def joint_reconstructor(
    models: Models,
    alignment: Alignment,
    tree: Tree,
    constrainer: Optional[Constrainer] = None,
    method: JointMethod = JointMethod.AUTO,
    settings: CalculationSettings = DEFAULT_SETTINGS,
) -> JointReconstructor:
    """
    Create a joint reconstructor.

    AUTO chooses dynamic programming whenever every model has a single
    rate category, and branch-and-bound otherwise.
    """
    method = JointMethod(method)
    single = all(m.has_single_rate for m in as_model_map(models).values())
    if method == JointMethod.DP or (method == JointMethod.AUTO and single):
        return DynamicProgrammingReconstructor(models, alignment, tree, constrainer, settings)
    return BranchAndBoundReconstructor(models, alignment, tree, constrainer, settings)
