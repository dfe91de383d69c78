"""
Felsenstein pruning likelihood engine.

For every site and rate category the partial likelihood vectors of the
leaves are pushed up the tree in post-order: each branch multiplies the
parent's vector by ``P @ child``. At the root the vector is combined with
the category's root frequencies, and categories are combined by their
mixture weights. The total log-likelihood sums log site likelihoods
weighted by site multiplicity, over all site classes.
"""

import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional, Union

import numpy as np
from scipy.special import logsumexp

from ..constraints import SiteConstraints
from ..core.numeric import Partials
from ..exceptions import AlignmentException, LikelihoodException
from ..io.sequences import Alignment, Site
from ..io.trees import Tree
from ..parameters import Parameters
from ..settings import DEFAULT_SETTINGS, CalculationSettings
from .probabilities import Models, Probabilities, as_model_map

logger = logging.getLogger(__name__)


@dataclass
class SiteLikelihood:
    """
    Likelihood of one site pattern.

    Attributes
    ----------
    site : Site
        The site pattern
    category_names : tuple[str, ...]
        Rate category names
    weights : ndarray
        Mixture weight of each category
    category_log_likelihoods : ndarray
        log L_c, the likelihood of the site under each category alone
    partials : tuple[list[Partials], ...]
        Per category, the post-pruning partials indexed by node id (only
        kept when requested)
    """

    site: Site
    category_names: tuple[str, ...]
    weights: np.ndarray
    category_log_likelihoods: np.ndarray
    partials: tuple = field(default=(), repr=False)

    @property
    def log_likelihood(self) -> float:
        """log of sum_c w_c * L_c."""
        if np.all(np.isneginf(self.category_log_likelihoods)):
            return -np.inf
        return float(logsumexp(self.category_log_likelihoods, b=self.weights))

    @property
    def likelihood(self) -> float:
        return float(np.exp(self.log_likelihood))

    @property
    def category_posteriors(self) -> np.ndarray:
        """Posterior probability of each rate category given the site."""
        total = self.log_likelihood
        if not np.isfinite(total):
            return np.full(len(self.weights), np.nan)
        with np.errstate(divide="ignore"):
            return np.exp(np.log(self.weights) + self.category_log_likelihoods - total)

    def most_probable_category(self) -> int:
        """Index of the category with the largest posterior; the first one wins ties."""
        with np.errstate(divide="ignore"):
            contribution = np.log(self.weights) + self.category_log_likelihoods
        return int(np.argmax(contribution))

    @property
    def most_probable_category_name(self) -> str:
        return self.category_names[self.most_probable_category()]


def state_mask(states, state_index: Mapping[str, int]) -> np.ndarray:
    """Indicator vector of ``states`` over the model alphabet."""
    mask = np.zeros(len(state_index))
    for s in states:
        i = state_index.get(s)
        if i is not None:
            mask[i] = 1.0
    return mask


def initial_partials(
    probabilities: Probabilities,
    site: Site,
    constraints: Optional[SiteConstraints] = None,
) -> list[Partials]:
    """
    Starting partials indexed by node id.

    Leaves get one for every state their character may represent; internal
    nodes get one for every state their constraint allows (all states when
    unconstrained). A leaf constraint further restricts the leaf.

    Raises
    ------
    LikelihoodException
        If a leaf character matches no model state
    AlignmentException
        If a tree leaf has no character in the site
    """
    tree, index = probabilities.tree, probabilities.state_index
    representation = probabilities.settings.representation
    result = []
    for node in tree.nodes:
        if node.is_leaf:
            mask = state_mask(site.character(node.name), index)
            if not mask.any():
                raise LikelihoodException(
                    f"Character '{site.raw_character(node.name)}' of '{node.name}' "
                    "matches no model state - alignment state not in model?"
                )
            if constraints is not None and constraints.is_constrained(node.name):
                mask *= state_mask(constraints.constraint(node.name), index)
        elif constraints is not None:
            mask = state_mask(constraints.constraint(node.name), index)
        else:
            mask = np.ones(len(index))
        result.append(Partials.from_mask(mask, representation))
    return result


def prune(tree: Tree, matrices: np.ndarray, partials: list[Partials]) -> list[Partials]:
    """
    Run the pruning pass in place over ``partials`` (indexed by node id).

    ``matrices[k]`` is the transition matrix of ``tree.branches[k]``.
    """
    for k, branch in enumerate(tree.branches):
        partials[branch.parent_id].multiply(partials[branch.child_id].propagate(matrices[k]))
    return partials


def root_log_likelihood(root: Partials, frequencies: np.ndarray, fitzjohn: bool) -> float:
    if fitzjohn:
        return root.log_self_weighted()
    return root.log_weighted_sum(frequencies)


def site_likelihood(
    probabilities: Probabilities,
    site: Site,
    constraints: Optional[SiteConstraints] = None,
    keep_partials: bool = False,
) -> SiteLikelihood:
    """
    Likelihood of a single site under every rate category of its class.

    Parameters
    ----------
    probabilities : Probabilities
        Snapshot holding the transition matrices
    site : Site
        Site pattern
    constraints : SiteConstraints, optional
        Restricts the states allowed at internal nodes
    keep_partials : bool
        Keep the per-node partials (needed for reconstruction)
    """
    tree = probabilities.tree
    categories = probabilities.categories(site.site_class)
    start = initial_partials(probabilities, site, constraints)

    logs = np.empty(len(categories))
    kept = []
    for c, category in enumerate(categories):
        partials = prune(tree, probabilities.matrices(site.site_class, c), [p.copy() for p in start])
        logs[c] = root_log_likelihood(partials[tree.root_id], category.frequencies, category.fitzjohn)
        if keep_partials:
            kept.append(partials)

    return SiteLikelihood(
        site=site,
        category_names=tuple(c.name for c in categories),
        weights=np.array([c.weight for c in categories]),
        category_log_likelihoods=logs,
        partials=tuple(kept),
    )


class SiteCalculator:
    """
    Likelihood of one site with per-node state constraints.

    Internal nodes start from their allowed sets, so the result sums only
    over ancestral assignments the constraints admit. A fully constrained
    assignment gives the joint likelihood of the data and that assignment.
    """

    def __init__(self, probabilities: Probabilities, site: Site, constraints: Optional[SiteConstraints] = None):
        self.probabilities = probabilities
        self.site = site
        self.constraints = constraints

    def calculate(self) -> SiteLikelihood:
        return site_likelihood(self.probabilities, self.site, self.constraints)


@dataclass
class LikelihoodResult:
    """
    Result of a likelihood calculation.

    Attributes
    ----------
    log_likelihood : float
        Total log-likelihood (after any missing-data correction)
    class_log_likelihoods : dict
        Log-likelihood of each site class
    site_likelihoods : dict[Site, SiteLikelihood]
        Per unique site pattern
    """

    log_likelihood: float
    class_log_likelihoods: dict
    site_likelihoods: dict = field(repr=False)

    def site(self, site: Site) -> SiteLikelihood:
        try:
            return self.site_likelihoods[site]
        except KeyError:
            raise LikelihoodException(f"No result for site {site}") from None

    def most_probable_categories(self, alignment: Alignment) -> list[int]:
        """Most probable rate category index for each column of ``alignment``."""
        return [self.site(s).most_probable_category() for s in alignment]


class LikelihoodCalculator:
    """
    Total likelihood of an alignment on a tree.

    Parameters
    ----------
    models : Model or mapping of site class to Model
        A single model applies to every site
    alignment : Alignment
        Observed data; its taxa must be exactly the tree's leaves
    tree : Tree
        Tree topology (branch lengths may come from parameters)
    missing : Alignment, optional
        Site patterns that can never be observed. The likelihood is then
        conditioned on observing none of them (Felsenstein 1992)
    settings : CalculationSettings
        Numerical settings

    Raises
    ------
    AlignmentException
        If the taxa and leaves differ or a site class has no model
    """

    def __init__(
        self,
        models: Models,
        alignment: Alignment,
        tree: Tree,
        missing: Optional[Alignment] = None,
        settings: CalculationSettings = DEFAULT_SETTINGS,
    ):
        self.models = as_model_map(models)
        self.alignment = alignment
        self.tree = tree
        self.missing = missing
        self.settings = settings

        check_taxa(alignment, tree)
        if missing is not None:
            check_taxa(missing, tree)
        if list(self.models) != [None] and not alignment.check(self.models):
            raise AlignmentException("Alignment contains site classes with no model")

    def probabilities(self, parameters: Union[Parameters, Mapping[str, float]]) -> Probabilities:
        return Probabilities(self.models, self.tree, parameters, self.settings)

    def calculate(self, parameters: Union[Parameters, Mapping[str, float]]) -> LikelihoodResult:
        """
        Compute the total log-likelihood for the given parameter values.

        Raises
        ------
        LikelihoodException
            If the result is positive or NaN
        """
        return self.calculate_from(self.probabilities(parameters))

    def calculate_from(self, probabilities: Probabilities) -> LikelihoodResult:
        """Compute the total log-likelihood from an existing snapshot."""
        site_results = {}
        totals: dict = {}
        for unique in self.alignment.unique_sites():
            sl = site_likelihood(probabilities, unique)
            site_results[unique] = sl
            totals[unique.site_class] = totals.get(unique.site_class, 0.0) + unique.count * sl.log_likelihood

        if self.missing is not None:
            self._correct_for_missing(probabilities, totals)

        total = float(sum(totals.values()))
        if np.isnan(total):
            raise LikelihoodException("Log likelihood is NaN")
        if total > 0.0:
            raise LikelihoodException("Positive Log Likelihood")

        logger.debug("log likelihood %.6f over %d unique sites", total, len(site_results))
        return LikelihoodResult(total, totals, site_results)

    def site_log_likelihoods(self, parameters: Union[Parameters, Mapping[str, float]]) -> np.ndarray:
        """Log-likelihood of every alignment column, in column order."""
        result = self.calculate(parameters)
        return np.array([result.site(s).log_likelihood for s in self.alignment])

    def _correct_for_missing(self, probabilities: Probabilities, totals: dict) -> None:
        missing_total: dict = {}
        for site in self.missing.unique_sites():
            if site.site_class not in totals:
                continue
            missing_total[site.site_class] = (
                missing_total.get(site.site_class, 0.0)
                + site_likelihood(probabilities, site).likelihood
            )
        for site_class, p_missing in missing_total.items():
            if p_missing >= 1.0:
                raise LikelihoodException(
                    f"Missing data patterns have total probability {p_missing} for class '{site_class}'"
                )
            totals[site_class] -= self.alignment.class_size(site_class) * np.log1p(-p_missing)


def check_taxa(alignment: Alignment, tree: Tree) -> None:
    """Raise AlignmentException unless the alignment's taxa are the tree's leaves."""
    taxa, leaves = set(alignment.taxa), set(tree.leaves)
    if taxa != leaves:
        unknown = sorted(taxa - leaves)
        absent = sorted(leaves - taxa)
        raise AlignmentException(
            f"Alignment taxa do not match tree leaves (not in tree: {unknown}, no data: {absent})"
        )
