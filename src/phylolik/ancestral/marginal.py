"""
Marginal ancestral state reconstruction.

The pruning pass gives, for every node, the likelihood of the data below it
given each state. An outside pass from the root down gives the likelihood of
all remaining data given each state. Their product, summed over rate
categories with the mixture weights, is proportional to the posterior
probability of each state at the node.
"""

import logging
from typing import Mapping, Optional, Union

import numpy as np
from scipy.special import logsumexp

from ..constraints import Constrainer, NoConstraints
from ..core.numeric import Partials
from ..exceptions import AncestralException, LikelihoodException
from ..io.sequences import Alignment, Site
from ..io.trees import Tree
from ..likelihood.calculator import check_taxa, initial_partials, prune
from ..likelihood.probabilities import Models, Probabilities, as_model_map
from ..parameters import Parameters
from ..settings import DEFAULT_SETTINGS, CalculationSettings

logger = logging.getLogger(__name__)


class MarginalSiteResult:
    """
    Posterior state probabilities at each internal node for one site pattern.

    Parameters
    ----------
    site : Site
        Observed site pattern
    states : tuple[str, ...]
        Model state alphabet
    probabilities : dict[str, ndarray]
        Posterior distribution over states for each internal node
    """

    def __init__(self, site: Site, states: tuple[str, ...], probabilities: dict[str, np.ndarray]):
        self.site = site
        self.states = states
        self._index = {s: i for i, s in enumerate(states)}
        self._probabilities = probabilities

    @property
    def nodes(self) -> list[str]:
        return list(self._probabilities)

    def probabilities(self, node: str) -> np.ndarray:
        try:
            return self._probabilities[node]
        except KeyError:
            raise LikelihoodException(f"No reconstruction for node '{node}'") from None

    def probability(self, node: str, state: str) -> float:
        """Posterior probability that ``node`` was in ``state``."""
        p = self.probabilities(node)
        if state not in self._index:
            raise LikelihoodException(f"State '{state}' is not in the model")
        return float(p[self._index[state]])

    def most_probable_state(self, node: str) -> str:
        """Maximum a posteriori state; the first state in alphabet order wins ties."""
        return self.states[int(np.argmax(self.probabilities(node)))]

    @property
    def reconstructed_site(self) -> Site:
        """The observed site extended with the MAP state of every internal node."""
        characters = dict(self.site.characters)
        characters.update({node: self.most_probable_state(node) for node in self._probabilities})
        return Site(characters, self.site.site_class, self.site.ambiguous, self.site.site_id)

    def __repr__(self) -> str:
        return f"MarginalSiteResult(site={self.site}, nodes={self.nodes})"


class MarginalResult:
    """Marginal reconstruction of a whole alignment."""

    def __init__(self, alignment: Alignment, site_results: dict[Site, MarginalSiteResult]):
        self._alignment = alignment
        self.site_results = site_results

    def site_result(self, site: Site) -> MarginalSiteResult:
        try:
            return self.site_results[site]
        except KeyError:
            raise LikelihoodException(f"No reconstruction for site {site}") from None

    @property
    def alignment(self) -> Alignment:
        """Observed alignment with MAP internal states added to every column."""
        return Alignment([self.site_result(s).reconstructed_site for s in self._alignment])


class MarginalReconstructor:
    """
    Posterior distribution of ancestral states at every internal node.

    Parameters
    ----------
    models : Model or mapping of site class to Model
    alignment : Alignment
    tree : Tree
    constrainer : Constrainer, optional
        States a constraint disallows get posterior probability zero
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

    def calculate(self, parameters: Union[Parameters, Mapping[str, float]]) -> MarginalResult:
        probabilities = Probabilities(self.models, self.tree, parameters, self.settings)
        results = {
            site: self.reconstruct_site(probabilities, site)
            for site in self.alignment.unique_sites()
        }
        logger.debug("Marginal reconstruction of %d unique sites", len(results))
        return MarginalResult(self.alignment, results)

    def reconstruct_site(self, probabilities: Probabilities, site: Site) -> MarginalSiteResult:
        """
        Posterior state probabilities at the internal nodes for one site.

        Raises
        ------
        AncestralException
            If the constraints leave the site with zero likelihood
        """
        tree = probabilities.tree
        constraints = self.constrainer.get_constraints(tree, site)
        start = initial_partials(probabilities, site, constraints)
        internal = [n for n in tree.nodes if not n.is_leaf]

        # Per category, per internal node: log(weight * down * outside)
        contributions = []
        for c, category in enumerate(probabilities.categories(site.site_class)):
            matrices = probabilities.matrices(site.site_class, c)
            down = prune(tree, matrices, [p.copy() for p in start])
            outside = self._outside(tree, matrices, start, down, category.frequencies, category.fitzjohn)
            with np.errstate(divide="ignore"):
                log_weight = np.log(category.weight)
            contributions.append({
                n.id: log_weight + down[n.id].log_values() + outside[n.id].log_values()
                for n in internal
            })

        result = {}
        for node in internal:
            log_joint = logsumexp(np.array([c[node.id] for c in contributions]), axis=0)
            total = logsumexp(log_joint)
            if not np.isfinite(total):
                raise AncestralException(f"Site {site} has zero likelihood under the constraints")
            result[node.name] = np.exp(log_joint - total)
        return MarginalSiteResult(site, probabilities.states, result)

    @staticmethod
    def _outside(tree: Tree, matrices: np.ndarray, start: list[Partials], down: list[Partials],
                 frequencies: np.ndarray, fitzjohn: bool) -> list[Partials]:
        """Likelihood of the data outside each node's subtree, given the node's state."""
        representation = start[0].representation
        upward = {}
        for k, branch in enumerate(tree.branches):
            upward[branch.child_id] = down[branch.child_id].propagate(matrices[k])

        outside: list[Optional[Partials]] = [None] * len(tree.nodes)
        root = down[tree.root_id]
        if fitzjohn:
            total = root.values.sum()
            prior = root.values / total if total > 0 else np.zeros_like(root.values)
        else:
            prior = np.asarray(frequencies, dtype=float)
        outside[tree.root_id] = Partials(prior.copy(), 0.0, representation)

        # Reverse post-order visits every parent before its children
        for k in range(len(tree.branches) - 1, -1, -1):
            branch = tree.branches[k]
            above = outside[branch.parent_id].copy()
            above.multiply(start[branch.parent_id])
            for sibling in tree.nodes[branch.parent_id].children:
                if sibling != branch.child_id:
                    above.multiply(upward[sibling])
            outside[branch.child_id] = above.propagate_down(matrices[k])
        return outside
