"""
Tests for marginal ancestral reconstruction.
"""

import numpy as np
import pytest

from phylolik.ancestral.marginal import MarginalReconstructor
from phylolik.constraints import FixedConstraints, SiteConstraints
from phylolik.exceptions import AncestralException, LikelihoodException
from phylolik.io.sequences import Alignment, Site
from phylolik.likelihood.calculator import SiteCalculator
from phylolik.likelihood.probabilities import Probabilities
from phylolik.models import dna
from phylolik.models.model import Model
from phylolik.models.rates import FrequencyType, RateCategory


def brute_force_posterior(probabilities, site, node):
    """P(node = s | data) from likelihoods with the node fixed to each state."""
    states = probabilities.states
    fixed = []
    for s in states:
        constraints = SiteConstraints(states)
        constraints.add_constraint(node, s)
        fixed.append(SiteCalculator(probabilities, site, constraints).calculate().likelihood)
    fixed = np.array(fixed)
    return fixed / fixed.sum()


class TestMarginal:

    def test_rows_sum_to_one(self, gtr_gamma_model, primate_alignment, primate_tree, gamma_parameters):
        result = MarginalReconstructor(gtr_gamma_model, primate_alignment, primate_tree).calculate(gamma_parameters)

        for site in primate_alignment:
            site_result = result.site_result(site)
            assert sorted(site_result.nodes) == ["A", "B", "C"]
            for node in site_result.nodes:
                row = site_result.probabilities(node)
                assert row.sum() == pytest.approx(1.0)
                assert np.all(row >= 0)

    @pytest.mark.parametrize("gamma", [False, True])
    def test_matches_brute_force(self, gamma, gtr_model, gtr_gamma_model, primate_alignment, primate_tree,
                                 gamma_parameters):
        model = gtr_gamma_model if gamma else gtr_model
        probs = Probabilities(model, primate_tree, gamma_parameters)
        reconstructor = MarginalReconstructor(model, primate_alignment, primate_tree)

        for site in primate_alignment.unique_sites():
            site_result = reconstructor.reconstruct_site(probs, site)
            for node in ["A", "B", "C"]:
                np.testing.assert_allclose(
                    site_result.probabilities(node),
                    brute_force_posterior(probs, site, node),
                    atol=1e-10,
                )

    def test_fitzjohn_root(self, small_tree):
        category = RateCategory([[0, 1.0], [3.0, 0]], FrequencyType.FITZJOHN, "01")
        model = Model(category)
        site = Site({"A": "0", "B": "1", "C": "1"})
        probs = Probabilities(model, small_tree, {})

        site_result = MarginalReconstructor(model, Alignment([site]), small_tree).reconstruct_site(probs, site)

        # With the root weighted by its own conditional likelihoods, P(root = s) ∝ L_s^2
        fixed = []
        for s in "01":
            constraints = SiteConstraints("01")
            constraints.add_constraint("root", s)
            fixed.append(SiteCalculator(probs, site, constraints).calculate().likelihood)
        squared = np.array(fixed) ** 2
        np.testing.assert_allclose(site_result.probabilities("root"), squared / squared.sum(), atol=1e-12)
        assert site_result.probabilities("AB").sum() == pytest.approx(1.0)

    def test_constraints(self, gtr_model, primate_alignment, primate_tree):
        constraints = SiteConstraints("TCAG")
        constraints.add_constraint("B", ["C", "A"])
        result = MarginalReconstructor(
            gtr_model, primate_alignment, primate_tree, FixedConstraints(constraints)
        ).calculate({})

        for site in primate_alignment.unique_sites():
            site_result = result.site_result(site)
            assert site_result.probability("B", "T") == 0.0
            assert site_result.probability("B", "G") == 0.0
            assert site_result.probability("B", "C") + site_result.probability("B", "A") == pytest.approx(1.0)

    def test_impossible_constraints(self, gtr_model, primate_tree):
        site = Site({t: "T" for t in primate_tree.leaves})
        constraints = SiteConstraints("TCAG")
        constraints.add_constraint("Gibbon", "G")
        reconstructor = MarginalReconstructor(
            gtr_model, Alignment([site]), primate_tree, FixedConstraints(constraints)
        )

        with pytest.raises(AncestralException, match="zero likelihood"):
            reconstructor.calculate({})

    def test_reconstructed_alignment(self, gtr_model, primate_alignment, primate_tree):
        result = MarginalReconstructor(gtr_model, primate_alignment, primate_tree).calculate({})

        aln = result.alignment
        assert aln.n_sites == primate_alignment.n_sites
        assert aln.sequence("Gibbon") == primate_alignment.sequence("Gibbon")
        for i, site in enumerate(primate_alignment):
            site_result = result.site_result(site)
            assert aln[i].raw_character("B") == site_result.most_probable_state("B")

    def test_unknown_node_and_state(self, gtr_model, primate_alignment, primate_tree):
        result = MarginalReconstructor(gtr_model, primate_alignment, primate_tree).calculate({})
        site_result = result.site_result(primate_alignment[0])

        with pytest.raises(LikelihoodException):
            site_result.probabilities("Human")
        with pytest.raises(LikelihoodException):
            site_result.probability("A", "X")
        with pytest.raises(LikelihoodException):
            result.site_result(Site({"Nobody": "T"}))


class TestMarginalDeepTree:

    def test_posteriors_finite_on_deep_tree(self, caterpillar_tree, caterpillar_alignment):
        """The outside pass stays finite on a tree deep enough to underflow plain doubles."""
        model, params = dna.jukes_cantor()
        result = MarginalReconstructor(model, caterpillar_alignment, caterpillar_tree).calculate(params)

        for site in caterpillar_alignment:
            site_result = result.site_result(site)
            assert len(site_result.nodes) == 399
            for node in ("N1", "N200", "N399"):
                row = site_result.probabilities(node)
                assert np.all(np.isfinite(row))
                assert row.sum() == pytest.approx(1.0, abs=1e-9)
