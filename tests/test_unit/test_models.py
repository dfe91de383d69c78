"""
Unit tests for rate categories, mixture models and nucleotide models.
"""

import numpy as np
import pytest

from phylolik.exceptions import ModelException, ParameterException, RateException
from phylolik.models import dna
from phylolik.models.distributions import discrete_gamma_rates, quasi_stationary, stationary
from phylolik.models.model import Model
from phylolik.models.rates import FrequencyType, RateCategory, compile_entry
from phylolik.parameters import Parameter, Parameters
from phylolik.settings import CalculationSettings, DistributionMethod


class TestRateExpressions:
    """Test compilation of matrix entries."""

    def test_number(self):
        assert compile_entry(2.5)({}) == 2.5

    def test_name(self):
        assert compile_entry("k")({"k": 3.0}) == 3.0

    def test_product(self):
        assert compile_entry("a*pC*2")({"a": 1.5, "pC": 0.5}) == pytest.approx(1.5)

    def test_unknown_parameter(self):
        with pytest.raises(ParameterException, match="'k'"):
            compile_entry("k")({})

    def test_malformed(self):
        with pytest.raises(ModelException, match="Cannot interpret"):
            compile_entry("a+b")

    def test_malformed_in_category(self):
        with pytest.raises(ModelException, match=r"a\+b"):
            RateCategory([[0, "a+b"], ["c", 0]], FrequencyType.EQUAL, "01")


class TestRateCategory:
    """Test rate matrix evaluation."""

    def test_diagonal_derived(self):
        category = RateCategory([[0, "a"], [2.0, 99]], FrequencyType.EQUAL, "01")
        Q, f = category.evaluate({"a": 0.5})

        np.testing.assert_allclose(Q, [[-0.5, 0.5], [2.0, -2.0]])
        np.testing.assert_allclose(f, [0.5, 0.5])

    def test_non_square(self):
        with pytest.raises(RateException, match="square"):
            RateCategory([[0, 1, 1], [1, 0, 1]], FrequencyType.EQUAL, "AB")

    def test_wrong_number_of_states(self):
        with pytest.raises(RateException, match="square"):
            RateCategory([[0, 1], [1, 0]], FrequencyType.EQUAL, "ABC")

    def test_negative_rate(self):
        category = RateCategory([[0, "a"], [1, 0]], FrequencyType.EQUAL, "AB")
        with pytest.raises(RateException, match="negative"):
            category.evaluate({"a": -1.0})

    def test_model_frequencies_normalised(self):
        category = RateCategory([[0, 1], [1, 0]], ["x", 3.0], "AB")
        _, f = category.evaluate({"x": 1.0})

        np.testing.assert_allclose(f, [0.25, 0.75])
        assert category.frequency_type == FrequencyType.MODEL

    def test_frequencies_available_to_rates(self):
        """MODEL frequencies are exposed to rate entries as _<state>."""
        category = RateCategory([[0, "_B"], ["_A", 0]], [1.0, 3.0], "AB")
        Q, _ = category.evaluate({})

        assert Q[0, 1] == pytest.approx(0.75)
        assert Q[1, 0] == pytest.approx(0.25)

    def test_stationary_frequencies(self):
        category = RateCategory([[0, 1.0], [3.0, 0]], FrequencyType.STATIONARY, "AB")
        _, f = category.evaluate({})

        np.testing.assert_allclose(f, [0.75, 0.25])

    def test_multiplier(self):
        category = RateCategory([[0, 1.0], [1.0, 0]], FrequencyType.EQUAL, "AB", multiplier="m")
        Q, _ = category.evaluate({"m": 3.0})

        assert Q[0, 1] == pytest.approx(3.0)

    def test_total_rate(self):
        Q = np.array([[-1.0, 1.0], [3.0, -3.0]])
        assert RateCategory.total_rate(Q, np.array([0.75, 0.25])) == pytest.approx(1.5)


class TestModel:
    """Test mixtures of rate categories."""

    def test_weights_normalised(self):
        slow = RateCategory([[0, 1.0], [1.0, 0]], FrequencyType.EQUAL, "AB", name="slow")
        fast = RateCategory([[0, 5.0], [5.0, 0]], FrequencyType.EQUAL, "AB", name="fast")
        model = Model([(slow, 1.0), (fast, "w")])

        categories = model.evaluate({"w": 3.0})
        assert [c.weight for c in categories] == pytest.approx([0.25, 0.75])
        assert [c.name for c in categories] == ["slow", "fast"]

    def test_rescaled_mean_rate_one(self, gtr_gamma_model, gamma_parameters):
        categories = gtr_gamma_model.evaluate(gamma_parameters)

        mean_rate = sum(c.weight * RateCategory.total_rate(c.Q, c.frequencies) for c in categories)
        assert mean_rate == pytest.approx(1.0)

    def test_no_rescale(self, gtr_category):
        Q, _ = gtr_category.evaluate({})
        (evaluated,) = Model(gtr_category, rescale=False).evaluate({})

        np.testing.assert_allclose(evaluated.Q, Q)

    def test_evaluated_arrays_read_only(self, gtr_model):
        (evaluated,) = gtr_model.evaluate({})
        with pytest.raises(ValueError):
            evaluated.Q[0, 0] = 1.0

    def test_gamma_categories(self, gtr_category, gamma_parameters):
        model = Model.gamma_rates(gtr_category, "g", 4)
        categories = model.evaluate(gamma_parameters)

        assert model.n_categories == 4
        assert not model.has_single_rate
        assert [c.name for c in categories] == [f"Gamma Category {i}" for i in range(1, 5)]
        assert all(c.weight == pytest.approx(0.25) for c in categories)
        rates = [RateCategory.total_rate(c.Q, c.frequencies) for c in categories]
        assert rates == sorted(rates)

    def test_gamma_shape_missing(self, gtr_category):
        model = Model.gamma_rates(gtr_category, "g", 4)
        with pytest.raises(ParameterException, match="'g'"):
            model.evaluate({})

    def test_mismatched_states(self):
        a = RateCategory([[0, 1], [1, 0]], FrequencyType.EQUAL, "AB")
        b = RateCategory([[0, 1], [1, 0]], FrequencyType.EQUAL, "BA")
        c = RateCategory([[0, 1, 1], [1, 0, 1], [1, 1, 0]], FrequencyType.EQUAL, "ABC")

        with pytest.raises(ModelException, match="different states"):
            Model([(a, 1), (b, 1)])
        with pytest.raises(ModelException, match="number of states"):
            Model([(a, 1), (c, 1)])

    def test_fitzjohn_flag(self):
        category = RateCategory([[0, 1.0], [2.0, 0]], FrequencyType.FITZJOHN, "AB")
        (evaluated,) = Model(category).evaluate({})

        assert evaluated.fitzjohn
        np.testing.assert_allclose(evaluated.frequencies, [2 / 3, 1 / 3])


class TestDistributions:
    """Test stationary distributions and discrete Gamma rates."""

    @pytest.mark.parametrize("method", [DistributionMethod.EIGEN, DistributionMethod.REPEAT])
    def test_stationary(self, method, gtr_category):
        Q, f = gtr_category.evaluate({})

        pi = stationary(Q, method)
        np.testing.assert_allclose(pi @ Q, 0.0, atol=1e-8)
        assert pi.sum() == pytest.approx(1.0)

    def test_stationary_methods_agree(self):
        Q = np.array([[-1.0, 0.6, 0.4], [0.2, -0.5, 0.3], [0.7, 0.1, -0.8]])

        np.testing.assert_allclose(
            stationary(Q, DistributionMethod.REPEAT),
            stationary(Q, DistributionMethod.EIGEN),
            rtol=1e-6,
        )

    def test_quasi_stationary_methods_agree(self):
        # State 0 absorbs
        Q = np.array([
            [0.0, 0.0, 0.0],
            [0.3, -1.0, 0.7],
            [0.1, 0.5, -0.6],
        ])

        eigen = quasi_stationary(Q, DistributionMethod.EIGEN)
        repeat = quasi_stationary(Q, DistributionMethod.REPEAT)

        assert eigen[0] == 0.0
        assert eigen.sum() == pytest.approx(1.0)
        np.testing.assert_allclose(repeat, eigen, rtol=1e-6, atol=1e-9)

    def test_gamma_rates_mean_one(self):
        rates = discrete_gamma_rates(0.5, 4)

        assert rates.mean() == pytest.approx(1.0)
        assert np.all(np.diff(rates) > 0)

    def test_gamma_single_category(self):
        np.testing.assert_allclose(discrete_gamma_rates(0.3, 1), [1.0])

    def test_gamma_known_values(self):
        """Yang (1994) mean rates for alpha = 0.5, four categories."""
        np.testing.assert_allclose(
            discrete_gamma_rates(0.5, 4),
            [0.0334, 0.2519, 0.8203, 2.8944],
            atol=1e-4,
        )

    def test_gamma_invalid_shape(self):
        with pytest.raises(ParameterException, match="positive"):
            discrete_gamma_rates(0.0, 4)


class TestNucleotideModels:
    """Test the ready-made DNA models."""

    @pytest.mark.parametrize("name", list(dna.DNA_MODELS))
    def test_default_parameters_evaluate(self, name):
        model, params = dna.DNA_MODELS[name]()
        (category,) = model.evaluate(params)

        assert model.states == ("T", "C", "A", "G")
        np.testing.assert_allclose(category.Q.sum(axis=1), 0.0, atol=1e-12)
        assert RateCategory.total_rate(category.Q, category.frequencies) == pytest.approx(1.0)

    def test_kimura_transitions(self):
        model, params = dna.kimura()
        params.set_value("k", 4.0)
        (category,) = model.evaluate(params)

        # T<->C is a transition, T<->A a transversion
        assert category.Q[0, 1] / category.Q[0, 2] == pytest.approx(4.0)

    def test_hky_frequencies(self):
        model, params = dna.hky()
        params.set_value("pA", 2.0)
        (category,) = model.evaluate(params)

        np.testing.assert_allclose(category.frequencies, [0.2, 0.2, 0.4, 0.2])
        np.testing.assert_allclose(category.frequencies @ category.Q, 0.0, atol=1e-12)

    def test_gtr_parameters(self):
        _, params = dna.gtr()
        assert [p.name for p in params.for_estimation()] == ["a", "b", "c", "d", "e", "pC", "pA", "pG"]

    def test_gamma_variant(self):
        model, params = dna.jukes_cantor(gamma_categories=4)

        assert "g" in params
        assert model.n_categories == 4

    def test_jukes_cantor_has_no_free_parameters(self):
        _, params = dna.jukes_cantor()
        assert params.number_estimate == 0

    def test_settings_validation(self):
        with pytest.raises(ValueError):
            CalculationSettings(taylor_terms=0)
        assert CalculationSettings(distribution="repeat").distribution == DistributionMethod.REPEAT
