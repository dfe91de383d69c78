"""
Unit tests for named parameters.
"""

import math

import pytest

from phylolik.exceptions import ParameterException
from phylolik.parameters import Parameter, Parameters


class TestParameters:

    def test_constructors(self):
        assert not Parameter.fixed("x", 2).estimate
        assert Parameter.estimated("y").value == 1.0
        assert Parameter.estimated_positive("z").lower == 0.0

        bounded = Parameter.estimated_bounded("w", 0.0, 10.0)
        assert bounded.value == pytest.approx(8.0)
        assert bounded.upper == 10.0

    def test_bad_bounds(self):
        with pytest.raises(ParameterException, match="above upper"):
            Parameter.estimated_bounded("w", 2.0, 1.0)

    def test_lookup(self):
        params = Parameters([Parameter.fixed("a", 1.5), Parameter.estimated("b")])

        assert params.value("a") == 1.5
        assert "b" in params
        assert len(params) == 2
        assert params.values() == {"a": 1.5, "b": 1.0}

    def test_unknown_name(self):
        with pytest.raises(ParameterException, match='No parameter with the name "c" exists.'):
            Parameters().get("c")

    def test_duplicate(self):
        params = Parameters([Parameter.fixed("a", 1.0)])
        with pytest.raises(ParameterException, match="already exists"):
            params.add(Parameter.estimated("a"))

    def test_set_value_checks_bounds(self):
        params = Parameters([Parameter.estimated_positive("k")])

        params.set_value("k", 3.0)
        assert params.value("k") == 3.0
        with pytest.raises(ParameterException, match="outside bounds"):
            params.set_value("k", -1.0)

    def test_for_estimation(self):
        params = Parameters([Parameter.fixed("a", 1.0), Parameter.estimated("b"), Parameter.estimated("c")])

        free = params.for_estimation()
        assert [p.name for p in free] == ["b", "c"]
        assert params.number_estimate == 2

    def test_copy_is_independent(self):
        params = Parameters([Parameter.estimated("b")])
        clone = params.copy()
        clone.set_value("b", 5.0)

        assert params.value("b") == 1.0
        assert math.isinf(clone.get("b").upper)

    def test_add_all(self):
        params = Parameters([Parameter.fixed("a", 1.0)])
        params.add_all(Parameters([Parameter.fixed("b", 2.0)]))

        assert list(params.values()) == ["a", "b"]
