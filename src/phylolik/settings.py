"""
Calculation settings.

Numerical choices are carried explicitly by every calculator instead of
living in module-level switches, so evaluations using different settings
never interfere with each other.
"""

from dataclasses import dataclass
from enum import Enum


class ExpMethod(str, Enum):
    """Matrix exponentiation strategy."""
    TAYLOR = "taylor"
    EIGEN = "eigen"
    SCIPY = "scipy"


class DistributionMethod(str, Enum):
    """How stationary and quasi-stationary distributions are computed."""
    EIGEN = "eigen"
    REPEAT = "repeat"


class Representation(str, Enum):
    """Numeric representation of partial likelihoods."""
    STANDARD = "standard"
    SCALED = "scaled"


@dataclass(frozen=True)
class CalculationSettings:
    """
    Numerical settings shared by probability, likelihood and simulation code.

    Attributes
    ----------
    exponentiation : ExpMethod
        Matrix exponential strategy used for transition probabilities
    taylor_terms : int
        Number of terms of the truncated Taylor series
    force_square : int
        Minimum number of squarings applied by the Taylor method
    distribution : DistributionMethod
        Method for stationary / quasi-stationary root frequencies
    representation : Representation
        STANDARD uses plain doubles, SCALED rescales partial likelihoods
        at every node and carries the log of the scale factor
    """

    exponentiation: ExpMethod = ExpMethod.TAYLOR
    taylor_terms: int = 12
    force_square: int = 0
    distribution: DistributionMethod = DistributionMethod.EIGEN
    representation: Representation = Representation.SCALED

    def __post_init__(self):
        if self.taylor_terms < 1:
            raise ValueError(f"taylor_terms must be at least 1, got {self.taylor_terms}")
        if self.force_square < 0:
            raise ValueError(f"force_square must be non-negative, got {self.force_square}")
        # Accept plain strings, e.g. from the CLI
        object.__setattr__(self, "exponentiation", ExpMethod(self.exponentiation))
        object.__setattr__(self, "distribution", DistributionMethod(self.distribution))
        object.__setattr__(self, "representation", Representation(self.representation))


DEFAULT_SETTINGS = CalculationSettings()
