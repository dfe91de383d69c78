"""
Transition probabilities and the pruning likelihood engine.

- **Probabilities**: immutable per-category, per-branch transition matrices
- **LikelihoodCalculator**: total log-likelihood of an alignment
- **SiteCalculator**: constrained likelihood of a single site
"""

from phylolik.likelihood.calculator import (
    LikelihoodCalculator,
    LikelihoodResult,
    SiteCalculator,
    SiteLikelihood,
)
from phylolik.likelihood.probabilities import Probabilities

__all__ = [
    "LikelihoodCalculator",
    "LikelihoodResult",
    "Probabilities",
    "SiteCalculator",
    "SiteLikelihood",
]
