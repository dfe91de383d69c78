"""
phylolik: likelihood core for continuous-time Markov models on phylogenies.

Computes the likelihood of aligned character data on a fixed tree, and
from the same machinery reconstructs ancestral states (marginal or joint)
and simulates new data.

Quick Start
-----------
>>> from phylolik import Alignment, Tree, LikelihoodCalculator
>>> from phylolik.models.dna import hky
>>> model, params = hky(gamma_categories=4)
>>> alignment = Alignment.from_fasta("alignment.fasta")
>>> tree = Tree.from_file("tree.nwk")
>>> result = LikelihoodCalculator(model, alignment, tree).calculate(params)
>>> print(f"lnL = {result.log_likelihood:.4f}")

Ancestral states:

>>> from phylolik import joint_reconstructor
>>> reconstructed = joint_reconstructor(model, alignment, tree).calculate(params)
>>> print(reconstructed.sequence("node1"))
"""

__version__ = "0.1.0"

# Data
from .io.sequences import Alignment, Ambiguous, Site
from .io.trees import Tree

# Models and parameters
from .models.model import Model
from .models.rates import FrequencyType, RateCategory
from .parameters import Parameter, Parameters
from .settings import CalculationSettings

# Engines
from .likelihood.calculator import LikelihoodCalculator, SiteCalculator
from .likelihood.probabilities import Probabilities
from .ancestral.joint import JointMethod, joint_reconstructor
from .ancestral.marginal import MarginalReconstructor
from .simulate.simulator import Simulator

# Constraints
from .constraints import Constrainer, FixedConstraints, NoConstraints, SiteConstraints

__all__ = [
    "Alignment",
    "Ambiguous",
    "Site",
    "Tree",
    "Model",
    "FrequencyType",
    "RateCategory",
    "Parameter",
    "Parameters",
    "CalculationSettings",
    "LikelihoodCalculator",
    "SiteCalculator",
    "Probabilities",
    "JointMethod",
    "joint_reconstructor",
    "MarginalReconstructor",
    "Simulator",
    "Constrainer",
    "FixedConstraints",
    "NoConstraints",
    "SiteConstraints",
]
