"""
Ancestral state reconstruction.

- **Marginal**: posterior state distribution at each internal node
- **Joint**: the single most probable assignment of states to all internal
  nodes, by dynamic programming or branch-and-bound
"""

from phylolik.ancestral.joint import (
    BranchAndBoundReconstructor,
    DynamicProgrammingReconstructor,
    JointMethod,
    JointReconstructor,
    joint_reconstructor,
)
from phylolik.ancestral.marginal import MarginalReconstructor, MarginalResult, MarginalSiteResult

__all__ = [
    "BranchAndBoundReconstructor",
    "DynamicProgrammingReconstructor",
    "JointMethod",
    "JointReconstructor",
    "joint_reconstructor",
    "MarginalReconstructor",
    "MarginalResult",
    "MarginalSiteResult",
]
