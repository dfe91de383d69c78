"""
Core numerical routines for phylogenetic likelihood calculation.

- **Matrix operations**: matrix exponential (Taylor, eigen, scipy) and
  eigendecomposition
- **Partials**: scaled partial likelihood vectors

These are expert-level functions typically not needed by end users.
"""

from phylolik.core.matrix import eigen_decompose, eigen_decompose_rev, matrix_exponential
from phylolik.core.numeric import Partials

__all__ = ["eigen_decompose", "eigen_decompose_rev", "matrix_exponential", "Partials"]
