"""
Input/Output modules for sequence alignments and phylogenetic trees.

This module provides classes for reading and working with:

- **Sequence alignments**: FASTA and PHYLIP formats, ambiguity codes and
  unique-site compression
- **Phylogenetic trees**: Newick format, stored as an indexed node arena
"""

from phylolik.io.sequences import Alignment, Ambiguous, Site, UniqueSite
from phylolik.io.trees import Branch, Tree, TreeNode

__all__ = ["Alignment", "Ambiguous", "Site", "UniqueSite", "Branch", "Tree", "TreeNode"]
