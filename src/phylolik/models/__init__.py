"""
Substitution models.

- **RateCategory**: a rate matrix over an ordered state alphabet plus a root
  frequency policy
- **Model**: a weighted mixture of rate categories (e.g. discrete Gamma)
- **dna**: ready-made nucleotide models (JC, K80, F81, HKY, GTR)
"""

from phylolik.models.model import EvaluatedCategory, Model
from phylolik.models.rates import FrequencyType, RateCategory

__all__ = ["EvaluatedCategory", "Model", "FrequencyType", "RateCategory"]
