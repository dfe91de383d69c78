"""
Sequence simulation under substitution models.

Useful for:
- Checking likelihood and reconstruction code against known truth
- Generating test datasets
"""

from .simulator import Simulator

__all__ = [
    'Simulator',
]
