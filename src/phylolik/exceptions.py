"""
Exception hierarchy for phylolik.

Every recoverable, input-related failure raised by the library derives from
:class:`PhylolikError`. :class:`UnexpectedError` is reserved for internal
logic errors and is intentionally outside that hierarchy.
"""


class PhylolikError(Exception):
    """Base class for checked phylolik errors."""


class ModelException(PhylolikError):
    """Inconsistent or malformed model composition."""


class RateException(PhylolikError):
    """Malformed, non-square or otherwise invalid rate matrix."""


class TreeException(PhylolikError, ValueError):
    """Structural problem with a tree or its branch lengths."""


class ParameterException(PhylolikError):
    """Missing parameter or value outside its domain."""


class LikelihoodException(PhylolikError):
    """Undefined state or node requested during a likelihood calculation."""


class AlignmentException(PhylolikError, ValueError):
    """Site or alignment structural inconsistency."""


class AncestralException(PhylolikError):
    """Ancestral reconstruction cannot be carried out as requested."""


class ConstraintException(PhylolikError):
    """Constraint refers to a state outside the model alphabet."""


class SimulationException(PhylolikError):
    """Simulation could not produce an admissible site."""


class UnexpectedError(RuntimeError):
    """
    Internal logic error.

    Raised where a failure should be impossible given validated inputs, so
    it signals a bug rather than bad input.
    """
