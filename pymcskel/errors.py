"""Exceptions raised by pymcskel."""


class MCSkeletonError(Exception):
    """Base class for all pymcskel errors."""


class NumericalError(MCSkeletonError, ArithmeticError):
    """The sparse solve failed (singular, ill-conditioned or non-convergent).

    Fatal for the current contraction run; callers may adjust ``omega_L`` /
    ``omega_H`` and start again.
    """


class TopologyError(MCSkeletonError, ValueError):
    """A mesh operation would break manifoldness, or the input is not manifold."""


class ConfigurationError(MCSkeletonError, ValueError):
    """A parameter value is outside its valid range."""
