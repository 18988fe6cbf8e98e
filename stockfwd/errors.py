"""Exception and warning taxonomy for projections.

ConfigurationError is fatal and raised before solving starts. The
ProjectionError family is raised inside a single iteration and captured
into that iteration's outcome by the solver.
"""

from __future__ import annotations

from typing import Optional

from stockfwd.types import FailureKind


class ConfigurationError(ValueError):
    """Malformed control object or configuration."""


class ProjectionError(Exception):
    """A target could not be resolved for one iteration."""

    kind: FailureKind = FailureKind.NO_ROOT_IN_RANGE

    def __init__(
        self,
        message: str,
        year: Optional[int] = None,
        iteration: Optional[int] = None,
        target_index: Optional[int] = None,
    ):
        super().__init__(message)
        self.year = year
        self.iteration = iteration
        self.target_index = target_index


class NoRootInRangeError(ProjectionError):
    """Target value cannot be reached for any multiplier in the bracket."""

    kind = FailureKind.NO_ROOT_IN_RANGE


class ConvergenceError(ProjectionError):
    """Root finding ran out of iterations or missed the tolerance."""

    kind = FailureKind.CONVERGENCE


class NonActionableTimingError(ProjectionError):
    """Target is insensitive to F and there is no later year to act through."""

    kind = FailureKind.NON_ACTIONABLE_TIMING


class AmbiguousCompositionWarning(UserWarning):
    """A deferred target and an explicit target compete for the same year.

    The explicit target is used; the deferred one is dropped.
    """
