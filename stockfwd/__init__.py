"""stockfwd: short- and medium-term forecasting for age-structured fish stocks.

Forward projection of an age-structured stock under a set of management
targets:
  - Stock timeline with numbers, F, M, weights, maturity and spawning fractions
  - Future-assumption generation (carry-forward and stf-style averaging)
  - Stock-recruitment prediction with optional multiplicative residuals
  - Projection control: absolute, relative and min/max bounded targets on
    F, catch, SSB, biomass and SRP
  - Per-iteration root finding for the F multiplier that hits each target
"""

__version__ = "0.1.0"

from stockfwd.control import ProjectionControl, Target
from stockfwd.errors import (
    AmbiguousCompositionWarning,
    ConfigurationError,
    ConvergenceError,
    NoRootInRangeError,
    NonActionableTimingError,
    ProjectionError,
)
from stockfwd.solver import ForwardSolver, ProjectionResult, fwd
from stockfwd.stock import StockTimeline
from stockfwd.types import QuantityKind, Timing

__all__ = [
    "AmbiguousCompositionWarning",
    "ConfigurationError",
    "ConvergenceError",
    "ForwardSolver",
    "NoRootInRangeError",
    "NonActionableTimingError",
    "ProjectionControl",
    "ProjectionError",
    "ProjectionResult",
    "QuantityKind",
    "StockTimeline",
    "Target",
    "Timing",
    "fwd",
]
