"""Forward projection solver.

For every iteration, independently and in chronological order:
  1. Carry the last historical year into the first projection year:
     survivors of observed F and M, plus recruits from its SRP
  2. For each projection year:
       a. Value target (if any): effective value = value, or
          value × realized quantity at rel_year. Solve for the scalar m
          that scales the year's F-at-age pattern so the quantity hits it.
       b. Bounding targets, in order: if the quantity under the current F
          breaks min or max, re-solve to hit that bound exactly.
       c. Commit F (StockTimeline.realize) and set next year's recruits
          from this year's SRP and the recruitment residual.

F targets are solved in closed form (Fbar is linear in m). Other
quantities use Brent's method on q(m) − target over [0, hi], where hi starts
at 1 and doubles up to `max_multiplier` until the target is bracketed.

Iterations share only read-only inputs (control, recruitment model,
assumption slots) and write disjoint slices of the output stock, so they
run on a thread pool without locks. A failed target stops its own iteration
only; the run returns one IterationOutcome per iteration.
"""

from __future__ import annotations

import logging
import threading
import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
from scipy.optimize import brentq

from stockfwd.config import ProjectionConfig, SolverSection
from stockfwd.control import PlannedTarget, ProjectionControl, StepPlan
from stockfwd.errors import (
    AmbiguousCompositionWarning,
    ConfigurationError,
    ConvergenceError,
    NoRootInRangeError,
    NonActionableTimingError,
    ProjectionError,
)
from stockfwd.recruitment import RecruitmentModel
from stockfwd.stock import StockTimeline
from stockfwd.types import (
    IterationOutcome,
    IterationStatus,
    QuantityKind,
    TargetFailure,
    Timing,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# RESULT
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class ProjectionResult:
    """Projected stock plus one outcome per iteration."""
    stock: StockTimeline
    outcomes: List[IterationOutcome] = field(default_factory=list)

    @property
    def failures(self) -> List[TargetFailure]:
        return [o.failure for o in self.outcomes if o.failure is not None]

    @property
    def n_failed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == IterationStatus.FAILED)

    @property
    def n_cancelled(self) -> int:
        return sum(1 for o in self.outcomes if o.status == IterationStatus.CANCELLED)

    @property
    def all_ok(self) -> bool:
        return all(o.ok for o in self.outcomes)

    def outcome(self, iteration: int) -> IterationOutcome:
        return self.outcomes[iteration]


# ═══════════════════════════════════════════════════════════════════════
# SOLVER
# ═══════════════════════════════════════════════════════════════════════

class ForwardSolver:
    """Projects a stock forward to meet a ProjectionControl.

    Args:
        stock: Timeline with at least one projection year (see extend()).
        recruitment: Model predicting recruits from SRP.
        control: Targets to resolve.
        tolerance: Absolute tolerance on the F multiplier.
        max_iterations: Root-find iteration budget per target.
        max_multiplier: Largest F multiplier tried before giving up.
        parallel_workers: 1 for serial, >1 for a thread pool over iterations.
    """

    def __init__(
        self,
        stock: StockTimeline,
        recruitment: RecruitmentModel,
        control: ProjectionControl,
        tolerance: float = 1e-10,
        max_iterations: int = 100,
        max_multiplier: float = 1000.0,
        parallel_workers: int = 1,
    ):
        if tolerance <= 0:
            raise ConfigurationError(f"tolerance must be positive, got {tolerance}")
        if max_iterations < 1:
            raise ConfigurationError(f"max_iterations must be >= 1, got {max_iterations}")
        if max_multiplier <= 0:
            raise ConfigurationError(f"max_multiplier must be positive, got {max_multiplier}")
        if parallel_workers < 1:
            raise ConfigurationError(
                f"parallel_workers must be >= 1, got {parallel_workers}"
            )
        self.stock = stock
        self.recruitment = recruitment
        self.control = control
        self.tolerance = tolerance
        self.max_iterations = max_iterations
        self.max_multiplier = max_multiplier
        self.parallel_workers = parallel_workers

    @classmethod
    def from_config(cls, stock, recruitment, control,
                    section: Optional[SolverSection] = None) -> 'ForwardSolver':
        section = section or SolverSection()
        return cls(stock, recruitment, control,
                   tolerance=section.tolerance,
                   max_iterations=section.max_iterations,
                   max_multiplier=section.max_multiplier,
                   parallel_workers=section.parallel_workers)

    # ── Run ──────────────────────────────────────────────────────────

    def run(self, cancel_event: Optional[threading.Event] = None) -> ProjectionResult:
        """Project every iteration; the input stock is not modified.

        Args:
            cancel_event: Set it to stop starting new iterations. Iterations
                already running finish; the rest report CANCELLED.

        Raises:
            ConfigurationError: If the control or recruitment model does not
                fit the stock. Raised before any solving.
        """
        self.control.validate(self.stock)
        if self.recruitment.n_iters not in (1, self.stock.n_iters):
            raise ConfigurationError(
                f"Recruitment has {self.recruitment.n_iters} iterations, "
                f"stock has {self.stock.n_iters}"
            )

        stock = self.stock.copy()
        stock.stock_n[:, stock.n_hist:, :] = np.nan
        n_iters = stock.n_iters
        logger.info("Projecting %s over %d-%d, %d iterations, %d targets",
                    stock.name or "stock", stock.projection_years[0],
                    stock.projection_years[-1], n_iters, len(self.control))

        if self.parallel_workers == 1 or n_iters == 1:
            outcomes = [self._run_iteration(stock, it, cancel_event)
                        for it in range(n_iters)]
        else:
            with ThreadPoolExecutor(max_workers=self.parallel_workers) as pool:
                futures = [pool.submit(self._run_iteration, stock, it, cancel_event)
                           for it in range(n_iters)]
                outcomes = [f.result() for f in futures]

        seen = set()
        for outcome in outcomes:
            for message in outcome.warnings:
                if message not in seen:
                    seen.add(message)
                    warnings.warn(message, AmbiguousCompositionWarning, stacklevel=2)

        result = ProjectionResult(stock=stock, outcomes=outcomes)
        logger.info("Projection finished: %d ok, %d failed, %d cancelled",
                    n_iters - result.n_failed - result.n_cancelled,
                    result.n_failed, result.n_cancelled)
        return result

    def _run_iteration(self, stock: StockTimeline, iteration: int,
                       cancel_event: Optional[threading.Event]) -> IterationOutcome:
        if cancel_event is not None and cancel_event.is_set():
            return IterationOutcome(iteration, status=IterationStatus.CANCELLED)

        plans, messages = self.control.plan(stock, iteration)
        outcome = IterationOutcome(iteration, warnings=messages)
        try:
            self._carry_in(stock, iteration)
            for year in stock.projection_years:
                self._solve_year(stock, plans[year], iteration)
        except ProjectionError as e:
            e.iteration = iteration
            outcome.status = IterationStatus.FAILED
            outcome.failure = TargetFailure(
                year=e.year, iteration=iteration, target_index=e.target_index,
                kind=e.kind, message=str(e),
            )
            logger.warning("iter %d failed at %s (target %s): %s",
                           iteration, e.year, e.target_index, e)
        return outcome

    # ── Year update ──────────────────────────────────────────────────

    def _carry_in(self, stock: StockTimeline, iteration: int) -> None:
        """Populate the first projection year from the last observed year."""
        last_hist = stock.historical_years[-1]
        stock.advance(last_hist, iteration)
        self._recruit(stock, last_hist, iteration)

    def _recruit(self, stock: StockTimeline, year: int, iteration: int) -> None:
        if year + 1 > stock.years[-1]:
            return
        rec = self.recruitment.predict(stock.srp(year, iteration), year + 1, iteration)
        stock.set_recruits(year + 1, iteration, rec)

    def _solve_year(self, stock: StockTimeline, step: StepPlan, iteration: int) -> None:
        year = step.year
        if step.blocked:
            entry = step.blocked[0]
            raise NonActionableTimingError(entry.reason, year=entry.target.year,
                                           target_index=entry.index)

        f = stock.harvest[:, stock.year_index(year), iteration].copy()
        if step.primary is not None:
            _, value, _ = self.control.values(step.primary.index, iteration)
            target = self._effective(stock, step.primary, value, iteration)
            f = self._resolve(stock, step.primary, f, target, iteration)

        for entry in step.bounds:
            lo, _, hi = self.control.values(entry.index, iteration)
            if lo is not None:
                lo = self._effective(stock, entry, lo, iteration)
                if self._measure(stock, entry, f, iteration) < lo - self._slack(lo):
                    f = self._resolve(stock, entry, f, lo, iteration)
            if hi is not None:
                hi = self._effective(stock, entry, hi, iteration)
                if self._measure(stock, entry, f, iteration) > hi + self._slack(hi):
                    f = self._resolve(stock, entry, f, hi, iteration)

        stock.realize(year, f, iteration)
        self._recruit(stock, year, iteration)

    def _slack(self, value: float) -> float:
        return 1e-9 * max(1.0, abs(value))

    # ── Target evaluation ────────────────────────────────────────────

    def _effective(self, stock: StockTimeline, entry: PlannedTarget,
                   value: float, iteration: int) -> float:
        """Absolute target value, resolving relative targets."""
        t = entry.target
        if t.rel_year is None:
            return value
        ref = stock.quantity(t.quantity, t.rel_year, iteration)
        if not np.isfinite(ref):
            raise NoRootInRangeError(
                f"{t.quantity.name} at rel_year {t.rel_year} is not available",
                year=entry.year, target_index=entry.index,
            )
        return value * ref

    def _measure(self, stock: StockTimeline, entry: PlannedTarget,
                 f: np.ndarray, iteration: int) -> float:
        """Quantity of `entry` if its year were fished at F-at-age `f`."""
        kind = entry.quantity
        year = entry.year
        if kind.timing == Timing.FLASH and not stock.fishes_before_spawning(year, iteration):
            nxt = stock.survivors(year, iteration, harvest=f)
            nxt[0] = self.recruitment.predict(stock.srp(year, iteration, harvest=f),
                                              year + 1, iteration)
            return stock.quantity(kind, year, iteration, harvest=f, next_numbers=nxt)
        return stock.quantity(kind, year, iteration, harvest=f)

    def _shape(self, stock: StockTimeline, f: np.ndarray, year: int,
               iteration: int) -> Optional[np.ndarray]:
        """Selection pattern to scale: current F, else assumed, else last year's."""
        if np.any(f > 0):
            return f
        i = stock.year_index(year)
        for candidate in (stock.harvest[:, i, iteration], stock.harvest[:, i - 1, iteration]):
            if np.any(candidate > 0):
                return candidate.copy()
        return None

    def _resolve(self, stock: StockTimeline, entry: PlannedTarget, f: np.ndarray,
                 target: float, iteration: int) -> np.ndarray:
        """F-at-age for entry.year whose quantity equals `target`."""
        kind = entry.quantity
        year = entry.year
        shape = self._shape(stock, f, year, iteration)
        where = dict(year=year, target_index=entry.index)

        if shape is None:
            zero = np.zeros_like(f)
            if abs(self._measure(stock, entry, zero, iteration) - target) <= self._slack(target):
                return zero
            raise NoRootInRangeError(
                f"{kind.name} target {target:.6g} on {year}: no F-at-age pattern to scale",
                **where,
            )

        if kind == QuantityKind.F:
            fb = stock.fbar(year, iteration, harvest=shape)
            if fb <= 0:
                raise NoRootInRangeError(
                    f"F target {target:.6g} on {year}: pattern has zero F over "
                    f"ages {stock.fbar_range[0]}–{stock.fbar_range[1]}",
                    **where,
                )
            mult = target / fb
            if mult > self.max_multiplier:
                raise NoRootInRangeError(
                    f"F target {target:.6g} on {year} needs multiplier {mult:.6g} "
                    f"> {self.max_multiplier:.6g}",
                    **where,
                )
            logger.debug("iter %d: %d F=%.6g (multiplier %.6g)", iteration, year, target, mult)
            return mult * shape

        def gap(mult: float) -> float:
            return self._measure(stock, entry, mult * shape, iteration) - target

        lo, g_lo = 0.0, gap(0.0)
        if abs(g_lo) <= self._slack(target):
            return np.zeros_like(shape)
        hi = min(1.0, self.max_multiplier)
        g_hi = gap(hi)
        while np.sign(g_hi) == np.sign(g_lo) and hi < self.max_multiplier:
            lo, g_lo = hi, g_hi
            hi = min(2.0 * hi, self.max_multiplier)
            g_hi = gap(hi)
        if g_hi == 0.0:
            return hi * shape
        if np.sign(g_hi) == np.sign(g_lo):
            q0, q_hi = gap(0.0) + target, g_hi + target
            low, high = (q0, q_hi) if kind.increasing else (q_hi, q0)
            needs_more_f = target > high if kind.increasing else target < low
            reason = (f"needs an F multiplier above {hi:.6g}" if needs_more_f
                      else "not reached even at zero F")
            raise NoRootInRangeError(
                f"{kind.name} target {target:.6g} on {year} outside attainable range "
                f"[{low:.6g}, {high:.6g}] for F multipliers 0–{hi:.6g}: {reason}",
                **where,
            )

        try:
            root, info = brentq(gap, lo, hi, xtol=self.tolerance,
                                maxiter=self.max_iterations,
                                full_output=True, disp=False)
        except (RuntimeError, ValueError) as e:
            raise ConvergenceError(
                f"{kind.name} target {target:.6g} on {year}: {e}", **where,
            ) from e
        if not info.converged:
            raise ConvergenceError(
                f"{kind.name} target {target:.6g} on {year}: no convergence after "
                f"{info.iterations} iterations ({info.flag})",
                **where,
            )
        logger.debug("iter %d: %d %s=%.6g (multiplier %.6g, %d iterations)",
                     iteration, year, kind.name, target, root, info.iterations)
        return root * shape


def fwd(
    stock: StockTimeline,
    control: ProjectionControl,
    recruitment: RecruitmentModel,
    config: Optional[ProjectionConfig] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ProjectionResult:
    """Project `stock` to meet `control`, using the config's solver settings."""
    section = config.solver if config is not None else None
    solver = ForwardSolver.from_config(stock, recruitment, control, section)
    return solver.run(cancel_event)
