"""Projection control: the ordered set of targets a projection must hit.

Each target names a year, a quantity and either a value (absolute, or a
multiplier of the same quantity realized at `rel_year`) or min/max bounds.
Values may differ per iteration through the (n_targets, 3, n_iters) `iters`
array, whose middle axis is BoundColumn (MIN, VALUE, MAX).

Ordering is enforced here, not left to the caller: targets are sorted by
year and, within a year, value targets come before bounding targets.
Insertion order is only kept within each phase.

Spawning-timed targets on a year with no fishing before spawning cannot be
moved by that year's F. `plan()` defers them to the next year's F and
spawning event, and marks them non-actionable when no such year exists.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from stockfwd.errors import ConfigurationError
from stockfwd.types import BoundColumn, QuantityKind, Timing

logger = logging.getLogger(__name__)


@dataclass
class Target:
    """One row of a projection control."""
    year: int
    quantity: QuantityKind
    value: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None
    rel_year: Optional[int] = None

    def __post_init__(self):
        self.quantity = QuantityKind.parse(self.quantity)
        self.year = int(self.year)
        if self.rel_year is not None:
            self.rel_year = int(self.rel_year)


@dataclass
class PlannedTarget:
    """A target placed on the year whose F resolves it."""
    index: int                 # position in the (sorted) control
    target: Target
    year: int                  # year whose F is solved
    deferred: bool = False
    actionable: bool = True
    reason: str = ""

    @property
    def quantity(self) -> QuantityKind:
        return self.target.quantity


@dataclass
class StepPlan:
    """Targets resolved on one year, in application order."""
    year: int
    primary: Optional[PlannedTarget] = None
    bounds: List[PlannedTarget] = field(default_factory=list)
    blocked: List[PlannedTarget] = field(default_factory=list)


class ProjectionControl:
    """Ordered projection targets with optional per-iteration values.

    Args:
        targets: Target objects or dicts with Target's fields.
        iters: Optional (n_targets, 3, n_iters) array, in the order the
            targets were given; overrides the scalar value/min/max fields.

    Raises:
        ConfigurationError: Empty control, unknown quantity or a malformed
            iters array.
    """

    def __init__(self, targets: Sequence[Union[Target, dict]], iters=None):
        rows = [t if isinstance(t, Target) else Target(**t) for t in targets]
        if not rows:
            raise ConfigurationError("A projection control needs at least one target")

        if iters is None:
            arr = np.full((len(rows), 3, 1), np.nan)
            for i, t in enumerate(rows):
                for col, v in ((BoundColumn.MIN, t.min), (BoundColumn.VALUE, t.value),
                               (BoundColumn.MAX, t.max)):
                    if v is not None:
                        arr[i, col, 0] = float(v)
        else:
            arr = np.array(iters, dtype=np.float64)
            if arr.ndim == 2:
                arr = arr[:, :, None]
            if arr.ndim != 3 or arr.shape[:2] != (len(rows), 3):
                raise ConfigurationError(
                    f"iters must have shape ({len(rows)}, 3, n_iters), got {arr.shape}"
                )

        bound = np.all(np.isnan(arr[:, BoundColumn.VALUE, :]), axis=1)
        order = sorted(range(len(rows)), key=lambda i: (rows[i].year, bool(bound[i])))
        self._targets: List[Target] = [rows[i] for i in order]
        self.iters: np.ndarray = arr[order]

    @classmethod
    def from_records(cls, records: Iterable[dict], iters=None) -> 'ProjectionControl':
        """Build from plain dicts (e.g. the `targets` list of a YAML config)."""
        rows = []
        for i, rec in enumerate(records):
            if not isinstance(rec, dict):
                raise ConfigurationError(f"targets[{i}] must be a mapping, got {rec!r}")
            unknown = set(rec) - {'year', 'quantity', 'value', 'min', 'max', 'rel_year'}
            if unknown:
                raise ConfigurationError(f"targets[{i}] has unknown keys {sorted(unknown)}")
            if 'year' not in rec or 'quantity' not in rec:
                raise ConfigurationError(f"targets[{i}] needs 'year' and 'quantity'")
            rows.append(Target(**rec))
        return cls(rows, iters)

    # ── Access ───────────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._targets)

    def __iter__(self) -> Iterator[Target]:
        return iter(self._targets)

    def __getitem__(self, index: int) -> Target:
        return self._targets[index]

    @property
    def targets(self) -> List[Target]:
        return list(self._targets)

    @property
    def n_iters(self) -> int:
        return self.iters.shape[2]

    @property
    def years(self) -> List[int]:
        return sorted({t.year for t in self._targets})

    def is_bound(self, index: int) -> bool:
        """True for min/max-only (bounding) targets."""
        return bool(np.all(np.isnan(self.iters[index, BoundColumn.VALUE, :])))

    def values(self, index: int, iteration: int) -> Tuple[Optional[float], ...]:
        """(min, value, max) for one iteration; None where unset."""
        col = self.iters[index, :, 0 if self.n_iters == 1 else iteration]
        return tuple(None if np.isnan(v) else float(v) for v in col)

    def set_iter_values(self, index: int, column: BoundColumn, values) -> None:
        """Set one column of a target for every iteration.

        A single-iteration control grows to len(values) iterations.
        """
        vals = np.atleast_1d(np.asarray(values, dtype=np.float64))
        if vals.size > 1 and self.n_iters == 1:
            self.iters = np.repeat(self.iters, vals.size, axis=2)
        if vals.size not in (1, self.n_iters):
            raise ConfigurationError(
                f"Expected 1 or {self.n_iters} values, got {vals.size}"
            )
        self.iters[index, BoundColumn(column), :] = vals

    # ── Validation ───────────────────────────────────────────────────

    def validate(self, stock) -> None:
        """Check the control against a stock before any solving.

        Raises:
            ConfigurationError: On the first malformed target found.
        """
        if self.n_iters not in (1, stock.n_iters):
            raise ConfigurationError(
                f"Control has {self.n_iters} iterations, stock has {stock.n_iters}"
            )
        if stock.first_projection_year is None:
            raise ConfigurationError("Stock has no projection years; extend() it first")

        primary_years: Dict[int, int] = {}
        deferred_years: Dict[int, int] = {}
        for i, t in enumerate(self._targets):
            where = f"target {i} ({t.quantity.name} {t.year})"
            if not stock.has_year(t.year) or not stock.is_future(t.year):
                raise ConfigurationError(
                    f"{where}: year outside projection window "
                    f"{stock.projection_years[0]}–{stock.projection_years[-1]}"
                )

            present = {}
            for col in BoundColumn:
                nan = np.isnan(self.iters[i, col, :])
                if nan.any() and not nan.all():
                    raise ConfigurationError(
                        f"{where}: {col.name.lower()} set for some iterations only"
                    )
                present[col] = not nan.any()
            has_bounds = present[BoundColumn.MIN] or present[BoundColumn.MAX]
            if not present[BoundColumn.VALUE] and not has_bounds:
                raise ConfigurationError(f"{where}: needs a value or a min/max bound")
            if present[BoundColumn.VALUE] and has_bounds:
                raise ConfigurationError(
                    f"{where}: value and min/max on one record; "
                    f"give bounds as a separate target"
                )
            if np.any(self.iters[i][~np.isnan(self.iters[i])] < 0):
                raise ConfigurationError(f"{where}: values must be non-negative")
            if present[BoundColumn.MIN] and present[BoundColumn.MAX]:
                if np.any(self.iters[i, BoundColumn.MIN] > self.iters[i, BoundColumn.MAX]):
                    raise ConfigurationError(f"{where}: min exceeds max")

            if t.rel_year is not None:
                if t.rel_year >= t.year:
                    raise ConfigurationError(
                        f"{where}: rel_year {t.rel_year} is not resolved before {t.year}"
                    )
                if not stock.has_year(t.rel_year):
                    raise ConfigurationError(
                        f"{where}: rel_year {t.rel_year} outside the timeline"
                    )

            if present[BoundColumn.VALUE]:
                # Targets every iteration defers are checked per iteration by plan()
                always_deferred = t.quantity.spawning_timed and not any(
                    stock.fishes_before_spawning(t.year, it) for it in range(stock.n_iters)
                )
                seen = deferred_years if always_deferred else primary_years
                if t.year in seen:
                    raise ConfigurationError(
                        f"{where}: year {t.year} already has value target {seen[t.year]}"
                    )
                seen[t.year] = i

    # ── Per-iteration plan ───────────────────────────────────────────

    def plan(self, stock, iteration: int) -> Tuple[Dict[int, StepPlan], List[str]]:
        """Place every target on the year whose F resolves it.

        Returns:
            ({year: StepPlan} for every projection year, ambiguity messages).
        """
        plans = {y: StepPlan(y) for y in stock.projection_years}
        last = stock.years[-1]
        deferred: Dict[int, PlannedTarget] = {}
        messages: List[str] = []

        for idx, t in enumerate(self._targets):
            entry = PlannedTarget(idx, t, year=t.year)
            fishes_first = stock.fishes_before_spawning(t.year, iteration)
            if t.quantity.spawning_timed and not fishes_first:
                nxt = t.year + 1
                if nxt > last:
                    entry.actionable = False
                    entry.reason = (f"{t.quantity.name} on {t.year}: no fishing before "
                                    f"spawning and {t.year} is the last year")
                elif not stock.fishes_before_spawning(nxt, iteration):
                    entry.actionable = False
                    entry.reason = (f"{t.quantity.name} on {t.year}: no fishing before "
                                    f"spawning in {t.year} or {nxt}")
                else:
                    entry.year = nxt
                    entry.deferred = True
            elif t.quantity.timing == Timing.FLASH and t.year == last and not fishes_first:
                entry.actionable = False
                entry.reason = (f"{t.quantity.name} on {t.year}: flash quantity needs "
                                f"the following year")

            if not entry.actionable:
                plans[t.year].blocked.append(entry)
            elif self.is_bound(idx):
                plans[entry.year].bounds.append(entry)
            elif entry.deferred:
                deferred[entry.year] = entry
            else:
                plans[entry.year].primary = entry

        for year, entry in deferred.items():
            step = plans[year]
            if step.primary is not None:
                messages.append(
                    f"Target {entry.index} ({entry.quantity.name} {entry.target.year}) "
                    f"deferred to {year} conflicts with target {step.primary.index} "
                    f"({step.primary.quantity.name} {year}); using target "
                    f"{step.primary.index}"
                )
            else:
                step.primary = entry
                logger.debug("iter %d: target %d deferred from %d to %d",
                             iteration, entry.index, entry.target.year, year)
        return plans, messages

    def __repr__(self) -> str:
        lines = [f"ProjectionControl({len(self)} targets, {self.n_iters} iters)"]
        for i, t in enumerate(self._targets):
            lo, val, hi = self.values(i, 0)
            rel = f" rel={t.rel_year}" if t.rel_year is not None else ""
            lines.append(f"  [{i}] {t.year} {t.quantity.name:<13} "
                         f"min={lo} value={val} max={hi}{rel}")
        return "\n".join(lines)
