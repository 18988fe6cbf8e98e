"""Age-structured stock timeline.

Holds the biological and fishery arrays of a stock over ages, years and
iterations, and derives catch, Fbar, SSB and biomass from them:
  - Exponential survival: N(a+1, y+1) = N(a, y) · exp(−F − M)
  - Plus group: the oldest age also accumulates its own survivors
  - Baranov catch: C = N · F/Z · (1 − exp(−Z))
  - SSB / biomass at END, SPAWNING or FLASH timing

Every year given at construction is historical. `extend()` appends future
years whose assumption slots are filled by a future-assumptions policy
(see assumptions.py); only future years can be written by `realize()`,
`advance()` and `set_recruits()`.

All slots have shape (n_ages, n_years, n_iters). Iterations never read each
other's slices, so independent workers may write disjoint iterations of the
same timeline concurrently.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from stockfwd.quant import Quant
from stockfwd.types import QuantityKind, Timing


# ═══════════════════════════════════════════════════════════════════════
# SLOT LAYOUT
# ═══════════════════════════════════════════════════════════════════════

SLOTS = ('stock_n', 'harvest', 'm', 'stock_wt', 'catch_wt', 'mat',
         'harvest_spwn', 'm_spwn')

# Slots a future-assumptions policy pre-fills for projection years.
ASSUMPTION_SLOTS = ('m', 'stock_wt', 'catch_wt', 'mat', 'harvest_spwn', 'm_spwn')

SLOT_UNITS = {
    'stock_n':      '1000',
    'harvest':      'f',
    'm':            'm',
    'stock_wt':     'kg',
    'catch_wt':     'kg',
    'mat':          '',
    'harvest_spwn': '',
    'm_spwn':       '',
}


def _as_slot(value, n_ages: int, n_years: int, n_iters: int, name: str) -> np.ndarray:
    """Broadcast per-age, age x year or full input to a writable slot array."""
    arr = np.asarray(value, dtype=np.float64)
    if arr.ndim == 0:
        arr = arr.reshape(1, 1, 1)
    elif arr.ndim == 1:
        arr = arr[:, None, None]
    elif arr.ndim == 2:
        arr = arr[:, :, None]
    elif arr.ndim != 3:
        raise ValueError(f"{name}: expected at most 3 dimensions, got {arr.ndim}")
    try:
        out = np.broadcast_to(arr, (n_ages, n_years, n_iters))
    except ValueError:
        raise ValueError(
            f"{name}: shape {np.shape(value)} does not broadcast to "
            f"(ages={n_ages}, years={n_years}, iters={n_iters})"
        ) from None
    return np.array(out, dtype=np.float64)


def _consecutive(values: Sequence[int], label: str) -> List[int]:
    out = [int(v) for v in values]
    if not out:
        raise ValueError(f"{label} must not be empty")
    if any(b - a != 1 for a, b in zip(out, out[1:])):
        raise ValueError(f"{label} must be consecutive increasing integers, got {out}")
    return out


class StockTimeline:
    """Age-structured population over years and stochastic iterations.

    Args:
        ages: Consecutive ages, youngest first. The youngest age is the
            recruitment age.
        years: Consecutive years. All of them are historical.
        n_iters: Number of iterations. Inferred from the slot arrays when None.
        stock_n, harvest, m, stock_wt, catch_wt, mat, harvest_spwn, m_spwn:
            Slot values, each broadcastable to (n_ages, n_years, n_iters);
            1-D input is per age, 2-D input is age x year.
        fbar_range: (min_age, max_age) for Fbar; defaults to all ages.
        plusgroup: Whether the oldest age accumulates survivors.
        name: Stock name (informational).
    """

    def __init__(
        self,
        ages: Sequence[int],
        years: Sequence[int],
        n_iters: Optional[int] = None,
        *,
        stock_n=None,
        harvest=None,
        m=None,
        stock_wt=None,
        catch_wt=None,
        mat=None,
        harvest_spwn=None,
        m_spwn=None,
        fbar_range: Optional[Tuple[int, int]] = None,
        plusgroup: bool = True,
        name: str = '',
        n_hist: Optional[int] = None,
    ):
        self._ages = _consecutive(ages, 'ages')
        self._years = _consecutive(years, 'years')
        for slot_name, value in (('m', m), ('stock_wt', stock_wt), ('mat', mat)):
            if value is None:
                raise ValueError(f"StockTimeline requires '{slot_name}'")

        given = dict(stock_n=stock_n, harvest=harvest, m=m, stock_wt=stock_wt,
                     catch_wt=catch_wt, mat=mat, harvest_spwn=harvest_spwn,
                     m_spwn=m_spwn)
        if n_iters is None:
            n_iters = max(
                (np.shape(v)[2] for v in given.values()
                 if v is not None and np.ndim(v) == 3),
                default=1,
            )
        if n_iters < 1:
            raise ValueError(f"n_iters must be >= 1, got {n_iters}")

        defaults = {'stock_n': np.nan, 'harvest': 0.0, 'harvest_spwn': 0.0,
                    'm_spwn': 0.0, 'catch_wt': stock_wt}
        shape = (len(self._ages), len(self._years), int(n_iters))
        self._slots: Dict[str, np.ndarray] = {}
        for slot_name in SLOTS:
            value = given[slot_name]
            if value is None:
                value = defaults[slot_name]
            self._slots[slot_name] = _as_slot(value, *shape, name=slot_name)

        if fbar_range is None:
            fbar_range = (self._ages[0], self._ages[-1])
        lo, hi = int(fbar_range[0]), int(fbar_range[1])
        if lo > hi or lo not in self._ages or hi not in self._ages:
            raise ValueError(
                f"fbar_range {fbar_range} must lie within ages "
                f"{self._ages[0]}–{self._ages[-1]}"
            )
        self.fbar_range = (lo, hi)
        self._fbar_slice = slice(self._ages.index(lo), self._ages.index(hi) + 1)
        self.plusgroup = plusgroup
        self.name = name
        self._n_hist = len(self._years) if n_hist is None else int(n_hist)

    # ── Slot access ──────────────────────────────────────────────────

    @property
    def stock_n(self) -> np.ndarray:
        return self._slots['stock_n']

    @property
    def harvest(self) -> np.ndarray:
        return self._slots['harvest']

    @property
    def m(self) -> np.ndarray:
        return self._slots['m']

    @property
    def stock_wt(self) -> np.ndarray:
        return self._slots['stock_wt']

    @property
    def catch_wt(self) -> np.ndarray:
        return self._slots['catch_wt']

    @property
    def mat(self) -> np.ndarray:
        return self._slots['mat']

    @property
    def harvest_spwn(self) -> np.ndarray:
        return self._slots['harvest_spwn']

    @property
    def m_spwn(self) -> np.ndarray:
        return self._slots['m_spwn']

    def slot(self, name: str) -> np.ndarray:
        if name not in self._slots:
            raise KeyError(f"Unknown slot '{name}'. Slots: {SLOTS}")
        return self._slots[name]

    def quant(self, name: str) -> Quant:
        """Copy of a slot as a labelled Quant."""
        return Quant(self.slot(name).copy(), quant_labels=self._ages,
                     years=self._years, units=SLOT_UNITS[name])

    # ── Dimensions ───────────────────────────────────────────────────

    @property
    def ages(self) -> List[int]:
        return list(self._ages)

    @property
    def years(self) -> List[int]:
        return list(self._years)

    @property
    def n_ages(self) -> int:
        return len(self._ages)

    @property
    def n_years(self) -> int:
        return len(self._years)

    @property
    def n_iters(self) -> int:
        return self._slots['stock_n'].shape[2]

    @property
    def n_hist(self) -> int:
        """Number of historical (observed) years."""
        return self._n_hist

    @property
    def historical_years(self) -> List[int]:
        return self._years[:self._n_hist]

    @property
    def projection_years(self) -> List[int]:
        return self._years[self._n_hist:]

    @property
    def first_projection_year(self) -> Optional[int]:
        return self._years[self._n_hist] if self._n_hist < len(self._years) else None

    def year_index(self, year: int) -> int:
        idx = int(year) - self._years[0]
        if idx < 0 or idx >= len(self._years):
            raise KeyError(
                f"Year {year} outside timeline {self._years[0]}–{self._years[-1]}"
            )
        return idx

    def is_future(self, year: int) -> bool:
        return self.year_index(year) >= self._n_hist

    def has_year(self, year: int) -> bool:
        return self._years[0] <= int(year) <= self._years[-1]

    # ── Construction helpers ─────────────────────────────────────────

    def copy(self) -> 'StockTimeline':
        return self._rebuild(self._years, {k: v.copy() for k, v in self._slots.items()},
                             self._n_hist)

    def _rebuild(self, years, slots, n_hist) -> 'StockTimeline':
        return StockTimeline(
            self._ages, years, slots['stock_n'].shape[2],
            fbar_range=self.fbar_range, plusgroup=self.plusgroup,
            name=self.name, n_hist=n_hist, **slots,
        )

    def extend(self, n_years: int, policy=None) -> 'StockTimeline':
        """Return a copy with `n_years` future years appended.

        Assumption slots and the harvest pattern for the new years are
        filled by `policy` (defaults to CarryForward); numbers are NaN until
        a projection realizes them.

        Args:
            n_years: Number of years to append (>= 1).
            policy: Object with a `fill(slots, n_existing, n_new)` method.

        Returns:
            New StockTimeline; the receiver is unchanged.
        """
        from stockfwd.assumptions import CarryForward

        if n_years < 1:
            raise ValueError(f"n_years must be >= 1, got {n_years}")
        if policy is None:
            policy = CarryForward()

        n_old = len(self._years)
        new_years = self._years + list(range(self._years[-1] + 1,
                                             self._years[-1] + 1 + n_years))
        slots = {}
        for name, arr in self._slots.items():
            pad = np.full((arr.shape[0], n_years, arr.shape[2]),
                          np.nan if name == 'stock_n' else 0.0)
            slots[name] = np.concatenate([arr, pad], axis=1)
        policy.fill(slots, n_old, n_years)
        return self._rebuild(new_years, slots, self._n_hist)

    # ── Population update ────────────────────────────────────────────

    def survivors(self, year: int, iteration: int,
                  harvest: Optional[np.ndarray] = None) -> np.ndarray:
        """Numbers alive at the start of year+1 (recruitment age left at 0)."""
        i = self.year_index(year)
        n = self.stock_n[:, i, iteration]
        f = self.harvest[:, i, iteration] if harvest is None else harvest
        surv = n * np.exp(-(f + self.m[:, i, iteration]))
        out = np.zeros(self.n_ages)
        out[1:] = surv[:-1]
        if self.plusgroup:
            out[-1] += surv[-1]
        return out

    def realize(self, year: int, f_at_age, iteration: int) -> np.ndarray:
        """Commit F-at-age for a future year and write survivors into year+1.

        Returns:
            The survivors vector (recruitment age is 0; see set_recruits).

        Raises:
            ValueError: If the year is historical or F is malformed.
        """
        i = self.year_index(year)
        if i < self._n_hist:
            raise ValueError(f"Cannot realize historical year {year}")
        f = np.asarray(f_at_age, dtype=np.float64)
        if f.shape != (self.n_ages,):
            raise ValueError(f"F-at-age must have shape ({self.n_ages},), got {f.shape}")
        if np.any(f < 0) or not np.all(np.isfinite(f)):
            raise ValueError(f"F-at-age must be finite and non-negative, got {f}")
        self.harvest[:, i, iteration] = f
        return self.advance(year, iteration)

    def advance(self, year: int, iteration: int) -> np.ndarray:
        """Write survivors of `year` (using its committed F) into year+1.

        Historical years may be advanced from, since only year+1 is written;
        the last year of the timeline has no successor and is a no-op.
        """
        i = self.year_index(year)
        surv = self.survivors(year, iteration)
        if i + 1 < self.n_years:
            if i + 1 < self._n_hist:
                raise ValueError(f"Cannot overwrite historical year {year + 1}")
            self.stock_n[1:, i + 1, iteration] = surv[1:]
        return surv

    def set_recruits(self, year: int, iteration: int, value: float) -> None:
        i = self.year_index(year)
        if i < self._n_hist:
            raise ValueError(f"Cannot set recruitment for historical year {year}")
        if not np.isfinite(value) or value < 0:
            raise ValueError(f"Recruitment must be finite and non-negative, got {value}")
        self.stock_n[0, i, iteration] = value

    def fishes_before_spawning(self, year: int, iteration: int) -> bool:
        """True if any age is fished before spawning in `year`."""
        i = self.year_index(year)
        return bool(np.any(self.harvest_spwn[:, i, iteration] > 0))

    # ── Derived quantities ───────────────────────────────────────────

    def _f(self, i: int, iteration: int, harvest) -> np.ndarray:
        return self.harvest[:, i, iteration] if harvest is None else np.asarray(harvest)

    def catch_n(self, year: int, iteration: int, harvest=None) -> np.ndarray:
        """Baranov catch numbers at age."""
        i = self.year_index(year)
        n = self.stock_n[:, i, iteration]
        f = self._f(i, iteration, harvest)
        z = f + self.m[:, i, iteration]
        with np.errstate(divide='ignore', invalid='ignore'):
            frac = np.where(z > 0, f / z * (1.0 - np.exp(-z)), 0.0)
        return n * frac

    def catch(self, year: int, iteration: int, harvest=None) -> float:
        i = self.year_index(year)
        return float(np.sum(self.catch_n(year, iteration, harvest)
                            * self.catch_wt[:, i, iteration]))

    def fbar(self, year: int, iteration: int, harvest=None) -> float:
        i = self.year_index(year)
        return float(np.mean(self._f(i, iteration, harvest)[self._fbar_slice]))

    def _spawning(self, i: int, iteration: int, mature: bool,
                  harvest=None, numbers=None) -> float:
        n = self.stock_n[:, i, iteration] if numbers is None else numbers
        f = self._f(i, iteration, harvest)
        decay = np.exp(-(self.harvest_spwn[:, i, iteration] * f
                         + self.m_spwn[:, i, iteration] * self.m[:, i, iteration]))
        w = self.stock_wt[:, i, iteration]
        if mature:
            w = w * self.mat[:, i, iteration]
        return float(np.sum(n * decay * w))

    def _biomass(self, year: int, iteration: int, timing: Timing, mature: bool,
                 harvest=None, next_numbers=None) -> float:
        i = self.year_index(year)
        if timing == Timing.END:
            n = self.stock_n[:, i, iteration]
            z = self._f(i, iteration, harvest) + self.m[:, i, iteration]
            w = self.stock_wt[:, i, iteration]
            if mature:
                w = w * self.mat[:, i, iteration]
            return float(np.sum(n * np.exp(-z) * w))
        if timing == Timing.SPAWNING:
            return self._spawning(i, iteration, mature, harvest)
        # FLASH
        if self.fishes_before_spawning(year, iteration):
            return self._spawning(i, iteration, mature, harvest)
        if i + 1 >= self.n_years:
            raise ValueError(
                f"Flash quantity for {year} needs the following year, "
                f"which is past the end of the timeline"
            )
        if next_numbers is None:
            if harvest is not None:
                raise ValueError("Trial harvest for a flash quantity needs next_numbers")
            next_numbers = self.stock_n[:, i + 1, iteration]
        # next year's F excluded
        return self._spawning(i + 1, iteration, mature,
                              harvest=np.zeros(self.n_ages), numbers=next_numbers)

    def ssb(self, year: int, iteration: int, timing: Timing = Timing.END,
            harvest=None, next_numbers=None) -> float:
        return self._biomass(year, iteration, Timing(timing), True, harvest, next_numbers)

    def biomass(self, year: int, iteration: int, timing: Timing = Timing.END,
                harvest=None, next_numbers=None) -> float:
        return self._biomass(year, iteration, Timing(timing), False, harvest, next_numbers)

    def srp(self, year: int, iteration: int, harvest=None) -> float:
        """Stock-recruitment potential: mature biomass at spawning."""
        return self._spawning(self.year_index(year), iteration, True, harvest)

    def quantity(self, kind: QuantityKind, year: int, iteration: int,
                 harvest=None, next_numbers=None) -> float:
        """Realized (or trial, with `harvest`) value of a target quantity."""
        kind = QuantityKind(kind)
        if kind == QuantityKind.F:
            return self.fbar(year, iteration, harvest)
        if kind == QuantityKind.CATCH:
            return self.catch(year, iteration, harvest)
        if kind == QuantityKind.SRP:
            return self.srp(year, iteration, harvest)
        return self._biomass(year, iteration, kind.timing, kind.mature,
                             harvest, next_numbers)

    def series(self, kind: QuantityKind) -> Quant:
        """Quantity for every year and iteration (NaN where undefined)."""
        kind = QuantityKind(kind)
        out = np.full((1, self.n_years, self.n_iters), np.nan)
        last = self.n_years - 1
        for i, year in enumerate(self._years):
            for it in range(self.n_iters):
                if (kind.timing == Timing.FLASH and i == last
                        and not self.fishes_before_spawning(year, it)):
                    continue
                out[0, i, it] = self.quantity(kind, year, it)
        return Quant(out, quant_labels=['all'], years=self._years,
                     units='f' if kind == QuantityKind.F else 't')

    def __repr__(self) -> str:
        proj = self.first_projection_year
        return (f"StockTimeline(name='{self.name}', ages={self._ages[0]}-{self._ages[-1]}, "
                f"years={self._years[0]}-{self._years[-1]}, iters={self.n_iters}, "
                f"projection_from={proj})")
