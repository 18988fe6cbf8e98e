"""Future-assumption policies for extending a stock timeline.

A policy fills the assumption slots (M, weights, maturity, spawning
fractions) and the harvest selection pattern of newly appended years from
the years already in the timeline. Numbers are never filled here; they are
the projection's response.

Policies:
  - CarryForward:     repeat the last year
  - MeanOfLastYears:  stf-style mean over the last few years
"""

from __future__ import annotations

from typing import Dict, Optional

import numpy as np

from stockfwd.stock import ASSUMPTION_SLOTS


class CarryForward:
    """Repeat the last existing year's assumptions and F pattern."""

    def fill(self, slots: Dict[str, np.ndarray], n_existing: int, n_new: int) -> None:
        for name in ASSUMPTION_SLOTS + ('harvest',):
            arr = slots[name]
            arr[:, n_existing:n_existing + n_new, :] = arr[:, n_existing - 1:n_existing, :]


class MeanOfLastYears:
    """Average the last `wts_nyears` years for biology and timing slots and
    the last `fbar_nyears` years for the harvest pattern.

    Args:
        wts_nyears: Years averaged for M, weights, maturity, spawning fractions.
        fbar_nyears: Years averaged for harvest; defaults to wts_nyears.
    """

    def __init__(self, wts_nyears: int = 3, fbar_nyears: Optional[int] = None):
        if wts_nyears < 1:
            raise ValueError(f"wts_nyears must be >= 1, got {wts_nyears}")
        if fbar_nyears is not None and fbar_nyears < 1:
            raise ValueError(f"fbar_nyears must be >= 1, got {fbar_nyears}")
        self.wts_nyears = wts_nyears
        self.fbar_nyears = wts_nyears if fbar_nyears is None else fbar_nyears

    def fill(self, slots: Dict[str, np.ndarray], n_existing: int, n_new: int) -> None:
        longest = max(self.wts_nyears, self.fbar_nyears)
        if longest > n_existing:
            raise ValueError(
                f"Cannot average over {longest} years: only {n_existing} available"
            )
        for name in ASSUMPTION_SLOTS + ('harvest',):
            nyears = self.fbar_nyears if name == 'harvest' else self.wts_nyears
            arr = slots[name]
            mean = arr[:, n_existing - nyears:n_existing, :].mean(axis=1, keepdims=True)
            arr[:, n_existing:n_existing + n_new, :] = mean


def short_term_forecast(stock, n_years: int = 3, wts_nyears: int = 3,
                        fbar_nyears: Optional[int] = None):
    """Extend `stock` by `n_years` using averaged assumptions."""
    return stock.extend(n_years, MeanOfLastYears(wts_nyears, fbar_nyears))
