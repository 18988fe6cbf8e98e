"""Example stock for tutorials and tests.

A plaice-like North Sea flatfish, ages 1–10+ over 1990–2017. Its numbers
are produced by forward simulation from an equilibrium start, so they are
consistent with its F, M and recruitment series. Numbers are thousands,
weights kg, so biomass quantities are in tonnes.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from stockfwd.stock import StockTimeline

AGES = tuple(range(1, 11))
YEARS = tuple(range(1990, 2018))
FBAR_RANGE = (2, 6)

NATURAL_MORTALITY = 0.1
STOCK_WT = np.array([0.05, 0.11, 0.18, 0.26, 0.34, 0.42, 0.50, 0.57, 0.63, 0.70])
CATCH_WT = np.array([0.08, 0.14, 0.21, 0.28, 0.36, 0.44, 0.51, 0.58, 0.64, 0.71])
MATURITY = np.array([0.0, 0.5, 0.5, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0, 1.0])
SELECTIVITY = np.array([0.13, 0.36, 0.65, 0.87, 1.0, 1.0, 0.9, 0.8, 0.8, 0.8])

MEAN_RECRUITMENT = 1.0e6
# Beverton-Holt parameters consistent with the example's SSB and recruitment scale
BEVHOLT_A = 1.2e6
BEVHOLT_B = 1.0e5


def fbar_history(years=YEARS) -> np.ndarray:
    """Fbar rising from 0.3 to 0.7 by 2005, then falling back to 0.3."""
    years = np.asarray(years, dtype=np.float64)
    up = 0.3 + 0.4 * (years - 1990) / 15.0
    down = 0.7 - 0.4 * (years - 2005) / 12.0
    return np.where(years <= 2005, up, down)


def equilibrium_numbers(recruits: float, f_at_age: np.ndarray, m: float) -> np.ndarray:
    """Per-recruit equilibrium numbers at age, with a plus group."""
    z = f_at_age + m
    n = np.empty(len(z))
    n[0] = recruits
    for a in range(1, len(z)):
        n[a] = n[a - 1] * np.exp(-z[a - 1])
    n[-1] = n[-2] * np.exp(-z[-2]) / (1.0 - np.exp(-z[-1]))
    return n


def example_stock(n_iters: int = 1, seed: Optional[int] = None,
                  sigma_r: float = 0.3) -> StockTimeline:
    """Build the example stock.

    Args:
        n_iters: Number of iterations (identical unless `seed` is given).
        seed: If set, each iteration gets lognormal recruitment noise.
        sigma_r: Log-scale sd of the recruitment noise.

    Returns:
        StockTimeline with all years historical.
    """
    n_ages, n_years = len(AGES), len(YEARS)
    fbar = fbar_history()
    sel = SELECTIVITY / SELECTIVITY[1:6].mean()
    harvest = sel[:, None] * fbar[None, :]

    # Smooth cycle so the history is not flat
    rec = MEAN_RECRUITMENT * np.exp(0.25 * np.sin(np.arange(n_years) / 3.0))
    rec = np.repeat(rec[:, None], n_iters, axis=1)
    if seed is not None:
        rng = np.random.default_rng(seed)
        rec = rec * np.exp(rng.normal(-0.5 * sigma_r ** 2, sigma_r, size=rec.shape))

    m = np.full(n_ages, NATURAL_MORTALITY)
    numbers = np.empty((n_ages, n_years, n_iters))
    for it in range(n_iters):
        numbers[:, 0, it] = equilibrium_numbers(rec[0, it], harvest[:, 0], NATURAL_MORTALITY)
        for y in range(1, n_years):
            surv = numbers[:, y - 1, it] * np.exp(-(harvest[:, y - 1] + m))
            numbers[1:, y, it] = surv[:-1]
            numbers[-1, y, it] += surv[-1]
            numbers[0, y, it] = rec[y, it]

    return StockTimeline(
        AGES, YEARS, n_iters,
        stock_n=numbers,
        harvest=harvest,
        m=m,
        stock_wt=STOCK_WT,
        catch_wt=CATCH_WT,
        mat=MATURITY,
        fbar_range=FBAR_RANGE,
        name='plaice-like example',
    )
