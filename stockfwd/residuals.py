"""Recruitment residual generation.

Produces (1, n_years, n_iters) Quants of multiplicative residuals for
RecruitmentModel. Each iteration draws from its own RNG stream, so results
for iteration i do not depend on how many iterations are requested.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from stockfwd.quant import Quant
from stockfwd.rng import create_rng_hierarchy, get_iter_rng


def sample_residuals(
    historical: Sequence[float],
    years: Sequence[int],
    n_iters: int,
    seed: int = 42,
) -> Quant:
    """Bootstrap historical residuals with replacement.

    Args:
        historical: Observed multiplicative residuals (e.g. R_obs / R_pred).
        years: Projection years to fill.
        n_iters: Number of iterations.
        seed: Master seed for the RNG hierarchy.

    Returns:
        Quant of shape (1, len(years), n_iters).
    """
    pool = np.asarray(historical, dtype=np.float64).ravel()
    if pool.size == 0:
        raise ValueError("Need at least one historical residual to resample")
    if np.any(~np.isfinite(pool)) or np.any(pool <= 0):
        raise ValueError("Historical residuals must be finite and positive")

    years = list(years)
    rngs = create_rng_hierarchy(seed, n_iters)
    out = np.empty((1, len(years), n_iters))
    for it in range(n_iters):
        rng = get_iter_rng(rngs, it)
        out[0, :, it] = rng.choice(pool, size=len(years), replace=True)
    return Quant(out, quant_labels=['all'], years=years)


def lognormal_residuals(
    sigma: float,
    years: Sequence[int],
    n_iters: int,
    seed: int = 42,
) -> Quant:
    """Mean-one lognormal residuals: exp(N(−σ²/2, σ²))."""
    if sigma < 0:
        raise ValueError(f"sigma must be non-negative, got {sigma}")
    years = list(years)
    rngs = create_rng_hierarchy(seed, n_iters)
    out = np.empty((1, len(years), n_iters))
    for it in range(n_iters):
        rng = get_iter_rng(rngs, it)
        out[0, :, it] = np.exp(rng.normal(-0.5 * sigma ** 2, sigma, size=len(years)))
    return Quant(out, quant_labels=['all'], years=years)
