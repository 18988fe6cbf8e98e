"""Seeded RNG factory for reproducible stochastic projections.

Uses NumPy's SeedSequence → PCG64 hierarchy to guarantee:
  - Statistical independence between per-iteration streams
  - Bit-exact replay with the same master seed
  - Adding iterations doesn't change the draws of existing iterations
"""

from __future__ import annotations

from typing import Dict

import numpy as np


def create_rng_hierarchy(
    master_seed: int,
    n_iters: int,
) -> Dict[str, np.random.Generator]:
    """Create independent RNG streams for each iteration + global operations.

    Streams created:
      - 'global':                  draws shared by all iterations
      - 'iter_0' .. 'iter_{n-1}':  per-iteration residuals and noise

    Args:
        master_seed: Master RNG seed (non-negative integer).
        n_iters: Number of iterations.

    Returns:
        Dictionary mapping stream names to numpy Generator instances.
    """
    if master_seed < 0:
        raise ValueError(f"master_seed must be non-negative, got {master_seed}")
    ss = np.random.SeedSequence(master_seed)
    # spawn() hands out children in order, so iteration i always gets child i+1
    child_seeds = ss.spawn(n_iters + 1)

    rngs: Dict[str, np.random.Generator] = {
        'global': np.random.Generator(np.random.PCG64(child_seeds[0])),
    }
    for i in range(n_iters):
        rngs[f'iter_{i}'] = np.random.Generator(np.random.PCG64(child_seeds[1 + i]))
    return rngs


def get_iter_rng(
    rngs: Dict[str, np.random.Generator],
    iteration: int,
) -> np.random.Generator:
    """Get the RNG stream for a specific iteration.

    Raises:
        KeyError: If the iteration doesn't have a stream.
    """
    key = f'iter_{iteration}'
    if key not in rngs:
        n = sum(1 for k in rngs if k.startswith('iter_'))
        raise KeyError(
            f"No RNG stream for iteration {iteration}. "
            f"Available iterations: 0–{n - 1}"
        )
    return rngs[key]
