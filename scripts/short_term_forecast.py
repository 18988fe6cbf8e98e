#!/usr/bin/env python3
"""Short-term forecast scenarios on the example stock.

Extends the stock by three years with averaged assumptions, sets the
intermediate year (2018) to status-quo F, and then tries several catch
options for 2019: F-based, catch-based and SSB-based. Prints one row per
scenario with the resulting F, catch and SSB.

Usage:
    python scripts/short_term_forecast.py
    python scripts/short_term_forecast.py --years 5 --verbose
"""

import argparse
import logging
import sys
from pathlib import Path

# ── Project imports ──────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from stockfwd.assumptions import short_term_forecast
from stockfwd.control import ProjectionControl, Target
from stockfwd.datasets import example_stock
from stockfwd.recruitment import ConstantRecruitment
from stockfwd.solver import fwd
from stockfwd.types import Timing


def build_scenarios(stock, intermediate, advice):
    """Return {name: ProjectionControl} for the advice year."""
    f_sq = stock.fbar(intermediate, 0)
    catch_sq = stock.catch(intermediate - 1, 0)
    first = Target(intermediate, 'f', f_sq)
    return {
        'F = 0':          ProjectionControl([first, Target(advice, 'f', 0.0)]),
        'F status quo':   ProjectionControl([first, Target(advice, 'f', f_sq)]),
        'F = 0.5 x sq':   ProjectionControl([first, Target(advice, 'f', 0.5 * f_sq)]),
        'Catch = last':   ProjectionControl([first, Target(advice, 'catch', catch_sq)]),
        'Catch -15%':     ProjectionControl([first, Target(advice, 'catch', 0.85,
                                                           rel_year=intermediate)]),
        'SSB +10%':       ProjectionControl([first, Target(advice, 'ssb', 1.1,
                                                           rel_year=intermediate)]),
        'F sq, catch cap': ProjectionControl([first, Target(advice, 'f', f_sq),
                                              Target(advice, 'catch', max=catch_sq)]),
    }


def main():
    parser = argparse.ArgumentParser(description="Short-term forecast scenarios")
    parser.add_argument('--years', type=int, default=3, help="Projection years")
    parser.add_argument('--verbose', action='store_true', help="Debug logging")
    args = parser.parse_args()
    if args.years < 3:
        parser.error("--years must be at least 3 (intermediate, advice and following year)")

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    stock = short_term_forecast(example_stock(), n_years=args.years)
    intermediate = stock.first_projection_year
    advice = intermediate + 1
    rec = ConstantRecruitment.from_history(stock, nyears=10)

    print(f"Stock: {stock}")
    print(f"Recruitment: {rec} (geometric mean of the last 10 years)")
    print(f"Status-quo F in {intermediate}: {stock.fbar(intermediate, 0):.3f}\n")

    header = (f"{'Scenario':<17}{'F ' + str(advice):>10}{'Catch ' + str(advice):>14}"
              f"{'SSB ' + str(advice):>14}{'SSB ' + str(advice + 1):>14}")
    print(header)
    print('-' * len(header))
    for name, control in build_scenarios(stock, intermediate, advice).items():
        res = fwd(stock, control, rec)
        if not res.all_ok:
            print(f"{name:<17}  failed: {res.failures[0].message}")
            continue
        s = res.stock
        print(f"{name:<17}{s.fbar(advice, 0):>10.3f}{s.catch(advice, 0):>14.0f}"
              f"{s.ssb(advice, 0):>14.0f}"
              f"{s.ssb(advice + 1, 0, Timing.SPAWNING):>14.0f}")


if __name__ == '__main__':
    main()
