"""Shared fixtures: the example stock, its 3-year forecast and a tiny stock."""

import pytest

from stockfwd.assumptions import short_term_forecast
from stockfwd.datasets import MEAN_RECRUITMENT, example_stock
from stockfwd.recruitment import ConstantRecruitment
from stockfwd.stock import StockTimeline


@pytest.fixture
def stock() -> StockTimeline:
    """Example stock, 1990–2017, all historical."""
    return example_stock()


@pytest.fixture
def future(stock) -> StockTimeline:
    """Example stock extended to 2020 (projection years 2018–2020)."""
    return short_term_forecast(stock, n_years=3)


@pytest.fixture
def mean_rec() -> ConstantRecruitment:
    return ConstantRecruitment(MEAN_RECRUITMENT)


@pytest.fixture
def tiny() -> StockTimeline:
    """Ages 0–2, one historical year (2000), hand-checkable values."""
    return StockTimeline(
        ages=[0, 1, 2],
        years=[2000],
        stock_n=[100.0, 50.0, 20.0],
        harvest=[0.0, 0.2, 0.2],
        m=0.1,
        stock_wt=[0.1, 0.5, 1.0],
        mat=[0.0, 1.0, 1.0],
        fbar_range=(1, 2),
    )
