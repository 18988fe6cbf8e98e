"""Labelled quant x year x iteration arrays.

A Quant wraps a float array of shape (n_quant, n_years, n_iters) with the
labels of its first two axes and a units string. The first axis is usually
age; aggregated quantities (catch, SSB) use a single 'all' label.

Example:
    >>> q = Quant(np.ones((4, 5)), quant_labels=range(4), years=range(2010, 2015),
    ...           units='kg')
    >>> q.shape
    (4, 5, 1)
    >>> (q * 2).year(2012)[:, 0]
    array([2., 2., 2., 2.])
"""

from __future__ import annotations

from typing import Iterable, List, Sequence, Union

import numpy as np


class Quant:
    """Age (or other quant) x year x iteration array with labels and units."""

    def __init__(
        self,
        data,
        quant_labels: Iterable = ('all',),
        years: Iterable[int] = (),
        units: str = '',
        quant: str = 'age',
    ):
        arr = np.asarray(data, dtype=np.float64)
        if arr.ndim == 1:
            arr = arr[:, None, None]
        elif arr.ndim == 2:
            arr = arr[:, :, None]
        elif arr.ndim != 3:
            raise ValueError(f"Quant data must be 1-3 dimensional, got {arr.ndim}")

        labels = list(quant_labels)
        year_list = [int(y) for y in years]
        if len(labels) != arr.shape[0]:
            raise ValueError(
                f"{len(labels)} {quant} labels for first axis of length {arr.shape[0]}"
            )
        if len(year_list) != arr.shape[1]:
            raise ValueError(
                f"{len(year_list)} years for year axis of length {arr.shape[1]}"
            )

        self.data = arr
        self.quant = quant
        self.units = units
        self._labels = labels
        self._years = year_list

    # ── Shape and labels ─────────────────────────────────────────────

    @property
    def shape(self):
        return self.data.shape

    @property
    def dims(self):
        return {self.quant: self.data.shape[0], 'year': self.data.shape[1],
                'iter': self.data.shape[2]}

    @property
    def quant_labels(self) -> List:
        return list(self._labels)

    @property
    def years(self) -> List[int]:
        return list(self._years)

    @property
    def n_iters(self) -> int:
        return self.data.shape[2]

    def year_index(self, year: int) -> int:
        try:
            return self._years.index(int(year))
        except ValueError:
            raise KeyError(
                f"Year {year} not in Quant years "
                f"{self._years[0] if self._years else '-'}–"
                f"{self._years[-1] if self._years else '-'}"
            ) from None

    # ── Subsetting ───────────────────────────────────────────────────

    def year(self, year: int) -> np.ndarray:
        """Values for one year: (n_quant, n_iters)."""
        return self.data[:, self.year_index(year), :]

    def iter(self, iteration: int) -> 'Quant':
        return self._like(self.data[:, :, iteration:iteration + 1])

    def window(self, start: int, end: int) -> 'Quant':
        """Sub-range of years, inclusive at both ends."""
        i0 = self.year_index(start)
        i1 = self.year_index(end)
        if i1 < i0:
            raise ValueError(f"window end {end} precedes start {start}")
        return self._like(self.data[:, i0:i1 + 1, :],
                          years=self._years[i0:i1 + 1])

    def expand_iters(self, n_iters: int) -> 'Quant':
        if self.n_iters == n_iters:
            return self._like(self.data.copy())
        if self.n_iters != 1:
            raise ValueError(
                f"Can only expand a single-iteration Quant, this one has {self.n_iters}"
            )
        return self._like(np.repeat(self.data, n_iters, axis=2))

    # ── Summaries ────────────────────────────────────────────────────

    def iter_mean(self) -> 'Quant':
        return self._like(np.nanmean(self.data, axis=2, keepdims=True))

    def iter_median(self) -> 'Quant':
        return self._like(np.nanmedian(self.data, axis=2, keepdims=True))

    def quantiles(self, probs: Sequence[float] = (0.05, 0.5, 0.95)) -> np.ndarray:
        """Per-iteration quantiles: (len(probs), n_quant, n_years)."""
        return np.nanquantile(self.data, probs, axis=2)

    def sum_quant(self) -> 'Quant':
        return Quant(self.data.sum(axis=0, keepdims=True), quant_labels=['all'],
                     years=self._years, units=self.units, quant=self.quant)

    # ── Arithmetic ───────────────────────────────────────────────────

    def _operand(self, other) -> Union[np.ndarray, float]:
        if isinstance(other, Quant):
            if other._labels != self._labels or other._years != self._years:
                raise ValueError("Quant operands have mismatched labels or years")
            return other.data
        return other

    def __add__(self, other):
        return self._like(self.data + self._operand(other))

    def __sub__(self, other):
        return self._like(self.data - self._operand(other))

    def __mul__(self, other):
        return self._like(self.data * self._operand(other))

    def __truediv__(self, other):
        return self._like(self.data / self._operand(other))

    __radd__ = __add__
    __rmul__ = __mul__

    def __rsub__(self, other):
        return self._like(self._operand(other) - self.data)

    def __rtruediv__(self, other):
        return self._like(self._operand(other) / self.data)

    def __neg__(self):
        return self._like(-self.data)

    def __array__(self, dtype=None, copy=None):
        if dtype is None:
            return self.data
        return self.data.astype(dtype)

    def __repr__(self) -> str:
        yr = f"{self._years[0]}-{self._years[-1]}" if self._years else "-"
        return (f"Quant({self.quant}={len(self._labels)}, year={yr}, "
                f"iter={self.n_iters}, units='{self.units}')")

    def _like(self, data, years=None) -> 'Quant':
        return Quant(data, quant_labels=self._labels,
                     years=self._years if years is None else years,
                     units=self.units, quant=self.quant)
