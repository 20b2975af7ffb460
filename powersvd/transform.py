# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

"""
Per-column normalization vectors.

Every row read by the SVD passes is transformed column-wise as
``(a - norm_sub[j]) * norm_mul[j]``. This module computes the two vectors
from one pass of column statistics.
"""

import enum
from typing import Tuple

import numpy as np

from .frame import PartitionedFrame
from .mrtask import MRTask


class TransformType(enum.Enum):
    NONE = "NONE"
    STANDARDIZE = "STANDARDIZE"  # subtract mean, divide by sd
    NORMALIZE = "NORMALIZE"  # subtract mean, divide by range
    DEMEAN = "DEMEAN"  # subtract mean
    DESCALE = "DESCALE"  # divide by sd

    @classmethod
    def parse(cls, value) -> "TransformType":
        if isinstance(value, cls):
            return value
        try:
            return cls[str(value).upper()]
        except KeyError:
            raise ValueError(
                f"Unknown transform {value!r}; expected one of "
                + ", ".join(t.name for t in cls)
            ) from None


class ColumnStatsTask(MRTask):
    """Count, sum, sum of squares, min and max per column, skipping NaNs."""

    def __init__(self, ncols: int) -> None:
        self.count = np.zeros(ncols)
        self.total = np.zeros(ncols)
        self.sumsq = np.zeros(ncols)
        self.lo = np.full(ncols, np.inf)
        self.hi = np.full(ncols, -np.inf)

    def map(self, idx, chunk):
        X = np.asarray(chunk, float)
        mask = ~np.isnan(X)
        Z = np.where(mask, X, 0.0)
        self.count = self.count + mask.sum(axis=0)
        self.total = self.total + Z.sum(axis=0)
        self.sumsq = self.sumsq + (Z * Z).sum(axis=0)
        if X.shape[0]:
            self.lo = np.minimum(self.lo, np.where(mask, X, np.inf).min(axis=0))
            self.hi = np.maximum(self.hi, np.where(mask, X, -np.inf).max(axis=0))

    def reduce(self, other):
        self.count = self.count + other.count
        self.total = self.total + other.total
        self.sumsq = self.sumsq + other.sumsq
        self.lo = np.minimum(self.lo, other.lo)
        self.hi = np.maximum(self.hi, other.hi)

    @property
    def mean(self) -> np.ndarray:
        with np.errstate(invalid="ignore", divide="ignore"):
            return self.total / self.count

    @property
    def sd(self) -> np.ndarray:
        """Sample standard deviation (n - 1 denominator)."""
        with np.errstate(invalid="ignore", divide="ignore"):
            var = (self.sumsq - self.count * self.mean**2) / (self.count - 1)
        return np.sqrt(np.clip(var, 0.0, None))


def _reciprocal(x: np.ndarray) -> np.ndarray:
    # constant columns are left unscaled
    out = np.ones_like(x)
    nz = x > 0
    out[nz] = 1.0 / x[nz]
    return out


def normalization_vectors(
    frame: PartitionedFrame, transform=TransformType.NONE, n_workers: int = 1
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Return (norm_sub, norm_mul) for `frame` under `transform`.

    NONE gives zeros and ones without reading the data.
    """
    transform = TransformType.parse(transform)
    ncols = frame.ncols
    norm_sub = np.zeros(ncols)
    norm_mul = np.ones(ncols)
    if transform is TransformType.NONE:
        return norm_sub, norm_mul

    stats = ColumnStatsTask(ncols).do_all(frame, n_workers)
    if transform in (TransformType.STANDARDIZE, TransformType.NORMALIZE, TransformType.DEMEAN):
        norm_sub = stats.mean
    if transform in (TransformType.STANDARDIZE, TransformType.DESCALE):
        norm_mul = _reciprocal(stats.sd)
    elif transform is TransformType.NORMALIZE:
        norm_mul = _reciprocal(stats.hi - stats.lo)
    return norm_sub, norm_mul
