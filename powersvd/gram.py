# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

import numpy as np

from .mrtask import MRTask


def normalize_chunk(chunk: np.ndarray, norm_sub: np.ndarray, norm_mul: np.ndarray) -> np.ndarray:
    """Apply (a - norm_sub) * norm_mul column-wise to a block of rows."""
    return (np.asarray(chunk, float) - norm_sub) * norm_mul


class GramTask(MRTask):
    """
    Gram matrix A'A/n of the normalized data, n = total number of rows.

    Missing values are not skipped: a NaN anywhere in a column makes the
    matching row and column of the Gram matrix NaN.
    """

    def __init__(self, norm_sub: np.ndarray, norm_mul: np.ndarray) -> None:
        ncols = len(norm_sub)
        self.norm_sub = np.asarray(norm_sub, float)
        self.norm_mul = np.asarray(norm_mul, float)
        self.xx = np.zeros((ncols, ncols))
        self.nobs = 0
        self.gram = None

    def map(self, idx, chunk):
        X = normalize_chunk(chunk, self.norm_sub, self.norm_mul)
        self.xx = self.xx + X.T @ X
        self.nobs = self.nobs + X.shape[0]

    def reduce(self, other):
        self.xx = self.xx + other.xx
        self.nobs = self.nobs + other.nobs

    def post_global(self):
        self.gram = self.xx / self.nobs
