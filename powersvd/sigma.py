# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

"""
Distributed passes that turn a right singular vector into a singular
value and a left singular vector.

For round k the pass computes, for every row r of the normalized data,

    s_r = sum_j (a_rj - norm_sub_j) * norm_mul_j * vec_j

stores s_r in column k of U and accumulates sum_r s_r^2, so that
sigma_k = sqrt(sum_r s_r^2) = ||A_{k-1} v_k||. Column k is left
unnormalized; it is divided by sigma_k during the next round's pass.
"""

import numpy as np

from .frame import PartitionedFrame
from .gram import normalize_chunk
from .mrtask import MRTask


def l2norm2(
    chunk: np.ndarray,
    u_chunk: np.ndarray,
    vec: np.ndarray,
    k: int,
    norm_sub: np.ndarray,
    norm_mul: np.ndarray,
) -> float:
    """
    Write the row inner products of `chunk` with `vec` to column k of
    `u_chunk` and return their sum of squares.
    """
    s = normalize_chunk(chunk, norm_sub, norm_mul) @ vec
    u_chunk[:, k] = s
    return float(s @ s)


class CalcSigmaU(MRTask):
    """Singular value sigma_1 and unnormalized u_1 <- A v_1."""

    def __init__(
        self,
        svec: np.ndarray,
        u: PartitionedFrame,
        norm_sub: np.ndarray,
        norm_mul: np.ndarray,
        k: int = 0,
    ) -> None:
        self.svec = np.asarray(svec, float)  # Input: right singular vector
        self.u = u
        self.k = k
        self.norm_sub = norm_sub
        self.norm_mul = norm_mul
        self.sval = 0.0  # Output: singular value

    def map(self, idx, chunk):
        self.sval = self.sval + l2norm2(
            chunk, self.u.chunks[idx], self.svec, self.k, self.norm_sub, self.norm_mul
        )

    def reduce(self, other):
        self.sval = self.sval + other.sval

    def post_global(self):
        self.sval = float(np.sqrt(self.sval))


class CalcSigmaUNorm(CalcSigmaU):
    """
    Singular value sigma_k and unnormalized u_k, fused with the
    normalization u_{k-1} <- u_{k-1} / sigma_{k-1} of the previous column.
    """

    def __init__(
        self,
        svec: np.ndarray,
        k: int,
        sval_old: float,
        u: PartitionedFrame,
        norm_sub: np.ndarray,
        norm_mul: np.ndarray,
    ) -> None:
        if k < 1:
            raise ValueError("CalcSigmaUNorm needs a previous column (k >= 1).")
        super().__init__(svec, u, norm_sub, norm_mul, k=k)
        self.sval_old = sval_old

    def map(self, idx, chunk):
        super().map(idx, chunk)
        self.u.chunks[idx][:, self.k - 1] /= self.sval_old


class DivideColumn(MRTask):
    """Divide column k of every U chunk by a constant."""

    def __init__(self, k: int, norm: float) -> None:
        self.k = k
        self.norm = norm

    def map(self, idx, chunk):
        chunk[:, self.k] /= self.norm
