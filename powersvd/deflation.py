# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

"""
Hotelling deflation of a Gram matrix.

After singular vectors v_1..v_k have been found, the residual data is
A_k = A (I - sum_i v_i v_i') and its Gram matrix is

    A_k'A_k / n = P G P,    P = I - sum_{i<=k} v_i v_i'

so the dominant eigenvector of P G P is the next right singular vector.
"""

import numpy as np

from .utils import sub_symm


class Deflator:
    """
    Keeps the projector P and produces deflated Gram matrices.

    The original Gram matrix is never modified; each call to `deflate`
    returns a new matrix.
    """

    def __init__(self, gram: np.ndarray) -> None:
        gram = np.asarray(gram, float)
        m, n = gram.shape
        if m != n:
            raise ValueError("Deflation requires a square Gram matrix.")
        self.gram = gram
        self.projector = np.eye(n)

    def project(self, v: np.ndarray) -> np.ndarray:
        """Return P v with the projector of the rounds completed so far."""
        return self.projector @ v

    def update(self, v: np.ndarray) -> None:
        """P <- P - v v'."""
        v = np.asarray(v, float)
        sub_symm(self.projector, np.outer(v, v))

    def deflate(self, v: np.ndarray) -> np.ndarray:
        """Remove `v` from the projector and return P G P."""
        self.update(v)
        return self.projector @ self.gram @ self.projector
