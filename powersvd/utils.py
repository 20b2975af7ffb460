# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

import secrets
from typing import Optional

import numpy as np


def gaussian_vector(n: int, seed: Optional[int] = None) -> np.ndarray:
    """Return a length-n standard-normal vector, reproducible when seeded."""
    rng = np.random.default_rng(seed)
    return rng.standard_normal(n)


def sub_symm(lmat: np.ndarray, rmat: np.ndarray) -> np.ndarray:
    """
    Subtract symmetric `rmat` from symmetric `lmat` in place.

    Only the lower triangle of `rmat` is read; each difference is written
    to both (i, j) and (j, i) of `lmat`, which is returned.
    """
    n = rmat.shape[0]
    if lmat.shape != (n, n) or rmat.shape != (n, n):
        raise ValueError("sub_symm requires two square matrices of equal size.")
    lower = np.tril_indices(n, -1)
    diff = lmat[lower] - rmat[lower]
    lmat[lower] = diff
    lmat[lower[1], lower[0]] = diff
    lmat[np.diag_indices(n)] -= np.diag(rmat)
    return lmat


def make_key(prefix: str) -> str:
    """Build a fresh store key such as ``SVDUMatrix_1f3a...``."""
    return f"{prefix}_{secrets.token_hex(8)}"
