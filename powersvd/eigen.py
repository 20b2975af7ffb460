# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

import logging
from typing import Callable, Optional

import numpy as np

from .errors import NumericalDegeneracyError
from .utils import gaussian_vector

logger = logging.getLogger(__name__)

# Cutoff for the estimation error of a singular vector between two iterates
TOLERANCE: float = 1e-6


def power_loop(
    gram: np.ndarray,
    v0: Optional[np.ndarray] = None,
    *,
    max_iter: int = 1000,
    tol: float = TOLERANCE,
    seed: Optional[int] = None,
    accumulate_error: bool = False,
    check_numerics: bool = True,
    cancel_check: Optional[Callable[[], None]] = None,
    return_history: bool = False,
):
    """
    Dominant eigenvector of a symmetric matrix by the Power Method.

    Repeats v <- M v / ||M v|| until the change between two iterates
    drops to `tol` or `max_iter` steps have run. Running out of steps is
    not an error: the last iterate is returned as a best-effort estimate.

    Parameters
    ----------
    gram : (n,n) ndarray
        Symmetric matrix, usually a (deflated) Gram matrix.
    v0 : (n,) ndarray or None
        Initial vector. If None, a standard-normal vector drawn with `seed`.
    max_iter : int
        Maximum number of iterations.
    tol : float
        Convergence tolerance on ||v_i - v_{i-1}||_2.
    seed : int or None
        Seed for the random initial vector (ignored when `v0` is given).
    accumulate_error : bool
        Reproduce the legacy stopping rule: the error starts at 2*tol and
        every step adds its squared change to the previous error before
        the square root, so it is never reset between iterations.
    check_numerics : bool
        Raise NumericalDegeneracyError on a zero or non-finite norm. When
        False, NaN and inf propagate silently into the result.
    cancel_check : callable or None
        Called before every step; expected to raise to abort the loop.
    return_history : bool
        If True, also return (num_iters, error_history).

    Returns
    -------
    v : (n,) ndarray
        Estimated unit eigenvector.
    (iters, hist) : optional
        Iteration count and error array if return_history=True.
    """
    gram = np.asarray(gram, float)
    m, n = gram.shape
    if m != n:
        raise ValueError("Power iteration requires a square matrix.")

    if v0 is None:
        v = gaussian_vector(n, seed)
    else:
        v = np.asarray(v0, float).copy()
        if v.shape != (n,):
            raise ValueError("v0 must be shape (n,).")

    # the legacy rule seeds the error with 2*tol
    err = 2 * tol if accumulate_error else np.inf
    iters = 0
    hist = []
    while iters < max_iter and err > tol:
        if cancel_check is not None:
            cancel_check()

        x = gram @ v
        norm = np.linalg.norm(x)
        if check_numerics and (norm == 0.0 or not np.isfinite(norm)):
            raise NumericalDegeneracyError(
                f"Power iteration hit a degenerate norm ({norm}) at step {iters}."
            )
        vnew = x / norm
        diff2 = float(np.sum((v - vnew) ** 2))
        err = np.sqrt(err + diff2) if accumulate_error else np.sqrt(diff2)
        hist.append(err)
        v = vnew
        iters += 1

    if not err <= tol:  # also catches a NaN error
        logger.warning(
            f"power_loop: stopped after {iters} iterations with error {err:.3e} > {tol:.1e}"
        )
    else:
        logger.debug(f"power_loop: converged in {iters} iterations")

    return (v, iters, np.array(hist)) if return_history else v
