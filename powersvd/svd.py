# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

"""
Truncated SVD of a row-partitioned matrix by the Power Method.

Algorithm outline
-----------------
0.  Compute the normalization vectors and the Gram matrix G = A'A/n with
    one distributed pass each.
1.  v_1 = dominant eigenvector of G (power iteration).
    sigma_1 = ||A v_1|| and u_1 = A v_1 with one distributed pass.
2.  Residual data A_k = A (I - sum_{i<=k} v_i v_i') has Gram matrix
    P G P with P = I - sum_{i<=k} v_i v_i'. Its dominant eigenvector is
    v_{k+1}.
3.  sigma_{k+1} = ||A_k v_{k+1}||, u_{k+1} = A_k v_{k+1}; the same pass
    divides u_k by sigma_k.
4.  After the last round u_nv is divided by sigma_nv in one extra pass.

References: power-method SVD (Liberty, Yale data-mining notes, ch. 7) and
Blum, Hopcroft, Kannan, ch. 4 for the convergence argument.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
import pandas as pd

from .deflation import Deflator
from .eigen import TOLERANCE, power_loop
from .errors import JobCancelledError, NumericalDegeneracyError, ValidationError
from .frame import PartitionedFrame
from .gram import GramTask
from .job import Job
from .pca import recover_pca
from .sigma import CalcSigmaU, CalcSigmaUNorm, DivideColumn
from .store import Store
from .transform import TransformType, normalization_vectors
from .utils import make_key

logger = logging.getLogger(__name__)


@dataclass
class SVDParameters:
    nv: int
    max_iterations: int
    transform: TransformType = TransformType.NONE
    only_v: bool = False
    recover_pca: bool = False
    seed: Optional[int] = None
    tolerance: float = TOLERANCE
    accumulate_error: bool = False
    check_numerics: bool = True
    vary_seed: bool = False
    n_workers: int = 1
    u_key: Optional[str] = None

    def validate(self, frame: Optional[PartitionedFrame]) -> List[str]:
        """Collect every parameter/frame problem instead of stopping at the first."""
        errors = []
        if self.max_iterations < 1:
            errors.append("max_iterations must be at least 1")
        if self.tolerance < 0:
            errors.append("tolerance must be non-negative")
        if self.n_workers < 1:
            errors.append("n_workers must be at least 1")
        try:
            self.transform = TransformType.parse(self.transform)
        except ValueError as e:
            errors.append(str(e))

        if frame is None:
            errors.append("Missing training frame")
            return errors
        if self.nv < 1 or self.nv > frame.ncols:
            errors.append(
                f"Number of right singular values must be between 1 and {frame.ncols}"
            )
        if frame.numeric_errors():
            errors.append("Training frame must contain all numeric data")
        if frame.nrows == 0:
            errors.append("Training frame has no rows")
        elif frame.nrows == 1 and self.recover_pca and not self.only_v:
            errors.append("recover_pca needs at least 2 rows to estimate standard deviations")
        return errors


@dataclass
class SVDOutput:
    names: List[str]
    nrows: int
    norm_sub: np.ndarray
    norm_mul: np.ndarray
    v: np.ndarray  # (ncols, nv), column k = v_k
    d: Optional[np.ndarray] = None  # singular values, absent when only_v
    u_key: Optional[str] = None  # store key of U, absent when only_v
    iterations: List[int] = field(default_factory=list)
    eigenvectors: Optional[pd.DataFrame] = None
    std_deviation: Optional[np.ndarray] = None
    pc_importance: Optional[pd.DataFrame] = None


@dataclass
class SVDModel:
    key: str
    params: SVDParameters
    output: SVDOutput

    def u(self, store: Store) -> Optional[PartitionedFrame]:
        """Left singular vectors, fetched from the store they were written to."""
        if self.output.u_key is None:
            return None
        return store.get(self.output.u_key)


class SVD:
    """
    Builder for an SVDModel.

    The frame and the model key are locked in `store` for the whole build.
    `train()` returns the model on success and None when the job was
    cancelled; validation and runtime errors propagate after the job is
    marked FAILED.
    """

    def __init__(
        self,
        params: SVDParameters,
        frame: PartitionedFrame,
        store: Optional[Store] = None,
        job: Optional[Job] = None,
        frame_key: Optional[str] = None,
    ) -> None:
        self.params = params
        self.frame = frame
        self.store = store if store is not None else Store()
        self.job = job if job is not None else Job("SVD")
        self.frame_key = frame_key or make_key("Frame")
        self.model_key = make_key("SVDModel")
        if frame is not None and self.frame_key not in self.store:
            self.store.put(self.frame_key, frame)

    def validate(self) -> List[str]:
        return self.params.validate(self.frame)

    def train(self) -> Optional[SVDModel]:
        errors = self.validate()
        if errors:
            err = ValidationError(errors)
            self.job.failed(err)
            raise err

        p = self.params
        u_key = p.u_key or make_key("SVDUMatrix")
        self.job.start()
        try:
            with self.store.locked([self.frame_key, self.model_key], self.job.key):
                model = self._compute(u_key)
                self.store.put(self.model_key, model)
        except JobCancelledError:
            logger.info("Job cancelled by user.")
            self.store.remove(u_key)
            self.job.cancelled()
            return None
        except Exception as e:
            logger.exception(f"SVD job {self.job.key} failed")
            self.store.remove(u_key)
            self.job.failed(e)
            raise
        self.job.done()
        return model

    # ------------------------------------------------------------------
    def _round_seed(self, seed: int, k: int) -> int:
        return seed + k if self.params.vary_seed else seed

    def _check_sigma(self, sval: float, k: int) -> None:
        if self.params.check_numerics and (sval == 0.0 or not np.isfinite(sval)):
            raise NumericalDegeneracyError(f"Singular value {k + 1} is {sval}")

    def _power_loop(self, matrix: np.ndarray, seed: int, k: int):
        p = self.params
        v, iters, _ = power_loop(
            matrix,
            max_iter=p.max_iterations,
            tol=p.tolerance,
            seed=self._round_seed(seed, k),
            accumulate_error=p.accumulate_error,
            check_numerics=p.check_numerics,
            cancel_check=self.job.check_cancelled,
            return_history=True,
        )
        return v, iters

    def _compute(self, u_key: str) -> SVDModel:
        p = self.params
        frame = self.frame
        nv = p.nv
        # one draw per build, shared by every round
        seed = p.seed if p.seed is not None else int(np.random.default_rng().integers(2**62))

        # 0) Normalization vectors and Gram matrix A'A/n
        norm_sub, norm_mul = normalization_vectors(frame, p.transform, p.n_workers)
        gram = GramTask(norm_sub, norm_mul).do_all(frame, p.n_workers).gram
        if p.check_numerics and not np.all(np.isfinite(gram)):
            raise NumericalDegeneracyError(
                "Gram matrix has non-finite entries; the data may have missing values"
            )

        deflator = Deflator(gram)
        rsvec = []
        iterations = []
        sigma = np.zeros(nv)

        u = None
        if not p.only_v:
            u = frame.zeros(nv)
            self.store.put(u_key, u)

        # 1) v_1 from G, later rounds from the deflated Gram matrix
        matrix = gram
        for k in range(nv):
            self.job.check_cancelled()
            v, iters = self._power_loop(matrix, seed, k)
            iterations.append(iters)
            rsvec.append(v)

            # 2) sigma_k = ||A_{k-1} v_k||, u_k <- A_{k-1} v_k, u_{k-1} /= sigma_{k-1}
            if u is not None:
                ivv_vk = deflator.project(v)
                if k == 0:
                    task = CalcSigmaU(ivv_vk, u, norm_sub, norm_mul)
                else:
                    task = CalcSigmaUNorm(ivv_vk, k, sigma[k - 1], u, norm_sub, norm_mul)
                sigma[k] = task.do_all(frame, p.n_workers).sval
                self._check_sigma(sigma[k], k)

            logger.debug(
                f"round {k + 1}/{nv}: {iters} iterations, sigma={sigma[k]:.6g}"
            )

            # 3) P <- P - v_k v_k', next matrix P G P (not needed after the last round)
            if k < nv - 1:
                matrix = deflator.deflate(v)
            else:
                deflator.update(v)

        self.job.check_cancelled()

        # 4) Assemble the output
        output = SVDOutput(
            names=list(frame.names),
            nrows=frame.nrows,
            norm_sub=norm_sub,
            norm_mul=norm_mul,
            v=np.column_stack(rsvec),
            iterations=iterations,
        )
        if u is not None:
            DivideColumn(nv - 1, sigma[nv - 1]).do_all(u, p.n_workers)
            output.d = sigma
            output.u_key = u_key
        if p.recover_pca:
            output.eigenvectors, output.std_deviation, output.pc_importance = recover_pca(
                output.v, output.d, output.nrows, output.names
            )
        return SVDModel(key=self.model_key, params=p, output=output)


def svd(
    A: np.ndarray,
    nv: int,
    max_iterations: int = 1000,
    n_partitions: int = 1,
    **kwargs,
):
    """
    Convenience wrapper: truncated SVD of an in-memory matrix.

    The matrix is split into `n_partitions` row blocks and run through the
    SVD builder. Extra keyword arguments go to SVDParameters.

    Returns:
      U : (m, nv) left singular vectors, or None when only_v
      d : (nv,) singular values, or None when only_v
      Vt: (nv, n) right singular vectors as rows
    """
    frame = PartitionedFrame.from_array(A, n_partitions)
    store = Store()
    params = SVDParameters(nv=nv, max_iterations=max_iterations, **kwargs)
    model = SVD(params, frame, store=store).train()
    u = model.u(store)
    U = u.to_numpy() if u is not None else None
    return U, model.output.d, model.output.v.T
