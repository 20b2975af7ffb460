# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

import numpy as np
import pandas as pd
import pytest

from powersvd.errors import LockError, NumericalDegeneracyError, ValidationError
from powersvd.frame import PartitionedFrame
from powersvd.job import Job, JobState
from powersvd.store import Store
from powersvd.svd import SVD, SVDParameters, svd
from powersvd.transform import TransformType


def make_data(m, s, seed=0):
    """m-by-n matrix with prescribed singular values `s`."""
    rng = np.random.default_rng(seed)
    n = len(s)
    Q1, _ = np.linalg.qr(rng.normal(size=(m, n)))
    Q2, _ = np.linalg.qr(rng.normal(size=(n, n)))
    return Q1 @ np.diag(s) @ Q2.T


def _align_signs(X, Y):
    """Flip columns of X so that X[:,i] · Y[:,i] ≥ 0 (helps compare eigendirections)."""
    sign = np.sign(np.sum(X * Y, axis=0))
    sign[sign == 0] = 1.0  # avoid zeros
    return X * sign


def run(A, n_partitions=1, store=None, job=None, **kwargs):
    store = store if store is not None else Store()
    kwargs.setdefault("max_iterations", 10000)
    fr = PartitionedFrame.from_array(A, n_partitions)
    model = SVD(SVDParameters(**kwargs), fr, store=store, job=job).train()
    return model, store


SPECTRUM = [10.0, 6.0, 3.5, 2.0, 1.0]


def test_against_numpy_svd():
    A = make_data(60, SPECTRUM, seed=1)
    model, store = run(A, n_partitions=4, nv=3, seed=0, tolerance=1e-10)
    out = model.output

    U_np, s_np, Vt_np = np.linalg.svd(A, full_matrices=False)
    np.testing.assert_allclose(out.d, s_np[:3], rtol=1e-8)

    V = _align_signs(out.v, Vt_np[:3].T)
    np.testing.assert_allclose(V, Vt_np[:3].T, atol=1e-6)

    U = _align_signs(model.u(store).to_numpy(), U_np[:, :3])
    np.testing.assert_allclose(U, U_np[:, :3], atol=1e-6)


def test_orthonormal_factors():
    A = make_data(40, SPECTRUM, seed=2)
    model, store = run(A, n_partitions=3, nv=4, seed=5, tolerance=1e-10)
    V = model.output.v
    U = model.u(store).to_numpy()
    assert V.shape == (5, 4)
    assert U.shape == (40, 4)
    np.testing.assert_allclose(V.T @ V, np.eye(4), atol=1e-8)
    np.testing.assert_allclose(U.T @ U, np.eye(4), atol=1e-6)


def test_singular_values_non_negative_and_ordered():
    A = make_data(50, SPECTRUM, seed=3)
    model, _ = run(A, n_partitions=5, nv=5, seed=1)
    d = model.output.d
    assert np.all(d >= 0)
    assert np.all(np.diff(d) <= 0)


def test_reconstruction_residual_decreases():
    A = make_data(30, SPECTRUM, seed=4)
    model, store = run(A, n_partitions=2, nv=5, seed=2, tolerance=1e-12)
    U = model.u(store).to_numpy()
    d, V = model.output.d, model.output.v
    residuals = [
        np.linalg.norm(A - U[:, :k] @ np.diag(d[:k]) @ V[:, :k].T) for k in range(1, 6)
    ]
    assert np.all(np.diff(residuals) < 0)
    assert residuals[-1] < 1e-6


def test_collinear_columns_scenario():
    A = np.array([[1, 2, 3, 4], [2, 4, 6, 8], [1, 0, 1, 0]], dtype=float).T
    model, store = run(A, nv=2, seed=42)
    out = model.output
    v1 = out.v[:, 0]

    # columns 1 and 2 are perfectly correlated: same sign, ratio 2
    assert np.sign(v1[0]) == np.sign(v1[1])
    assert np.isclose(v1[1] / v1[0], 2.0, rtol=1e-8)
    assert abs(v1[2]) < abs(v1[0])

    # first singular value dominates
    s_np = np.linalg.svd(A, compute_uv=False)
    np.testing.assert_allclose(out.d, s_np[:2], rtol=1e-6)
    assert out.d[0] > 5 * out.d[1]

    # u_1 is the row inner products with v_1, scaled by 1/sigma_1
    U = model.u(store).to_numpy()
    np.testing.assert_allclose(U[:, 0], A @ v1 / out.d[0], atol=1e-10)


def test_rank_deficient_rounds_are_not_flagged():
    # rank 2: the third round runs on a numerically zero residual
    A = np.array([[1, 2, 3, 4], [2, 4, 6, 8], [1, 0, 1, 0]], dtype=float).T
    model, store = run(A, nv=3, seed=42)
    d = model.output.d
    assert d.shape == (3,)
    assert d[2] >= 0
    assert d[2] < 1e-10
    assert model.output.v.shape == (3, 3)
    assert model.u(store).to_numpy().shape == (4, 3)


def test_only_v_skips_singular_values_and_u():
    A = make_data(20, SPECTRUM, seed=6)
    store = Store()
    model, _ = run(A, store=store, n_partitions=2, nv=2, seed=0, only_v=True, u_key="U_only")
    assert model.output.d is None
    assert model.output.u_key is None
    assert model.u(store) is None
    assert "U_only" not in store
    assert not any(k.startswith("SVDUMatrix") for k in store.keys())
    assert model.output.v.shape == (5, 2)


def test_single_iteration_is_best_effort():
    A = make_data(50, np.linspace(1.0, 0.95, 10), seed=7)
    model, _ = run(A, nv=1, max_iterations=1, seed=0)
    out = model.output
    assert out.iterations == [1]
    _, _, Vt = np.linalg.svd(A)
    assert abs(out.v[:, 0] @ Vt[0]) < 0.99
    assert np.isclose(np.linalg.norm(out.v[:, 0]), 1.0)
    assert out.d[0] >= 0


@pytest.mark.parametrize("parts,workers", [(5, 1), (5, 4), (60, 8)])
def test_result_independent_of_partitioning(parts, workers):
    A = make_data(60, SPECTRUM, seed=8)
    base, base_store = run(A, n_partitions=1, nv=3, seed=3)
    other, other_store = run(A, n_partitions=parts, nv=3, seed=3, n_workers=workers)
    np.testing.assert_allclose(other.output.d, base.output.d, rtol=1e-9)
    np.testing.assert_allclose(other.output.v, base.output.v, atol=1e-8)
    np.testing.assert_allclose(
        other.u(other_store).to_numpy(), base.u(base_store).to_numpy(), atol=1e-8
    )


def test_standardized_data_matches_numpy():
    rng = np.random.default_rng(9)
    Z = rng.normal(size=(150, 3)) * np.array([3.0, 1.0, 0.3])
    W = rng.normal(size=(6, 3))
    X = Z @ W.T + 0.05 * rng.normal(size=(150, 6))
    X = X * np.array([1.0, 10.0, 0.1, 2.0, 5.0, 0.5]) + np.arange(6)

    model, _ = run(X, n_partitions=6, nv=2, seed=0, tolerance=1e-12,
                   transform=TransformType.STANDARDIZE)

    Xs = (X - X.mean(axis=0)) / X.std(axis=0, ddof=1)
    _, s_np, Vt_np = np.linalg.svd(Xs, full_matrices=False)
    np.testing.assert_allclose(model.output.d, s_np[:2], rtol=1e-6)
    V = _align_signs(model.output.v, Vt_np[:2].T)
    np.testing.assert_allclose(V, Vt_np[:2].T, atol=1e-4)
    np.testing.assert_allclose(model.output.norm_sub, X.mean(axis=0))


def test_recover_pca_tables():
    A = make_data(40, SPECTRUM, seed=10)
    model, _ = run(A, nv=3, seed=0, recover_pca=True)
    out = model.output
    assert list(out.eigenvectors.columns) == ["PC1", "PC2", "PC3"]
    np.testing.assert_allclose(out.std_deviation, out.d / np.sqrt(39.0))
    cum = out.pc_importance.loc["Cumulative Proportion"].to_numpy()
    assert np.isclose(cum[-1], 1.0)
    assert np.all(np.diff(cum) > 0)


def test_recover_pca_with_only_v():
    A = make_data(40, SPECTRUM, seed=10)
    model, _ = run(A, nv=2, seed=0, recover_pca=True, only_v=True)
    assert model.output.eigenvectors.shape == (5, 2)
    assert model.output.pc_importance is None
    assert model.output.std_deviation is None


def test_accumulated_error_mode_runs_full_budget():
    A = make_data(30, SPECTRUM, seed=11)
    model, _ = run(A, nv=2, seed=0, max_iterations=300, accumulate_error=True)
    assert model.output.iterations == [300, 300]
    s_np = np.linalg.svd(A, compute_uv=False)
    np.testing.assert_allclose(model.output.d, s_np[:2], rtol=1e-10)


def test_vary_seed_gives_same_decomposition():
    A = make_data(30, SPECTRUM, seed=12)
    same, _ = run(A, nv=3, seed=4, tolerance=1e-12)
    varied, _ = run(A, nv=3, seed=4, tolerance=1e-12, vary_seed=True)
    np.testing.assert_allclose(varied.output.d, same.output.d, rtol=1e-9)
    V = _align_signs(varied.output.v, same.output.v)
    np.testing.assert_allclose(V, same.output.v, atol=1e-6)


def _record_round_seeds(monkeypatch):
    import importlib

    svd_module = importlib.import_module("powersvd.svd")

    seeds = []
    real = svd_module.power_loop

    def recording_power_loop(*args, **kwargs):
        seeds.append(kwargs["seed"])
        return real(*args, **kwargs)

    monkeypatch.setattr(svd_module, "power_loop", recording_power_loop)
    return seeds


def test_unseeded_build_shares_one_start_across_rounds(monkeypatch):
    seeds = _record_round_seeds(monkeypatch)
    A = make_data(30, SPECTRUM, seed=12)
    run(A, nv=3)
    assert len(seeds) == 3
    assert seeds[0] is not None
    assert seeds == [seeds[0]] * 3


def test_unseeded_vary_seed_offsets_one_draw(monkeypatch):
    seeds = _record_round_seeds(monkeypatch)
    A = make_data(30, SPECTRUM, seed=12)
    run(A, nv=3, vary_seed=True)
    assert seeds == [seeds[0], seeds[0] + 1, seeds[0] + 2]


def test_svd_wrapper_shapes():
    A = make_data(25, SPECTRUM, seed=13)
    U, d, Vt = svd(A, nv=2, n_partitions=3, seed=0)
    assert U.shape == (25, 2)
    assert d.shape == (2,)
    assert Vt.shape == (2, 5)
    U, d, Vt = svd(A, nv=2, only_v=True, seed=0)
    assert U is None and d is None


# ----- Job lifecycle -----


class CancelAfter(Job):
    """Requests cancellation on the n-th cancellation check."""

    def __init__(self, n):
        super().__init__("SVD")
        self.n = n
        self.calls = 0

    def check_cancelled(self):
        self.calls += 1
        if self.calls >= self.n:
            self.cancel()
        super().check_cancelled()


def _assert_cancelled(model, job, store, frame_key):
    assert model is None
    assert job.state is JobState.CANCELLED
    assert "U_cancel" not in store
    assert not any(k.startswith("SVDModel") for k in store.keys())
    assert not store.is_locked(frame_key)


def test_cancel_during_first_round():
    A = make_data(40, np.linspace(1.0, 0.9, 5), seed=14)
    store = Store()
    job = CancelAfter(4)
    fr = PartitionedFrame.from_array(A, 2)
    params = SVDParameters(nv=3, max_iterations=1000, seed=0, tolerance=1e-12, u_key="U_cancel")
    builder = SVD(params, fr, store=store, job=job, frame_key="train")
    model = builder.train()
    _assert_cancelled(model, job, store, "train")


def test_cancel_mid_second_round():
    A = make_data(40, np.linspace(1.0, 0.9, 5), seed=14)
    first, _ = run(A, n_partitions=2, nv=3, seed=0, tolerance=1e-12)
    # one check before round 1, one per step, then one before round 2
    n = 1 + first.output.iterations[0] + 2

    store = Store()
    job = CancelAfter(n)
    fr = PartitionedFrame.from_array(A, 2)
    params = SVDParameters(nv=3, max_iterations=10000, seed=0, tolerance=1e-12, u_key="U_cancel")
    model = SVD(params, fr, store=store, job=job, frame_key="train").train()
    _assert_cancelled(model, job, store, "train")


def test_cancel_before_start():
    A = make_data(20, SPECTRUM, seed=15)
    job = Job()
    job.cancel()
    store = Store()
    fr = PartitionedFrame.from_array(A, 2)
    params = SVDParameters(nv=2, max_iterations=100, u_key="U_cancel")
    model = SVD(params, fr, store=store, job=job, frame_key="train").train()
    _assert_cancelled(model, job, store, "train")


def test_successful_job_releases_locks():
    A = make_data(20, SPECTRUM, seed=16)
    store = Store()
    job = Job()
    builder = SVD(SVDParameters(nv=2, max_iterations=100, seed=0), PartitionedFrame.from_array(A), store=store, job=job, frame_key="train")
    model = builder.train()
    assert job.state is JobState.DONE
    assert store.get(model.key) is model
    assert not store.is_locked("train")
    assert not store.is_locked(model.key)


@pytest.mark.parametrize(
    "nv,max_iterations,n_errors",
    [(0, 10, 1), (6, 10, 1), (2, 0, 1), (0, 0, 2)],
)
def test_validation_errors_are_aggregated(nv, max_iterations, n_errors):
    A = make_data(20, SPECTRUM, seed=17)
    store = Store()
    job = Job()
    params = SVDParameters(nv=nv, max_iterations=max_iterations, u_key="U_bad")
    with pytest.raises(ValidationError) as info:
        SVD(params, PartitionedFrame.from_array(A), store=store, job=job).train()
    assert len(info.value.messages) == n_errors
    assert job.state is JobState.FAILED
    assert "U_bad" not in store


def test_non_numeric_frame_is_rejected():
    df = pd.DataFrame({"a": [1.0, 2.0, 3.0], "b": ["x", "y", "z"]})
    fr = PartitionedFrame.from_dataframe(df)
    with pytest.raises(ValidationError, match="numeric"):
        SVD(SVDParameters(nv=1, max_iterations=10), fr).train()


def test_missing_frame_is_rejected():
    with pytest.raises(ValidationError, match="Missing training frame"):
        SVD(SVDParameters(nv=1, max_iterations=10), None).train()


def test_recover_pca_rejects_single_row():
    fr = PartitionedFrame.from_array(np.array([[1.0, 2.0, 3.0]]))
    job = Job()
    with pytest.raises(ValidationError, match="at least 2 rows"):
        SVD(SVDParameters(nv=1, max_iterations=10, recover_pca=True), fr, job=job).train()
    assert job.state is JobState.FAILED


def test_single_row_without_pca_is_accepted():
    fr = PartitionedFrame.from_array(np.array([[1.0, 2.0, 3.0]]))
    assert SVDParameters(nv=1, max_iterations=10).validate(fr) == []
    assert SVDParameters(nv=1, max_iterations=10, recover_pca=True, only_v=True).validate(fr) == []


def test_locked_frame_fails_job_and_cleans_up():
    A = make_data(20, SPECTRUM, seed=18)
    store = Store()
    store.lock("train", "another-job")
    job = Job()
    params = SVDParameters(nv=2, max_iterations=10, u_key="U_locked")
    with pytest.raises(LockError):
        SVD(params, PartitionedFrame.from_array(A), store=store, job=job, frame_key="train").train()
    assert job.state is JobState.FAILED
    assert isinstance(job.exception, LockError)
    assert "U_locked" not in store
    assert store.is_locked("train")


def test_missing_values_detected_by_default():
    A = make_data(20, SPECTRUM, seed=19)
    A[3, 1] = np.nan
    store = Store()
    job = Job()
    with pytest.raises(NumericalDegeneracyError):
        run(A, store=store, job=job, nv=2, seed=0, u_key="U_nan")
    assert job.state is JobState.FAILED
    assert "U_nan" not in store


def test_missing_values_propagate_silently_when_unchecked():
    A = make_data(20, SPECTRUM, seed=19)
    A[3, 1] = np.nan
    model, _ = run(A, nv=2, seed=0, max_iterations=20, check_numerics=False)
    assert np.isnan(model.output.v).any()
    assert np.isnan(model.output.d).any()
