# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

"""
powersvd
========

Truncated Singular Value Decomposition of row-partitioned data by the
Power Method with Hotelling deflation.

The data matrix is never assembled: the Gram matrix, the singular values
and the left singular vectors are all computed by map-reduce passes over
row partitions.

Public API
~~~~~~~~~~
- Builders
    - `SVD`, `SVDParameters`, `SVDModel`, `svd`
- Data
    - `PartitionedFrame`, `TransformType`, `normalization_vectors`
- Iterative methods
    - `power_loop`, `Deflator`
- Post-processing
    - `recover_pca`
- Collaborators
    - `Store`, `Job`, `JobState`

Example
-------
>>> import numpy as np, powersvd as ps
>>> A = np.random.randn(200, 6)
>>> U, d, Vt = ps.svd(A, nv=3, n_partitions=4, seed=42)
>>> U.shape, d.shape, Vt.shape
((200, 3), (3,), (3, 6))
"""

from importlib.metadata import version as _pkg_version

from .deflation import Deflator
from .eigen import power_loop
from .errors import (
    JobCancelledError,
    LockError,
    NumericalDegeneracyError,
    ValidationError,
)
from .frame import PartitionedFrame
from .gram import GramTask
from .job import Job, JobState
from .mrtask import MRTask
from .pca import recover_pca
from .store import Store
from .svd import SVD, SVDModel, SVDOutput, SVDParameters, svd
from .transform import TransformType, normalization_vectors

__all__ = [
    "SVD",
    "SVDParameters",
    "SVDModel",
    "SVDOutput",
    "svd",
    "PartitionedFrame",
    "MRTask",
    "GramTask",
    "TransformType",
    "normalization_vectors",
    "power_loop",
    "Deflator",
    "recover_pca",
    "Store",
    "Job",
    "JobState",
    "ValidationError",
    "NumericalDegeneracyError",
    "JobCancelledError",
    "LockError",
]

# ---------------------------------------------------------------------
# Version string (helps “pip show powersvd”, Sphinx, etc.)
# ---------------------------------------------------------------------
try:  # installed via pip / build backend
    __version__ = _pkg_version(__name__)
except Exception:  # running from a checkout
    __version__ = "0.0.0.dev0"

# ---------------------------------------------------------------------
# Library logging stays silent unless the application configures it.
# ---------------------------------------------------------------------
import logging as _logging

_logging.getLogger(__name__).addHandler(_logging.NullHandler())
