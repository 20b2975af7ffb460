# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

"""
Row-partitioned datasets.

A PartitionedFrame keeps a matrix as a list of contiguous row blocks
(chunks). Nothing in the SVD pipeline touches the whole matrix at once:
every full-data computation is an MRTask that visits the chunks.
"""

from typing import List, Optional, Sequence

import numpy as np
import pandas as pd


class PartitionedFrame:
    """
    A matrix stored as row partitions.

    Attributes:
        chunks: List of 2-D arrays, one per partition, all with `ncols` columns.
        names: Column names.
        dtypes: Per-column dtypes of the source, used for numeric checks.
    """

    def __init__(
        self,
        chunks: Sequence[np.ndarray],
        names: Optional[Sequence[str]] = None,
        dtypes: Optional[Sequence] = None,
    ) -> None:
        if len(chunks) == 0:
            raise ValueError("A PartitionedFrame needs at least one chunk.")
        chunks = [np.asarray(c) for c in chunks]
        ncols = chunks[0].shape[1] if chunks[0].ndim == 2 else -1
        for c in chunks:
            if c.ndim != 2 or c.shape[1] != ncols:
                raise ValueError("All chunks must be 2-D with the same column count.")
        self.chunks: List[np.ndarray] = chunks
        self.names = (
            list(names) if names is not None else [f"C{j + 1}" for j in range(ncols)]
        )
        if len(self.names) != ncols:
            raise ValueError("Number of names does not match number of columns.")
        self.dtypes = list(dtypes) if dtypes is not None else [chunks[0].dtype] * ncols

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    @classmethod
    def from_array(
        cls, A: np.ndarray, n_partitions: int = 1, names=None
    ) -> "PartitionedFrame":
        """Split a 2-D array into `n_partitions` contiguous row blocks."""
        A = np.asarray(A)
        if A.ndim != 2:
            raise ValueError("from_array expects a 2-D array.")
        n_partitions = max(1, min(int(n_partitions), max(1, A.shape[0])))
        return cls(np.array_split(A, n_partitions, axis=0), names=names)

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame, n_partitions: int = 1) -> "PartitionedFrame":
        """
        Split a DataFrame into row blocks. Non-numeric columns are kept as
        object chunks so that validation can report them.
        """
        names = [str(c) for c in df.columns]
        dtypes = list(df.dtypes)
        numeric = all(pd.api.types.is_numeric_dtype(t) for t in dtypes)
        values = df.to_numpy(dtype=float if numeric else object)
        n_partitions = max(1, min(int(n_partitions), max(1, len(df))))
        return cls(np.array_split(values, n_partitions, axis=0), names=names, dtypes=dtypes)

    def zeros(self, ncols: int) -> "PartitionedFrame":
        """New float frame with this frame's row layout and `ncols` zero columns."""
        return PartitionedFrame(
            [np.zeros((c.shape[0], ncols)) for c in self.chunks],
            names=[f"U{j + 1}" for j in range(ncols)],
        )

    # ------------------------------------------------------------------
    # Shape and validation
    # ------------------------------------------------------------------
    @property
    def ncols(self) -> int:
        return self.chunks[0].shape[1]

    @property
    def nrows(self) -> int:
        return sum(c.shape[0] for c in self.chunks)

    @property
    def n_partitions(self) -> int:
        return len(self.chunks)

    def numeric_errors(self) -> List[str]:
        """Names of columns that are not numeric (bool counts as non-numeric)."""
        bad = []
        for name, t in zip(self.names, self.dtypes):
            if not pd.api.types.is_numeric_dtype(t) or pd.api.types.is_bool_dtype(t):
                bad.append(name)
        return bad

    def to_numpy(self) -> np.ndarray:
        """Concatenate all chunks. Only meant for small frames and tests."""
        return np.concatenate(self.chunks, axis=0)

    def __repr__(self) -> str:
        return (
            f"PartitionedFrame(nrows={self.nrows}, ncols={self.ncols}, "
            f"n_partitions={self.n_partitions})"
        )
