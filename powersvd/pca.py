# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

IMPORTANCE_ROWS = ["Standard deviation", "Proportion of Variance", "Cumulative Proportion"]


def component_names(k: int) -> list:
    return [f"PC{i + 1}" for i in range(k)]


def recover_pca(
    v: np.ndarray,
    d: Optional[np.ndarray],
    nrows: int,
    names: Optional[Sequence[str]] = None,
) -> Tuple[pd.DataFrame, Optional[np.ndarray], Optional[pd.DataFrame]]:
    """
    Read PCA statistics off a computed SVD.

    Returns:
      eigenvectors: (n_features, k) "Rotation" table, the columns of V
      std_deviation: (k,) sd per component = d / sqrt(nrows - 1), or None
      importance: 3-by-k table of sd, proportion and cumulative proportion
                  of variance, or None when no singular values are given

    Proportions are relative to the variance captured by the k components,
    not to the total variance of the data.
    """
    v = np.asarray(v, float)
    k = v.shape[1]
    headers = component_names(k)
    index = list(names) if names is not None else [f"C{j + 1}" for j in range(v.shape[0])]
    eigenvectors = pd.DataFrame(v, index=index, columns=headers)

    if d is None:
        return eigenvectors, None, None

    # 1) sd of the scores: sigma / sqrt(n - 1), n >= 2 is checked at validation
    sdev = np.asarray(d, float) / np.sqrt(nrows - 1.0)

    # 2) Variance bookkeeping
    variances = sdev**2
    prop_var = variances / variances.sum()
    cum_var = np.cumsum(prop_var)

    importance = pd.DataFrame(
        np.vstack([sdev, prop_var, cum_var]), index=IMPORTANCE_ROWS, columns=headers
    )
    return eigenvectors, sdev, importance
