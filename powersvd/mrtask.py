# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

"""
Map-reduce over the partitions of a PartitionedFrame.

A task is cloned once per partition and `map` runs on every clone as a
`dask.delayed` call, on the threaded scheduler when more than one worker is
requested. The clones are folded left to right with `reduce`, and
`post_global` finalizes the folded result.

Subclasses must *rebind* their accumulators in `map` (``self.s = self.s + x``)
rather than mutate them in place, because clones are shallow copies that
share every attribute with the prototype.
"""

import copy
import logging

import dask
import numpy as np

from .frame import PartitionedFrame

logger = logging.getLogger(__name__)


class MRTask:
    """Base class for one distributed pass."""

    def map(self, idx: int, chunk: np.ndarray) -> None:
        raise NotImplementedError

    def reduce(self, other: "MRTask") -> None:
        """Fold `other` into self. Default: nothing to combine."""

    def post_global(self) -> None:
        """Called once on the fully reduced task."""

    def _run(self, idx: int, chunk: np.ndarray) -> "MRTask":
        task = copy.copy(self)
        task.map(idx, chunk)
        return task

    def do_all(self, frame: PartitionedFrame, n_workers: int = 1) -> "MRTask":
        """
        Run the pass over every chunk of `frame` and return the reduced task.

        The call returns only after every partition has been mapped and
        reduced, so it doubles as a barrier between passes.
        """
        tasks = [dask.delayed(self._run)(idx, chunk) for idx, chunk in enumerate(frame.chunks)]
        if n_workers > 1 and len(tasks) > 1:
            parts = dask.compute(*tasks, scheduler="threads", num_workers=n_workers)
        else:
            parts = dask.compute(*tasks, scheduler="synchronous")

        result = parts[0]
        for other in parts[1:]:
            result.reduce(other)
        result.post_global()
        logger.debug(
            f"{type(self).__name__}: reduced {len(parts)} partitions "
            f"with {max(1, n_workers)} worker(s)"
        )
        return result
