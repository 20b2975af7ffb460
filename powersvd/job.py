# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

import enum
import threading
from typing import Optional

from .errors import JobCancelledError
from .utils import make_key


class JobState(enum.Enum):
    CREATED = "CREATED"
    RUNNING = "RUNNING"
    DONE = "DONE"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


class Job:
    """
    Lifecycle of one model build.

    `cancel()` may be called from any thread; the running build notices it
    at its next `check_cancelled()` call.
    """

    def __init__(self, description: str = "SVD", key: Optional[str] = None) -> None:
        self.description = description
        self.key = key or make_key("Job")
        self.state = JobState.CREATED
        self.exception: Optional[BaseException] = None
        self._cancel = threading.Event()

    def start(self) -> None:
        self.state = JobState.RUNNING

    def cancel(self) -> None:
        self._cancel.set()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel.is_set()

    def check_cancelled(self) -> None:
        if self._cancel.is_set():
            raise JobCancelledError(f"Job {self.key} cancelled")

    def done(self) -> None:
        self.state = JobState.DONE

    def cancelled(self) -> None:
        self.state = JobState.CANCELLED

    def failed(self, exc: BaseException) -> None:
        self.state = JobState.FAILED
        self.exception = exc

    def __repr__(self) -> str:
        return f"Job({self.description!r}, key={self.key!r}, state={self.state.name})"
