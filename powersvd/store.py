# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

"""
In-process key/value store with exclusive per-key locks.

The SVD driver only relies on `put`, `get`, `remove`, `lock` and `unlock`,
so any shared store offering the same calls can be injected instead.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Hashable, Iterable

from .errors import LockError

logger = logging.getLogger(__name__)


class Store:
    def __init__(self) -> None:
        self._values: Dict[str, Any] = {}
        self._locks: Dict[str, Hashable] = {}
        self._mutex = threading.Lock()

    def put(self, key: str, value: Any) -> None:
        with self._mutex:
            self._values[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        with self._mutex:
            return self._values.get(key, default)

    def remove(self, key: str) -> None:
        with self._mutex:
            self._values.pop(key, None)

    def keys(self):
        with self._mutex:
            return list(self._values)

    def __contains__(self, key: str) -> bool:
        with self._mutex:
            return key in self._values

    def lock(self, key: str, owner: Hashable) -> None:
        """Take the exclusive lock on `key` for `owner` (re-entrant per owner)."""
        with self._mutex:
            holder = self._locks.get(key)
            if holder is not None and holder != owner:
                raise LockError(f"{key!r} is locked by {holder!r}")
            self._locks[key] = owner

    def unlock(self, key: str, owner: Hashable) -> None:
        with self._mutex:
            if self._locks.get(key) == owner:
                del self._locks[key]
            else:
                logger.debug(f"unlock({key!r}) by {owner!r}: not the holder, ignored")

    def is_locked(self, key: str) -> bool:
        with self._mutex:
            return key in self._locks

    @contextmanager
    def locked(self, keys: Iterable[str], owner: Hashable):
        """Lock every key for the duration of the block; always unlock."""
        taken = []
        try:
            for key in keys:
                self.lock(key, owner)
                taken.append(key)
            yield self
        finally:
            for key in reversed(taken):
                self.unlock(key, owner)
