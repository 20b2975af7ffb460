# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

"""
Exceptions raised by the SVD builder and its collaborators.
"""

from typing import Iterable


class ValidationError(ValueError):
    """Parameter or input-frame errors found before any work starts."""

    def __init__(self, messages: Iterable[str]):
        self.messages = list(messages)
        super().__init__("Found validation errors: " + "; ".join(self.messages))


class NumericalDegeneracyError(ArithmeticError):
    """Raised when an iterate or matrix turns zero or non-finite."""


class JobCancelledError(RuntimeError):
    """Raised inside a running job once its cancel flag is set."""


class LockError(RuntimeError):
    """Raised when a key is already locked by a different owner."""
