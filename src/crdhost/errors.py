# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/crdhost/errors.py
from __future__ import annotations


class SetupError(RuntimeError):
    """Base class for provisioning failures."""

    exit_code: int = 1


class ValidationError(SetupError):
    """Raised when operator input is rejected. Always recovered by re-prompting."""


class PreflightFailure(SetupError):
    """Raised when a prerequisite is missing and the operator did not override it."""


class OperationFailure(SetupError):
    """Raised when an external command (or fetch) failed for good."""

    def __init__(self, message: str, returncode: int = 1):
        super().__init__(message)
        self.returncode = returncode if returncode else 1

    @property
    def exit_code(self) -> int:  # type: ignore[override]
        return self.returncode


class OperatorDeclined(SetupError):
    """Raised when the operator answers no at a continuation gate."""
