"""
Provisioning error taxonomy.

Validation and fatal remote errors end a run. Per-item errors are recorded
in the run's result and the run moves on to the next item. Transient errors
never leave the rate-limited client: they are retried and, once the attempt
ceiling is reached, escalated to per-item errors.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    from .engine import SetupResult
    from .teardown import TeardownResult
    from .validation import ValidationResult


class ProvisioningError(Exception):
    """Base class for every error raised by the provisioning engine."""


class TemplateValidationError(ProvisioningError):
    """The template failed preflight validation; nothing was sent to Discord."""

    def __init__(self, result: "ValidationResult"):
        self.result = result
        messages = "; ".join(f"{e.field}: {e.message}" for e in result.errors[:5])
        super().__init__(f"Template is invalid ({len(result.errors)} errors): {messages}")


class FatalRemoteError(ProvisioningError):
    """The credential cannot act on the target at all. The run stops here."""

    def __init__(self, operation: str, message: str, *, status: int = 0, code: int = 0):
        self.operation = operation
        self.status = status
        self.code = code
        # Filled in by the pipeline with whatever was created before the abort
        self.result: Optional[Union["SetupResult", "TeardownResult"]] = None
        super().__init__(f"{operation}: {message}")


class TransientRemoteError(ProvisioningError):
    """Rate limit or server-side failure. Retried by the client."""

    def __init__(self, operation: str, message: str, *, status: int = 0, retry_after: Optional[float] = None):
        self.operation = operation
        self.status = status
        self.retry_after = retry_after
        super().__init__(f"{operation}: {message}")


class PerItemError(ProvisioningError):
    """A single remote operation failed. Recorded; the run continues."""

    def __init__(self, operation: str, message: str, *, status: int = 0, code: int = 0, attempts: int = 1):
        self.operation = operation
        self.status = status
        self.code = code
        self.attempts = attempts
        super().__init__(message)


class RunInProgressError(ProvisioningError):
    """Another run already holds the target."""

    def __init__(self, target_id: int):
        self.target_id = target_id
        super().__init__(f"A provisioning run is already in progress for guild {target_id}")
