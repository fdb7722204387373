"""
Provisioning Package

Template validation, permission resolution and the rate-limited pipeline
that builds a guild from a template.
"""

from .engine import Provisioner, ProvisioningPipeline, SetupResult
from .errors import (
    FatalRemoteError,
    PerItemError,
    ProvisioningError,
    RunInProgressError,
    TemplateValidationError,
    TransientRemoteError,
)
from .progress import Phase, ProgressThrottle
from .rate_limiter import RateLimitedClient, RatePolicy
from .registry import RunRegistry
from .teardown import TeardownResult
from .template import ServerTemplate
from .validation import TemplateValidator, ValidationResult, validate_template

__all__ = [
    "Provisioner",
    "ProvisioningPipeline",
    "SetupResult",
    "TeardownResult",
    "ProvisioningError",
    "TemplateValidationError",
    "FatalRemoteError",
    "TransientRemoteError",
    "PerItemError",
    "RunInProgressError",
    "Phase",
    "ProgressThrottle",
    "RateLimitedClient",
    "RatePolicy",
    "RunRegistry",
    "ServerTemplate",
    "TemplateValidator",
    "ValidationResult",
    "validate_template",
]
