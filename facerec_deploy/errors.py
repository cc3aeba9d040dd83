# facerec_deploy/errors.py
from __future__ import annotations

from typing import Optional

from botocore.exceptions import ClientError


class ProvisionError(RuntimeError):
    """Base class for every error the provisioning run can surface."""


class ConfigError(ProvisionError):
    """Raised when credentials or the account id cannot be resolved."""


class AlreadyExists(ProvisionError):
    """The resource exists already. Absorbed by callers, never fatal."""


class AccessDenied(ProvisionError):
    """The caller is not allowed to perform the operation."""


class NotFound(ProvisionError):
    """A resource the run depends on does not exist."""


class ProviderError(ProvisionError):
    """Generic control-plane failure."""


class StrategyFailure(ProvisionError):
    """One role strategy could not produce a role; the next one is tried."""

    def __init__(self, strategy: str, reason: str, denied: bool = False):
        super().__init__(f"{strategy}: {reason}")
        self.strategy = strategy
        self.reason = reason
        self.denied = denied


class NoUsableRoleError(ProvisionError):
    """No strategy produced an execution role."""

    def __init__(self, failures):
        self.failures = list(failures)
        lines = [f"  - {f}" for f in self.failures] or ["  - no strategy was applicable"]
        super().__init__(
            "No usable execution role could be resolved:\n"
            + "\n".join(lines)
            + "\nSet ROLE_NAME to an existing role, list one in FALLBACK_ROLE_NAMES, "
            "or run with credentials allowed to call iam:CreateRole."
        )


ACCESS_DENIED_CODES = {
    "AccessDenied",
    "AccessDeniedException",
    "UnauthorizedOperation",
    "UnauthorizedAccess",
    "AuthorizationError",
    "403",
}

ALREADY_EXISTS_CODES = {
    "EntityAlreadyExists",
    "BucketAlreadyOwnedByYou",
}

NOT_FOUND_CODES = {
    "NoSuchEntity",
    "NoSuchBucket",
    "ResourceNotFoundException",
    "NotFound",
    "404",
}


def error_code(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Code", "")


def error_message(e: ClientError) -> str:
    return e.response.get("Error", {}).get("Message", str(e))


def is_access_denied(e: ClientError) -> bool:
    return error_code(e) in ACCESS_DENIED_CODES


def is_already_exists(e: ClientError) -> bool:
    return error_code(e) in ALREADY_EXISTS_CODES


def is_not_found(e: ClientError) -> bool:
    return error_code(e) in NOT_FOUND_CODES


def classify_client_error(e: ClientError, context: Optional[str] = None) -> ProvisionError:
    """Map a botocore ClientError onto one of the provisioning error kinds."""
    code = error_code(e)
    prefix = f"{context}: " if context else ""
    message = f"{prefix}{code} - {error_message(e)}"
    if code in ACCESS_DENIED_CODES:
        kind = AccessDenied
    elif code in ALREADY_EXISTS_CODES:
        kind = AlreadyExists
    elif code in NOT_FOUND_CODES:
        kind = NotFound
    else:
        kind = ProviderError
    err = kind(message)
    err.__cause__ = e
    return err


__all__ = [
    "ProvisionError",
    "ConfigError",
    "AlreadyExists",
    "AccessDenied",
    "NotFound",
    "ProviderError",
    "StrategyFailure",
    "NoUsableRoleError",
    "classify_client_error",
    "error_code",
    "error_message",
    "is_access_denied",
    "is_already_exists",
    "is_not_found",
]
