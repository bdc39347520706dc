"""Shared error taxonomy and result type for previewkit.

Every manager operation returns an OperationResult instead of raising across
the UI boundary. The exceptions below are raised internally by the protocols
and collaborators, then folded into a result by the manager.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from previewkit.manager import ImpersonationState
    from previewkit.models import ResetOutcome


class PreviewError(Exception):
    """Base exception for previewkit operations."""

    code = "preview_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PreconditionError(PreviewError):
    """Raised when an operation is called in a state that does not allow it."""

    code = "precondition"


class LostPrincipalError(PreconditionError):
    """Raised when no principal snapshot can be found in memory or in the store."""

    code = "lost_principal"


class BusyError(PreviewError):
    """Raised when an operation of the same category is already in flight."""

    code = "busy"


class IdentityServiceError(PreviewError):
    """Raised when the identity service fails or declines a request."""

    code = "identity_service"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class IdentityUnauthorizedError(IdentityServiceError):
    """Raised when the identity service rejects the credential (HTTP 401)."""

    pass


class IdentityForbiddenError(IdentityServiceError):
    """Raised when the credential may not perform the request (HTTP 403)."""

    pass


class UnknownRoleError(IdentityServiceError):
    """Raised when the identity service has no synthetic account for a role (HTTP 404)."""

    pass


class RecordStoreError(PreviewError):
    """Raised when the durable record store fails. Keeps the SQLSTATE if any."""

    code = "record_store"

    def __init__(self, message: str, sqlstate: str | None = None):
        super().__init__(message)
        self.sqlstate = sqlstate


class DegradedExitWarning(PreviewError):
    """Exit completed by reusing the stored principal token.

    Never raised. Attached to a successful exit result when the identity
    service could not mint a fresh principal session.
    """

    code = "degraded_exit"

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a manager operation as seen by UI collaborators.

    Attributes:
        ok: True when the operation committed (or was a no-op success)
        state: Manager state after the operation
        error: The failure, when ok is False
        warning: Non-fatal condition on a successful operation
        reset: Counts from the identity service, for reset_synthetic_data()
    """

    ok: bool
    state: ImpersonationState
    error: PreviewError | None = None
    warning: PreviewError | None = None
    reset: ResetOutcome | None = None

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error is not None else None

    def as_dict(self) -> dict[str, Any]:
        """Flatten for JSON responses or UI state stores."""
        return {
            "ok": self.ok,
            "state": self.state.kind.value,
            "role": self.state.role.value if self.state.role else None,
            "error": self.error.message if self.error else None,
            "error_code": self.error_code,
            "warning": self.warning.message if self.warning else None,
        }
