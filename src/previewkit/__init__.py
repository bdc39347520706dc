"""previewkit - Owner "preview as role" session management."""

from previewkit.base import (
    BusyError,
    DegradedExitWarning,
    IdentityForbiddenError,
    IdentityServiceError,
    IdentityUnauthorizedError,
    LostPrincipalError,
    OperationResult,
    PreconditionError,
    PreviewError,
    RecordStoreError,
    UnknownRoleError,
)
from previewkit.identity import HttpIdentityService, IdentityService
from previewkit.manager import (
    BusyFlags,
    ImpersonationState,
    SessionImpersonationManager,
    StateKind,
)
from previewkit.models import (
    PreviewMarker,
    PrincipalSnapshot,
    ResetOutcome,
    Session,
    UserRef,
)
from previewkit.roles import Role, RoleInfo, available_roles, describe_role
from previewkit.sink import ActiveSessionSink, MemorySessionSink
from previewkit.store import (
    OWNER_SNAPSHOT_KEY,
    PREVIEW_MARKER_KEY,
    MemoryRecordStore,
    PostgresRecordStore,
    RecordStore,
)

__all__ = [
    # Manager
    "SessionImpersonationManager",
    "ImpersonationState",
    "StateKind",
    "BusyFlags",
    "OperationResult",
    # Roles
    "Role",
    "RoleInfo",
    "describe_role",
    "available_roles",
    # Models
    "Session",
    "UserRef",
    "PrincipalSnapshot",
    "PreviewMarker",
    "ResetOutcome",
    # Collaborators
    "RecordStore",
    "MemoryRecordStore",
    "PostgresRecordStore",
    "OWNER_SNAPSHOT_KEY",
    "PREVIEW_MARKER_KEY",
    "IdentityService",
    "HttpIdentityService",
    "ActiveSessionSink",
    "MemorySessionSink",
    # Errors
    "PreviewError",
    "PreconditionError",
    "LostPrincipalError",
    "BusyError",
    "IdentityServiceError",
    "IdentityUnauthorizedError",
    "IdentityForbiddenError",
    "UnknownRoleError",
    "RecordStoreError",
    "DegradedExitWarning",
]
