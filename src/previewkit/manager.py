"""
previewkit.manager - Owner "preview as role" session state machine.

This module provides:
- SessionImpersonationManager: enter/switch/exit/reset of a preview episode
- ImpersonationState, StateKind: the observable state
- BusyFlags: per-category in-flight flags

Durable records (see previewkit.store):
    ownerSnapshot  - the owner's own session, written before any network call
    previewMarker  - {active, role}, written only after a role session is minted

At rest both records are present or both are absent. Every privilege
changing call to the identity service is authorized with the owner's
snapshot token, never with the token of the role being previewed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable

from pydantic import BaseModel, ValidationError

from previewkit.base import (
    BusyError,
    DegradedExitWarning,
    IdentityServiceError,
    LostPrincipalError,
    OperationResult,
    PreconditionError,
    PreviewError,
    RecordStoreError,
)
from previewkit.crypto import token_fingerprint
from previewkit.identity import IdentityService
from previewkit.models import PreviewMarker, PrincipalSnapshot, ResetOutcome, Session
from previewkit.roles import Role, RoleInfo, available_roles, describe_role, parse_role
from previewkit.sink import ActiveSessionSink
from previewkit.store import OWNER_SNAPSHOT_KEY, PREVIEW_MARKER_KEY, RecordStore

__all__ = [
    "BusyFlags",
    "ImpersonationState",
    "SessionImpersonationManager",
    "StateKind",
]

log = logging.getLogger(__name__)


class StateKind(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    # Transient, only while an operation is in flight; never persisted
    ENTERING = "entering"
    SWITCHING = "switching"
    EXITING = "exiting"
    RESETTING = "resetting"


@dataclass(frozen=True)
class ImpersonationState:
    """
    Manager state.

    role is the committed preview role (None when idle or entering).
    target_role is set for ENTERING and SWITCHING.
    """

    kind: StateKind
    role: Role | None = None
    target_role: Role | None = None

    @classmethod
    def idle(cls) -> ImpersonationState:
        return cls(StateKind.IDLE)

    @classmethod
    def active(cls, role: Role) -> ImpersonationState:
        return cls(StateKind.ACTIVE, role=role)

    @property
    def is_transient(self) -> bool:
        return self.kind not in (StateKind.IDLE, StateKind.ACTIVE)


@dataclass(frozen=True)
class BusyFlags:
    entering: bool = False
    switching: bool = False
    exiting: bool = False
    resetting: bool = False

    @property
    def any(self) -> bool:
        """True while any operation is in flight. UIs disable preview controls on this."""
        return self.entering or self.switching or self.exiting or self.resetting


_CATEGORIES = ("entering", "switching", "exiting", "resetting")


class SessionImpersonationManager:
    """
    Lets an owner operate the app as a synthetic role and return safely.

    Example:
        manager = await SessionImpersonationManager.open(store, identity, sink)

        result = await manager.enter(Role.CLEANER)
        if not result.ok:
            show_error(result.error.message)

        await manager.switch("homeowner")
        await manager.exit()

    Operations return OperationResult and do not raise PreviewError.
    Operations of the same category may not overlap (BusyError). Callers
    must serialize operations of different categories themselves, e.g.
    by disabling controls while busy_flags.any is set.
    """

    def __init__(
        self,
        store: RecordStore,
        identity: IdentityService,
        sink: ActiveSessionSink,
        *,
        principal_kinds: Iterable[str] | None = ("owner",),
    ) -> None:
        """
        Args:
            store: Durable record store for ownerSnapshot/previewMarker
            identity: Service that mints and rotates sessions
            sink: Receives every session the manager activates
            principal_kinds: Account kinds allowed to start a preview;
                None disables the check
        """
        self._store = store
        self._identity = identity
        self._sink = sink
        self._principal_kinds = (
            frozenset(principal_kinds) if principal_kinds is not None else None
        )

        self._committed = ImpersonationState.idle()
        self._snapshot: PrincipalSnapshot | None = None
        self._marker: PreviewMarker | None = None
        self._busy: dict[str, bool] = dict.fromkeys(_CATEGORIES, False)
        self._in_flight: dict[str, ImpersonationState] = {}
        self._last_error: PreviewError | None = None

    @classmethod
    async def open(
        cls,
        store: RecordStore,
        identity: IdentityService,
        sink: ActiveSessionSink,
        **kwargs: Any,
    ) -> SessionImpersonationManager:
        """Construct a manager and run restore() once."""
        manager = cls(store, identity, sink, **kwargs)
        await manager.restore()
        return manager

    # -- observable fields -------------------------------------------------

    @property
    def state(self) -> ImpersonationState:
        if self._in_flight:
            return next(reversed(self._in_flight.values()))
        return self._committed

    @property
    def current_role(self) -> Role | None:
        return self._committed.role

    @property
    def busy_flags(self) -> BusyFlags:
        return BusyFlags(**self._busy)

    @property
    def last_error(self) -> PreviewError | None:
        return self._last_error

    @property
    def is_previewing(self) -> bool:
        return self._committed.kind is StateKind.ACTIVE

    # -- role metadata -----------------------------------------------------

    @staticmethod
    def describe_role(role: Role | str | None) -> RoleInfo:
        return describe_role(role)

    @staticmethod
    def available_roles() -> list[RoleInfo]:
        return available_roles()

    # -- operations --------------------------------------------------------

    async def enter(self, role: Role | str) -> OperationResult:
        """Start previewing as role. Requires Idle and an owner session in the sink."""
        transient = ImpersonationState(StateKind.ENTERING, target_role=parse_role(role))
        return await self._run("entering", transient, lambda: self._enter(role))

    async def switch(self, role: Role | str) -> OperationResult:
        """Move an active preview to another role. Same role is a no-op success."""
        transient = ImpersonationState(
            StateKind.SWITCHING, role=self._committed.role, target_role=parse_role(role)
        )
        return await self._run("switching", transient, lambda: self._switch(role))

    async def exit(self) -> OperationResult:
        """End the preview and hand the owner session back to the sink.

        If a fresh owner session cannot be minted, the stored owner token is
        reused and the result carries a DegradedExitWarning.
        """
        transient = ImpersonationState(StateKind.EXITING, role=self._committed.role)
        return await self._run("exiting", transient, self._exit)

    async def reset_synthetic_data(self) -> OperationResult:
        """Ask the identity service to wipe and reseed preview data for the active role."""
        transient = ImpersonationState(StateKind.RESETTING, role=self._committed.role)
        return await self._run("resetting", transient, self._reset)

    async def restore(self) -> OperationResult:
        """Rebuild in-memory state from the durable records after a cold start.

        Makes no identity service or sink calls. A lone record (only one of
        the two keys) is deleted and the manager stays Idle.
        """
        try:
            await self._restore()
        except PreviewError as e:
            return self._failed("restore", e)
        return self._succeeded()

    async def check_prior_session(self) -> bool:
        """True if an owner snapshot is stored. Read-only; does not change state.

        Raises:
            RecordStoreError: If the store cannot be read.
        """
        return await self._store.get(OWNER_SNAPSHOT_KEY) is not None

    # -- protocol implementations ------------------------------------------

    async def _run(
        self,
        category: str,
        transient: ImpersonationState,
        operation: Callable[[], Awaitable[OperationResult]],
    ) -> OperationResult:
        # Flag is checked and set before the first await
        if self._busy[category]:
            log.debug("Rejected %s: already in progress", category)
            return OperationResult(
                ok=False,
                state=self.state,
                error=BusyError(f"Preview {category} is already in progress"),
            )

        self._busy[category] = True
        self._in_flight[category] = transient
        try:
            return await operation()
        except PreviewError as e:
            return self._failed(category, e)
        finally:
            self._busy[category] = False
            self._in_flight.pop(category, None)

    def _succeeded(self, **extra: Any) -> OperationResult:
        self._last_error = None
        return OperationResult(ok=True, state=self._committed, **extra)

    def _failed(self, operation: str, error: PreviewError) -> OperationResult:
        self._last_error = error
        log.warning("Preview %s failed (%s): %s", operation, error.code, error.message)
        return OperationResult(ok=False, state=self._committed, error=error)

    def _require_role(self, role: Role | str) -> Role:
        parsed = parse_role(role)
        if parsed is None:
            raise PreconditionError(f"Unknown preview role: {role!r}")
        return parsed

    async def _enter(self, role: Role | str) -> OperationResult:
        if self._committed.kind is not StateKind.IDLE:
            raise PreconditionError(
                f"Already previewing as {self._committed.role.value}; switch or exit instead"
            )
        target = self._require_role(role)

        principal = self._sink.current()
        if principal is None or not principal.token:
            raise PreconditionError("No principal token available to start a preview")
        if (
            self._principal_kinds is not None
            and principal.user.account_kind not in self._principal_kinds
        ):
            raise PreconditionError(
                f"Account kind {principal.user.account_kind!r} may not preview roles"
            )

        snapshot = PrincipalSnapshot.from_session(principal)
        # Durable before any network call so a crash from here on is recoverable
        await self._store.set(OWNER_SNAPSHOT_KEY, snapshot.to_record())

        try:
            session = await self._identity.mint_role_session(snapshot.token, target)
        except IdentityServiceError:
            await self._discard_records(OWNER_SNAPSHOT_KEY)
            raise

        marker = PreviewMarker(role=target)
        try:
            await self._store.set(PREVIEW_MARKER_KEY, marker.to_record())
        except RecordStoreError:
            await self._discard_records(PREVIEW_MARKER_KEY, OWNER_SNAPSHOT_KEY)
            raise

        try:
            await self._sink.push(session)
        except Exception:
            # The snapshot may be the only copy of the owner token left;
            # keep both records for exit() unless the owner is back in the sink
            if await self._push_back(snapshot.to_session()):
                await self._discard_records(PREVIEW_MARKER_KEY, OWNER_SNAPSHOT_KEY)
            raise

        self._snapshot = snapshot
        self._marker = marker
        self._committed = ImpersonationState.active(target)
        log.info(
            "Preview started: owner %s -> %s (session %s)",
            snapshot.user_id,
            target.value,
            token_fingerprint(session.token),
        )
        return self._succeeded()

    async def _switch(self, role: Role | str) -> OperationResult:
        if self._committed.kind is not StateKind.ACTIVE:
            raise PreconditionError("No preview is active to switch from")
        target = self._require_role(role)
        current = self._committed.role
        if target is current:
            return self._succeeded()

        snapshot = await self._resolve_snapshot()
        if snapshot is None:
            raise LostPrincipalError(
                "Owner session is no longer available; sign in again to switch roles"
            )

        # Always re-authorize from the owner, never from the previewed session
        session = await self._identity.mint_role_session(snapshot.token, target)

        previous = self._marker or PreviewMarker(role=current)
        previous_session = self._sink.current()
        marker = PreviewMarker(role=target)
        await self._store.set(PREVIEW_MARKER_KEY, marker.to_record())
        try:
            await self._sink.push(session)
        except Exception:
            if previous_session is not None:
                await self._push_back(previous_session)
            await self._store.set(PREVIEW_MARKER_KEY, previous.to_record())
            raise

        self._marker = marker
        self._committed = ImpersonationState.active(target)
        log.info(
            "Preview switched: owner %s %s -> %s (session %s)",
            snapshot.user_id,
            current.value,
            target.value,
            token_fingerprint(session.token),
        )
        return self._succeeded()

    async def _exit(self) -> OperationResult:
        snapshot = await self._resolve_snapshot()
        if snapshot is None:
            if self._committed.kind is StateKind.IDLE:
                raise PreconditionError("No preview is active")
            raise LostPrincipalError(
                "Owner session is no longer available; sign in again to leave the preview"
            )

        warning: DegradedExitWarning | None = None
        try:
            session = await self._identity.mint_principal_session(
                snapshot.token, snapshot.user_id
            )
        except IdentityServiceError as e:
            log.warning(
                "Could not mint a fresh owner session for %s (%s); "
                "falling back to stored token %s",
                snapshot.user_id,
                e.message,
                token_fingerprint(snapshot.token),
            )
            session = snapshot.to_session()
            warning = DegradedExitWarning(
                "Returned to the owner view using the stored session", cause=e
            )

        await self._sink.push(session)

        # Marker first: once it is gone the episode is over. A snapshot left
        # behind by a crash or a failed delete is an orphan for restore()
        await self._store.delete(PREVIEW_MARKER_KEY)

        previous_role = self._committed.role
        self._snapshot = None
        self._marker = None
        self._committed = ImpersonationState.idle()
        await self._discard_records(OWNER_SNAPSHOT_KEY)
        log.info(
            "Preview ended: owner %s returned from %s%s",
            snapshot.user_id,
            previous_role.value if previous_role else "unknown role",
            " (degraded)" if warning else "",
        )
        return self._succeeded(warning=warning)

    async def _reset(self) -> OperationResult:
        if self._committed.kind is not StateKind.ACTIVE:
            raise PreconditionError("Preview data can only be reset during a preview")
        role = self._committed.role

        snapshot = await self._resolve_snapshot()
        if snapshot is not None:
            auth_token = snapshot.token
        else:
            active = self._sink.current()
            if active is None or not active.token:
                raise LostPrincipalError("No credential available to authorize a reset")
            log.warning(
                "No owner snapshot; authorizing %s reset with the active session", role.value
            )
            auth_token = active.token

        outcome: ResetOutcome = await self._identity.reset_role_data(auth_token, role)
        if outcome.session is not None:
            await self._sink.push(outcome.session)

        log.info(
            "Preview data reset for %s: %d deleted, %d created",
            role.value,
            outcome.deleted_count,
            outcome.created_count,
        )
        return self._succeeded(reset=outcome)

    async def _restore(self) -> None:
        snapshot_record = await self._store.get(OWNER_SNAPSHOT_KEY)
        marker_record = await self._store.get(PREVIEW_MARKER_KEY)

        snapshot = self._parse_record(PrincipalSnapshot, snapshot_record, OWNER_SNAPSHOT_KEY)
        marker = self._parse_record(PreviewMarker, marker_record, PREVIEW_MARKER_KEY)
        if marker is not None and not marker.active:
            marker = None

        if snapshot is not None and marker is not None:
            self._snapshot = snapshot
            self._marker = marker
            self._committed = ImpersonationState.active(marker.role)
            log.info(
                "Restored preview: owner %s as %s", snapshot.user_id, marker.role.value
            )
            return

        for key, record in (
            (PREVIEW_MARKER_KEY, marker_record),
            (OWNER_SNAPSHOT_KEY, snapshot_record),
        ):
            if record is not None:
                log.warning("Deleting orphaned %s record", key)
                await self._store.delete(key)

        self._snapshot = None
        self._marker = None
        self._committed = ImpersonationState.idle()

    # -- helpers -----------------------------------------------------------

    async def _resolve_snapshot(self) -> PrincipalSnapshot | None:
        """Owner snapshot from memory, else from the store."""
        if self._snapshot is not None:
            return self._snapshot
        snapshot = self._parse_record(
            PrincipalSnapshot, await self._store.get(OWNER_SNAPSHOT_KEY), OWNER_SNAPSHOT_KEY
        )
        if snapshot is not None:
            self._snapshot = snapshot
        return snapshot

    @staticmethod
    def _parse_record(model: type[BaseModel], record: Any, key: str) -> Any:
        if record is None:
            return None
        try:
            return model.model_validate(record)
        except ValidationError:
            log.warning("Stored %s record is unreadable; ignoring it", key)
            return None

    async def _discard_records(self, *keys: str) -> None:
        """Delete keys, logging failures instead of raising them."""
        for key in keys:
            try:
                await self._store.delete(key)
            except RecordStoreError:
                log.exception("Rollback could not delete %s", key)

    async def _push_back(self, session: Session) -> bool:
        """Return the sink to `session` after a failed push. The caller re-raises."""
        try:
            await self._sink.push(session)
        except Exception:
            log.exception(
                "Could not return the active session to user %s (%s)",
                session.user.id,
                token_fingerprint(session.token),
            )
            return False
        return True
