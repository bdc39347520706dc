"""Test doubles for the manager's collaborators."""

from __future__ import annotations

import asyncio
import itertools
from typing import Any

from previewkit import (
    IdentityServiceError,
    MemoryRecordStore,
    RecordStoreError,
    ResetOutcome,
    Role,
    Session,
    UserRef,
)
from previewkit.store import OWNER_SNAPSHOT_KEY, PREVIEW_MARKER_KEY

OWNER_TOKEN = "owner-token"
OWNER_ID = "42"


def make_session(token: str, user_id: str, kind: str | None = None, **user: Any) -> Session:
    return Session(token=token, user=UserRef(id=user_id, account_kind=kind, **user))


def owner_session(token: str = OWNER_TOKEN) -> Session:
    return make_session(
        token,
        OWNER_ID,
        "owner",
        username="olivia",
        first_name="Olivia",
        last_name="Owner",
        email="olivia@example.com",
    )


class RecordingIdentityService:
    """
    IdentityService double that records every call.

    - fail(method): make the next calls to method raise IdentityServiceError
    - hold(method): calls to method block until the returned event is set
    """

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.failures: dict[str, IdentityServiceError] = {}
        self.gates: dict[str, asyncio.Event] = {}
        self.reset_outcome = ResetOutcome(deleted_count=3, created_count=5)
        self._serial = itertools.count(1)

    def fail(self, method: str, message: str = "declined", status_code: int | None = None) -> None:
        self.failures[method] = IdentityServiceError(message, status_code)

    def hold(self, method: str) -> asyncio.Event:
        gate = asyncio.Event()
        self.gates[method] = gate
        return gate

    def calls_to(self, method: str) -> list[tuple[Any, ...]]:
        return [call for call in self.calls if call[0] == method]

    async def _checkpoint(self, method: str) -> None:
        gate = self.gates.get(method)
        if gate is not None:
            await gate.wait()
        if method in self.failures:
            raise self.failures[method]

    async def mint_role_session(self, token: str, role: Role) -> Session:
        self.calls.append(("mint_role_session", token, role))
        await self._checkpoint("mint_role_session")
        return make_session(
            f"{role.value}-token-{next(self._serial)}",
            f"demo-{role.value}",
            "cleaner",
            is_demo_account=True,
        )

    async def mint_principal_session(self, token: str, user_id: str) -> Session:
        self.calls.append(("mint_principal_session", token, user_id))
        await self._checkpoint("mint_principal_session")
        return owner_session(token=f"owner-token-fresh-{next(self._serial)}")

    async def reset_role_data(self, token: str, role: Role) -> ResetOutcome:
        self.calls.append(("reset_role_data", token, role))
        await self._checkpoint("reset_role_data")
        return self.reset_outcome


class RecordingStore(MemoryRecordStore):
    """MemoryRecordStore that logs writes in order and can be told to fail."""

    def __init__(self, initial: dict[str, dict[str, Any]] | None = None) -> None:
        super().__init__(initial)
        self.writes: list[tuple[str, str]] = []
        self.failing: set[tuple[str, str]] = set()

    def fail_on(self, operation: str, key: str) -> None:
        self.failing.add((operation, key))

    def _check(self, operation: str, key: str) -> None:
        if (operation, key) in self.failing:
            raise RecordStoreError(f"simulated {operation} failure for {key}", "08006")

    async def get(self, key: str) -> dict[str, Any] | None:
        self._check("get", key)
        return await super().get(key)

    async def set(self, key: str, value: dict[str, Any]) -> None:
        self._check("set", key)
        self.writes.append(("set", key))
        await super().set(key, value)

    async def delete(self, key: str) -> None:
        self._check("delete", key)
        self.writes.append(("delete", key))
        await super().delete(key)

    def invariant_holds(self) -> bool:
        """Snapshot and marker are both present or both absent."""
        keys = self.keys()
        return (OWNER_SNAPSHOT_KEY in keys) == (PREVIEW_MARKER_KEY in keys)
