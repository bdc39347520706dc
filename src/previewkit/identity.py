"""
previewkit.identity - Client for the service that mints preview sessions.

This module provides:
- IdentityService: the protocol the manager depends on
- HttpIdentityService: implementation over the marketplace REST API

The service owns the synthetic (demo) accounts. It mints a session for a
requested role, mints a fresh session for the original owner, and wipes and
reseeds the demo data.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from previewkit.base import (
    IdentityForbiddenError,
    IdentityServiceError,
    IdentityUnauthorizedError,
    UnknownRoleError,
)
from previewkit.crypto import token_fingerprint
from previewkit.models import ResetOutcome, Session
from previewkit.roles import Role

__all__ = [
    "HttpIdentityService",
    "IdentityService",
]

log = logging.getLogger(__name__)

# HTTP status to exception class mapping
_STATUS_EXCEPTIONS: dict[int, type[IdentityServiceError]] = {
    401: IdentityUnauthorizedError,
    403: IdentityForbiddenError,
    404: UnknownRoleError,
}


class IdentityService(Protocol):
    async def mint_role_session(self, token: str, role: Role) -> Session:
        """Session for the synthetic account behind role, authorized by token."""

    async def mint_principal_session(self, token: str, user_id: str) -> Session:
        """Freshly rotated session for the owner identified by user_id."""

    async def reset_role_data(self, token: str, role: Role) -> ResetOutcome:
        """Wipe and reseed demo data; may return a new session for role."""


class HttpIdentityService:
    """
    IdentityService over HTTP.

    Example:
        async with httpx.AsyncClient(base_url=config.identity_url) as http:
            identity = HttpIdentityService(http)
            session = await identity.mint_role_session(owner_token, Role.CLEANER)

    The client does not enforce timeouts itself; configure them on the
    httpx.AsyncClient.
    """

    ENTER_PATH = "/demo-accounts/enter"
    EXIT_PATH = "/demo-accounts/exit"
    RESET_PATH = "/demo-accounts/reset"

    def __init__(self, http: httpx.AsyncClient):
        self._http = http

    def _raise_for_status(self, response: httpx.Response, payload: dict[str, Any]) -> None:
        """Convert an HTTP error status into the matching IdentityServiceError subclass."""
        if response.status_code < 400:
            return
        message = payload.get("error") or f"Identity service returned HTTP {response.status_code}"
        exc_class = _STATUS_EXCEPTIONS.get(response.status_code, IdentityServiceError)
        raise exc_class(message, response.status_code)

    async def _post(self, path: str, token: str, body: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._http.post(
                path,
                json=body,
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as e:
            raise IdentityServiceError(f"Identity service unreachable: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        self._raise_for_status(response, payload)

        # A 2xx with success=false is a declined request, not a transport failure
        if payload.get("success") is False:
            raise IdentityServiceError(
                payload.get("error") or "Identity service declined the request",
                response.status_code,
            )
        return payload

    def _parse_session(self, payload: dict[str, Any]) -> Session:
        try:
            return Session.model_validate(
                {"token": payload.get("token"), "user": payload.get("user")}
            )
        except ValidationError as e:
            raise IdentityServiceError(f"Malformed session in identity response: {e}") from e

    async def mint_role_session(self, token: str, role: Role) -> Session:
        log.debug(
            "Requesting %s session with credential %s", role.value, token_fingerprint(token)
        )
        payload = await self._post(self.ENTER_PATH, token, {"role": role.value})
        return self._parse_session(payload)

    async def mint_principal_session(self, token: str, user_id: str) -> Session:
        log.debug("Requesting principal session for user %s", user_id)
        payload = await self._post(self.EXIT_PATH, token, {"ownerId": user_id})
        return self._parse_session(payload)

    async def reset_role_data(self, token: str, role: Role) -> ResetOutcome:
        payload = await self._post(self.RESET_PATH, token, {"returnToRole": role.value})
        session = self._parse_session(payload) if payload.get("token") else None
        try:
            return ResetOutcome(
                deleted_count=payload.get("deletedCount") or 0,
                created_count=payload.get("createdCount") or 0,
                session=session,
            )
        except ValidationError as e:
            raise IdentityServiceError(f"Malformed reset response: {e}") from e
