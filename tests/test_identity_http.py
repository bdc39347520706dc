"""Tests for the HTTP identity service client."""

import json

import httpx
import pytest
from previewkit import (
    HttpIdentityService,
    IdentityForbiddenError,
    IdentityServiceError,
    IdentityUnauthorizedError,
    Role,
    UnknownRoleError,
)

pytestmark = pytest.mark.asyncio

DEMO_USER = {"id": 101, "username": "demo_cleaner", "type": "cleaner", "isDemoAccount": True}
OWNER_USER = {"id": 42, "username": "olivia", "type": "owner"}


def make_client(handler):
    """HttpIdentityService over a MockTransport; handler(request) -> httpx.Response."""
    requests = []

    def record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    http = httpx.AsyncClient(
        base_url="http://identity.test/api/v1", transport=httpx.MockTransport(record)
    )
    return HttpIdentityService(http), requests


class TestMintRoleSession:
    async def test_posts_role_with_bearer_token(self):
        client, requests = make_client(
            lambda request: httpx.Response(
                200,
                json={"success": True, "token": "demo-tok", "user": DEMO_USER, "previewRole": "cleaner"},
            )
        )

        session = await client.mint_role_session("owner-tok", Role.CLEANER)

        assert session.token == "demo-tok"
        assert session.user.id == "101"
        request = requests[0]
        assert request.method == "POST"
        assert request.url.path == "/api/v1/demo-accounts/enter"
        assert request.headers["Authorization"] == "Bearer owner-tok"
        assert json.loads(request.content) == {"role": "cleaner"}

    async def test_declined_result_raises(self):
        client, _ = make_client(
            lambda request: httpx.Response(
                200, json={"success": False, "error": "Only platform owners can create preview sessions"}
            )
        )

        with pytest.raises(IdentityServiceError) as exc_info:
            await client.mint_role_session("owner-tok", Role.CLEANER)

        assert "platform owners" in exc_info.value.message

    async def test_missing_token_is_malformed(self):
        client, _ = make_client(
            lambda request: httpx.Response(200, json={"success": True, "user": DEMO_USER})
        )

        with pytest.raises(IdentityServiceError, match="Malformed"):
            await client.mint_role_session("owner-tok", Role.CLEANER)


class TestStatusMapping:
    @pytest.mark.parametrize(
        "status,exc_class",
        [
            (401, IdentityUnauthorizedError),
            (403, IdentityForbiddenError),
            (404, UnknownRoleError),
            (500, IdentityServiceError),
        ],
    )
    async def test_status_maps_to_exception(self, status, exc_class):
        client, _ = make_client(
            lambda request: httpx.Response(status, json={"error": "nope"})
        )

        with pytest.raises(exc_class) as exc_info:
            await client.mint_role_session("owner-tok", Role.HOMEOWNER)

        assert exc_info.value.status_code == status
        assert exc_info.value.message == "nope"

    async def test_non_json_error_body(self):
        client, _ = make_client(lambda request: httpx.Response(502, text="Bad Gateway"))

        with pytest.raises(IdentityServiceError) as exc_info:
            await client.mint_role_session("owner-tok", Role.HOMEOWNER)

        assert "502" in exc_info.value.message

    async def test_transport_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client, _ = make_client(refuse)

        with pytest.raises(IdentityServiceError, match="unreachable"):
            await client.mint_principal_session("owner-tok", "42")


class TestMintPrincipalSession:
    async def test_posts_owner_id(self):
        client, requests = make_client(
            lambda request: httpx.Response(
                200, json={"success": True, "token": "fresh-owner", "user": OWNER_USER}
            )
        )

        session = await client.mint_principal_session("owner-tok", "42")

        assert session.token == "fresh-owner"
        assert session.user.account_kind == "owner"
        assert requests[0].url.path == "/api/v1/demo-accounts/exit"
        assert json.loads(requests[0].content) == {"ownerId": "42"}


class TestResetRoleData:
    async def test_counts_without_session(self):
        client, requests = make_client(
            lambda request: httpx.Response(
                200, json={"success": True, "deletedCount": 12, "createdCount": 20}
            )
        )

        outcome = await client.reset_role_data("owner-tok", Role.EMPLOYEE)

        assert outcome.deleted_count == 12
        assert outcome.created_count == 20
        assert outcome.session is None
        assert json.loads(requests[0].content) == {"returnToRole": "employee"}

    async def test_counts_with_new_session(self):
        client, _ = make_client(
            lambda request: httpx.Response(
                200,
                json={
                    "success": True,
                    "deletedCount": 1,
                    "createdCount": 2,
                    "token": "demo-new",
                    "user": DEMO_USER,
                },
            )
        )

        outcome = await client.reset_role_data("owner-tok", Role.CLEANER)

        assert outcome.session.token == "demo-new"

    async def test_declined_reset(self):
        client, _ = make_client(
            lambda request: httpx.Response(
                200,
                json={
                    "success": False,
                    "error": "No demo accounts found. Please run the demo account seeder first.",
                },
            )
        )

        with pytest.raises(IdentityServiceError, match="seeder"):
            await client.reset_role_data("owner-tok", Role.CLEANER)
