"""
Typed payloads exchanged with the identity service and the record store.

Field names are snake_case in Python and camelCase on the wire and in the
store (aliases), matching what the marketplace API returns.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from previewkit.roles import Role

__all__ = [
    "PreviewMarker",
    "PrincipalSnapshot",
    "ResetOutcome",
    "Session",
    "UserRef",
]


class _Record(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )

    def to_record(self) -> dict[str, Any]:
        """JSON-safe dict using wire names, as written to the record store."""
        return self.model_dump(mode="json", by_alias=True)


class UserRef(_Record):
    """The user a session belongs to. Unknown fields from the API are dropped."""

    id: str = Field(min_length=1)
    account_kind: str | None = Field(default=None, alias="type")
    username: str | None = None
    first_name: str | None = Field(default=None, alias="firstName")
    last_name: str | None = Field(default=None, alias="lastName")
    email: str | None = None
    business_name: str | None = Field(default=None, alias="businessName")
    is_business_owner: bool | None = Field(default=None, alias="isBusinessOwner")
    is_demo_account: bool = Field(default=False, alias="isDemoAccount")


class Session(_Record):
    """A credential plus the user it is bound to.

    The preview role is never part of the session; it lives in the marker.
    """

    token: str = Field(min_length=1)
    user: UserRef


class PrincipalSnapshot(_Record):
    """The owner's own session, captured once when a preview episode begins."""

    token: str = Field(min_length=1)
    user_id: str = Field(alias="userId", min_length=1)
    account_kind: str | None = Field(default=None, alias="accountKind")
    display_attributes: dict[str, Any] = Field(
        default_factory=dict, alias="displayAttributes"
    )

    @classmethod
    def from_session(cls, session: Session) -> PrincipalSnapshot:
        attributes = session.user.model_dump(
            mode="json",
            by_alias=True,
            exclude={"id", "account_kind"},
            exclude_none=True,
        )
        return cls(
            token=session.token,
            user_id=session.user.id,
            account_kind=session.user.account_kind,
            display_attributes=attributes,
        )

    def to_session(self) -> Session:
        """Rebuild the principal session from the snapshot (used for degraded exit)."""
        user = UserRef.model_validate(
            {**self.display_attributes, "id": self.user_id, "type": self.account_kind}
        )
        return Session(token=self.token, user=user)


class PreviewMarker(_Record):
    """Durable "a preview episode is in progress, as this role" record."""

    active: bool = True
    role: Role


class ResetOutcome(_Record):
    """What the identity service reports after wiping and reseeding preview data."""

    deleted_count: int = Field(default=0, alias="deletedCount", ge=0)
    created_count: int = Field(default=0, alias="createdCount", ge=0)
    session: Session | None = None
