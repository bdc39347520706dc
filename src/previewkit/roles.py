"""Preview roles and their display metadata.

The manager treats a role as an opaque key when talking to the identity
service. Labels, icons, colors and descriptions exist only for the role
picker and the "previewing as" banner.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

__all__ = [
    "FALLBACK_ROLE_INFO",
    "Role",
    "RoleInfo",
    "available_roles",
    "describe_role",
    "parse_role",
]


class Role(str, Enum):
    CLEANER = "cleaner"
    HOMEOWNER = "homeowner"
    BUSINESS_OWNER = "businessOwner"
    EMPLOYEE = "employee"
    # Extended tiers
    HUMAN_RESOURCES = "humanResources"
    LARGE_BUSINESS_OWNER = "largeBusinessOwner"
    PREFERRED_CLEANER = "preferredCleaner"


@dataclass(frozen=True)
class RoleInfo:
    """Display metadata for one preview role."""

    key: str
    label: str
    icon: str
    color: str
    description: str


_ROLE_INFO: dict[Role, RoleInfo] = {
    Role.CLEANER: RoleInfo(
        key=Role.CLEANER.value,
        label="Cleaner",
        icon="broom",
        color="#0d9488",
        description="See the marketplace, jobs, and earnings",
    ),
    Role.HOMEOWNER: RoleInfo(
        key=Role.HOMEOWNER.value,
        label="Homeowner",
        icon="home",
        color="#2563eb",
        description="See booking, homes, and bills",
    ),
    Role.BUSINESS_OWNER: RoleInfo(
        key=Role.BUSINESS_OWNER.value,
        label="Business Owner",
        icon="briefcase",
        color="#7c3aed",
        description="See employees, clients, and analytics",
    ),
    Role.EMPLOYEE: RoleInfo(
        key=Role.EMPLOYEE.value,
        label="Employee",
        icon="user-tie",
        color="#ea580c",
        description="See assigned jobs and schedule",
    ),
    Role.HUMAN_RESOURCES: RoleInfo(
        key=Role.HUMAN_RESOURCES.value,
        label="HR Manager",
        icon="gavel",
        color="#db2777",
        description="Review disputes, appeals, and conflicts",
    ),
    Role.LARGE_BUSINESS_OWNER: RoleInfo(
        key=Role.LARGE_BUSINESS_OWNER.value,
        label="Large Business",
        icon="building",
        color="#4f46e5",
        description="100+ clients, 7% platform fee tier",
    ),
    Role.PREFERRED_CLEANER: RoleInfo(
        key=Role.PREFERRED_CLEANER.value,
        label="Preferred Cleaner",
        icon="star",
        color="#ca8a04",
        description="Platinum tier, 20 homes, 7% bonus",
    ),
}

FALLBACK_ROLE_INFO = RoleInfo(
    key="unknown",
    label="Preview",
    icon="eye",
    color="#6b7280",
    description="Previewing the app as another role",
)


def parse_role(value: Role | str) -> Role | None:
    """Return the Role for a key, or None when the key is not a preview role."""
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        return None


def describe_role(role: Role | str | None) -> RoleInfo:
    """Look up display metadata. Unknown keys (and None) get the fallback entry."""
    parsed = parse_role(role) if role is not None else None
    if parsed is None:
        return FALLBACK_ROLE_INFO
    return _ROLE_INFO[parsed]


def available_roles() -> list[RoleInfo]:
    """Roles offered in the picker, in display order."""
    return [_ROLE_INFO[role] for role in Role]
