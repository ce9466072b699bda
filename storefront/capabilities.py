"""
Capabilities — typed permission checks.

Roles are strings owned by the auth provider. Code never asks "is admin?",
it asks whether the user holds a capability.
"""

from __future__ import annotations

from enum import Enum

from storefront.domain import User


class Capability(Enum):
    MANAGE_PRODUCTS = "manage_products"
    MANAGE_ROLES = "manage_roles"


ROLE_CAPABILITIES: dict[str, frozenset[Capability]] = {
    "admin": frozenset({Capability.MANAGE_PRODUCTS, Capability.MANAGE_ROLES}),
}


def capabilities_of(user: User) -> frozenset[Capability]:
    """Union of capabilities granted by every role the user holds."""
    granted: set[Capability] = set()
    for role in user.roles:
        granted |= ROLE_CAPABILITIES.get(role, frozenset())
    return frozenset(granted)


def has_capability(user: User, capability: Capability) -> bool:
    return capability in capabilities_of(user)


__all__ = (
    "Capability",
    "ROLE_CAPABILITIES",
    "capabilities_of",
    "has_capability",
)
