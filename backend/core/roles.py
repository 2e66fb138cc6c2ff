from dataclasses import dataclass
from enum import Enum
from typing import Optional
from uuid import UUID

from core.errors import PermissionDenied


class Role(str, Enum):
    ADMIN = "admin"
    EDITOR = "editor"
    SUBMITTER = "submitter"
    VIEWER = "viewer"


class AccountStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Capability(str, Enum):
    READ_INVENTORY = "read_inventory"
    READ_HISTORY = "read_history"
    APPLY_SHIPMENT = "apply_shipment"
    SUBMIT_REQUEST = "submit_request"
    MODIFY_SHIPMENT = "modify_shipment"
    REVIEW_REQUEST = "review_request"
    EDIT_ITEM = "edit_item"
    MANAGE_USERS = "manage_users"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.ADMIN: frozenset(Capability),
    Role.EDITOR: frozenset({
        Capability.READ_INVENTORY,
        Capability.READ_HISTORY,
        Capability.APPLY_SHIPMENT,
        Capability.SUBMIT_REQUEST,
        Capability.MODIFY_SHIPMENT,
        Capability.EDIT_ITEM,
    }),
    Role.SUBMITTER: frozenset({
        Capability.READ_INVENTORY,
        Capability.SUBMIT_REQUEST,
    }),
    Role.VIEWER: frozenset({
        Capability.READ_INVENTORY,
        Capability.READ_HISTORY,
    }),
}


@dataclass(frozen=True)
class Actor:
    """Identity of whoever invokes a ledger operation."""

    user_id: Optional[UUID]
    email: str
    role: Role

    def can(self, capability: Capability) -> bool:
        return capability in ROLE_CAPABILITIES.get(Role(self.role), frozenset())

    def require(self, capability: Capability) -> None:
        if not self.can(capability):
            raise PermissionDenied(Role(self.role).value, capability.value)
