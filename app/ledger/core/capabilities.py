"""Role to capability table.

Every state transition asks a single question, ``require_capability(actor, X)``,
instead of spreading role comparisons through the services.
"""

import enum

from app.ledger.core.enums import Role
from app.ledger.core.error_catalog import AppError, ErrorCatalog


class Capability(str, enum.Enum):
    VIEW = "VIEW"
    OPERATE_TILL = "OPERATE_TILL"
    AUTHORIZE = "AUTHORIZE"
    SUPERVISE_SHIFTS = "SUPERVISE_SHIFTS"
    CLOSE_ANY_SHIFT = "CLOSE_ANY_SHIFT"
    APPROVE_RECONCILIATION = "APPROVE_RECONCILIATION"
    CORRECT_LEDGER = "CORRECT_LEDGER"
    AUDIT = "AUDIT"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.ADMIN: frozenset(Capability),
    Role.SUPERVISOR: frozenset(Capability) - {Capability.CLOSE_ANY_SHIFT},
    Role.CASHIER: frozenset({Capability.VIEW, Capability.OPERATE_TILL}),
    Role.READ_ONLY: frozenset({Capability.VIEW}),
}


def has_capability(actor, capability: Capability) -> bool:
    return capability in ROLE_CAPABILITIES.get(actor.role, frozenset())


def require_capability(actor, capability: Capability) -> None:
    if not has_capability(actor, capability):
        raise AppError(
            ErrorCatalog.FORBIDDEN,
            details={"capability": capability.value, "role": actor.role.value},
        )


def require_distinct_authorizer(requester_id, authorizer) -> None:
    require_capability(authorizer, Capability.AUTHORIZE)
    if authorizer.actor_id == requester_id:
        raise AppError(
            ErrorCatalog.SELF_AUTHORIZATION_DENIED,
            details={"actor_id": str(authorizer.actor_id)},
        )
