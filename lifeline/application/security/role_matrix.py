from __future__ import annotations

from typing import Final, Literal, get_args

Role = Literal[
    "patient",
    "attender",
    "donor",
    "hospital_staff",
    "blood_bank",
    "volunteer",
    "transport",
    "admin",
    "system",
    "anonymous",
]
Permission = Literal[
    "accept_emergency",
    "dispatch_emergency",
    "override_emergency",
    "force_escalation",
    "expire_emergencies",
    "view_audit",
]

ROLES: Final[frozenset[str]] = frozenset(get_args(Role))

_ROLE_PERMISSIONS: Final[dict[Role, frozenset[Permission]]] = {
    "admin": frozenset(
        {
            "accept_emergency",
            "dispatch_emergency",
            "override_emergency",
            "force_escalation",
            "expire_emergencies",
            "view_audit",
        }
    ),
    "system": frozenset({"expire_emergencies", "force_escalation"}),
    "hospital_staff": frozenset({"accept_emergency"}),
    "blood_bank": frozenset({"accept_emergency"}),
    "volunteer": frozenset({"dispatch_emergency"}),
    "transport": frozenset({"dispatch_emergency"}),
    "donor": frozenset({"dispatch_emergency"}),
    "patient": frozenset(),
    "attender": frozenset(),
    "anonymous": frozenset(),
}


def has_permission(role: Role, permission: Permission) -> bool:
    return permission in _ROLE_PERMISSIONS.get(role, frozenset())
