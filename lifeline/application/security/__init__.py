from lifeline.application.security.role_matrix import (
    ROLES,
    Permission,
    Role,
    has_permission,
)

__all__ = [
    "ROLES",
    "Permission",
    "Role",
    "has_permission",
]
