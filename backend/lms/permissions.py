from __future__ import annotations

from typing import Annotated, Any

from fastapi import Depends

from .auth import get_current_user
from .errors import Forbidden
from .roles import Role


async def require_admin(
    current: Annotated[dict, Depends(get_current_user)],
) -> dict[str, Any]:
    role = current.get("role")
    if role is None or not role.is_admin:
        raise Forbidden("Forbidden - Admin access required")
    return current


async def require_superadmin(
    current: Annotated[dict, Depends(get_current_user)],
) -> dict[str, Any]:
    if current.get("role") is not Role.superadmin:
        raise Forbidden("Forbidden")
    return current


async def require_teacher_or_admin(
    current: Annotated[dict, Depends(get_current_user)],
) -> dict[str, Any]:
    role = current.get("role")
    if role is None or not role.is_staff:
        raise Forbidden("Forbidden")
    return current


AdminUser = Annotated[dict, Depends(require_admin)]
SuperAdminUser = Annotated[dict, Depends(require_superadmin)]
StaffUser = Annotated[dict, Depends(require_teacher_or_admin)]
