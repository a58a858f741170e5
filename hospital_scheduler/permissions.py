"""
Role to capability mapping. Every mutating operation is gated through here,
both in the HTTP layer and inside the rules engines.
"""

import logging

from pydantic import BaseModel, ConfigDict

from hospital_scheduler.errors import PermissionDeniedError
from hospital_scheduler.models import Role

logger = logging.getLogger(__name__)


class Capabilities(BaseModel):
    model_config = ConfigDict(frozen=True)

    # staff
    can_view_staff: bool = False
    can_create_staff: bool = False
    can_edit_staff: bool = False
    can_delete_staff: bool = False
    # schedule
    can_view_schedule: bool = False
    can_create_shifts: bool = False
    can_edit_shifts: bool = False
    can_delete_shifts: bool = False
    can_assign_staff: bool = False
    # requests
    can_view_requests: bool = False
    can_create_requests: bool = False
    can_approve_requests: bool = False
    can_reject_requests: bool = False
    # reports
    can_view_reports: bool = False
    can_export_data: bool = False
    # administration
    can_manage_users: bool = False
    can_view_logs: bool = False
    can_configure_system: bool = False

    def granted(self) -> set[str]:
        return {name for name, value in self.model_dump().items() if value}


CAPABILITY_NAMES: frozenset[str] = frozenset(Capabilities.model_fields)

_STAFF_MEMBER = Capabilities(
    can_view_staff=True,
    can_view_schedule=True,
    can_view_requests=True,
    can_create_requests=True,
)

ROLE_CAPABILITIES: dict[Role, Capabilities] = {
    Role.ADMIN: Capabilities(**{name: True for name in CAPABILITY_NAMES}),
    Role.SUPERVISOR: Capabilities(
        **{
            name: True
            for name in CAPABILITY_NAMES
            - {
                "can_delete_staff",
                "can_manage_users",
                "can_view_logs",
                "can_configure_system",
            }
        }
    ),
    Role.DOCTOR: _STAFF_MEMBER,
    Role.NURSE: _STAFF_MEMBER,
}


def _coerce_role(role: Role | str | None) -> Role | None:
    if isinstance(role, Role):
        return role
    try:
        return Role(role)
    except ValueError:
        return None


def capabilities(role: Role | str | None) -> Capabilities:
    """Capability set for a role; an unknown role gets nothing."""
    resolved = _coerce_role(role)
    if resolved is None:
        return Capabilities()
    return ROLE_CAPABILITIES[resolved]


def has_permission(role: Role | str | None, capability: str) -> bool:
    if capability not in CAPABILITY_NAMES:
        return False
    return bool(getattr(capabilities(role), capability))


def require_permission(role: Role | str | None, capability: str) -> None:
    if not has_permission(role, capability):
        label = role.value if isinstance(role, Role) else role
        logger.warning("denied %s for role %r", capability, label)
        raise PermissionDeniedError(
            f"Role {label!r} lacks {capability}",
            reasons=[f"missing capability: {capability}"],
        )


def can_approve_requests(role: Role | str | None) -> bool:
    return has_permission(role, "can_approve_requests")


def can_manage_staff(role: Role | str | None) -> bool:
    return has_permission(role, "can_create_staff") or has_permission(
        role, "can_edit_staff"
    )


def can_manage_schedule(role: Role | str | None) -> bool:
    return has_permission(role, "can_create_shifts") or has_permission(
        role, "can_edit_shifts"
    )
