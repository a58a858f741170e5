import pytest

from hospital_scheduler.errors import PermissionDeniedError
from hospital_scheduler.models import Role
from hospital_scheduler.permissions import (
    CAPABILITY_NAMES,
    can_approve_requests,
    can_manage_schedule,
    can_manage_staff,
    capabilities,
    has_permission,
    require_permission,
)


@pytest.mark.parametrize("capability", sorted(CAPABILITY_NAMES))
def test_admin_has_every_capability_a_supervisor_has(capability: str) -> None:
    if has_permission("supervisor", capability):
        assert has_permission("admin", capability)


def test_capability_counts_follow_role_hierarchy() -> None:
    admin = len(capabilities(Role.ADMIN).granted())
    supervisor = len(capabilities(Role.SUPERVISOR).granted())
    doctor = len(capabilities(Role.DOCTOR).granted())
    nurse = len(capabilities(Role.NURSE).granted())

    assert admin == len(CAPABILITY_NAMES)
    assert admin >= supervisor >= doctor
    assert supervisor >= nurse


@pytest.mark.parametrize("role", [Role.DOCTOR, Role.NURSE])
@pytest.mark.parametrize(
    "capability",
    [
        "can_approve_requests",
        "can_create_staff",
        "can_edit_staff",
        "can_create_shifts",
        "can_edit_shifts",
    ],
)
def test_clinical_roles_cannot_manage(role: Role, capability: str) -> None:
    assert has_permission(role, capability) is False


def test_clinical_roles_can_view_and_request() -> None:
    for role in (Role.DOCTOR, Role.NURSE):
        assert has_permission(role, "can_view_schedule")
        assert has_permission(role, "can_create_requests")


def test_supervisor_limits() -> None:
    assert has_permission(Role.SUPERVISOR, "can_approve_requests")
    assert has_permission(Role.SUPERVISOR, "can_assign_staff")
    assert not has_permission(Role.SUPERVISOR, "can_delete_staff")
    assert not has_permission(Role.SUPERVISOR, "can_manage_users")
    assert not has_permission(Role.SUPERVISOR, "can_configure_system")


def test_unknown_role_or_capability_is_false_not_an_error() -> None:
    assert has_permission("janitor", "can_view_staff") is False
    assert has_permission(None, "can_view_staff") is False
    assert has_permission(Role.ADMIN, "can_launch_rockets") is False
    assert capabilities("janitor").granted() == set()


def test_string_and_enum_roles_agree() -> None:
    assert capabilities("supervisor") == capabilities(Role.SUPERVISOR)


def test_helpers() -> None:
    assert can_approve_requests(Role.ADMIN)
    assert not can_approve_requests(Role.NURSE)
    assert can_manage_staff(Role.SUPERVISOR)
    assert not can_manage_staff(Role.DOCTOR)
    assert can_manage_schedule(Role.SUPERVISOR)
    assert not can_manage_schedule(Role.NURSE)


def test_require_permission_raises_with_reason() -> None:
    require_permission(Role.ADMIN, "can_configure_system")

    with pytest.raises(PermissionDeniedError) as exc_info:
        require_permission(Role.NURSE, "can_approve_requests")
    assert exc_info.value.reasons == ["missing capability: can_approve_requests"]
