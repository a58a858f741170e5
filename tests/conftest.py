from datetime import UTC, datetime

import pytest

from hospital_scheduler.database import InMemoryRepository
from hospital_scheduler.models import Role, Shift, ShiftStatus, StaffMember
from hospital_scheduler.shifts import ShiftLifecycleManager, derive_status
from hospital_scheduler.staff import StaffDirectory
from hospital_scheduler.workflow import RequestWorkflowManager

NOW = datetime(2025, 7, 2, 0, 0, 0, tzinfo=UTC)


def at(hour: int, day: int = 2, minute: int = 0) -> datetime:
    return datetime(2025, 7, day, hour, minute, 0, tzinfo=UTC)


def make_staff(
    staff_id: str,
    role: Role = Role.NURSE,
    department_id: str = "ICU",
    certifications: set[str] | None = None,
    *,
    name: str | None = None,
    is_active: bool = True,
) -> StaffMember:
    return StaffMember(
        id=staff_id,
        name=name or f"Staff {staff_id}",
        email=f"{staff_id}@hospital.com",
        role=role,
        department_id=department_id,
        certifications=certifications if certifications is not None else set(),
        is_active=is_active,
    )


def make_shift(
    shift_id: str,
    start: datetime,
    end: datetime,
    *,
    department_id: str = "ICU",
    required_role: Role | None = None,
    required_certifications: set[str] | None = None,
    staff_required: int = 1,
    assigned_staff: list[str] | None = None,
    status: ShiftStatus | None = None,
) -> Shift:
    assigned = list(assigned_staff or [])
    return Shift(
        id=shift_id,
        department_id=department_id,
        start_time=start,
        end_time=end,
        required_role=required_role,
        required_certifications=required_certifications or set(),
        staff_required=staff_required,
        assigned_staff=assigned,
        status=status or derive_status(len(assigned), staff_required),
    )


@pytest.fixture
def repo() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def admin(repo) -> StaffMember:
    member = make_staff("admin-id", Role.ADMIN, "Administration", name="Lisa Thompson")
    repo.save_staff(member)
    return member


@pytest.fixture
def supervisor(repo) -> StaffMember:
    member = make_staff(
        "sup-id", Role.SUPERVISOR, "ICU", {"RN", "BLS"}, name="Grace Lee"
    )
    repo.save_staff(member)
    return member


@pytest.fixture
def nurse(repo) -> StaffMember:
    member = make_staff(
        "nurse-id", Role.NURSE, "ICU", {"RN", "BLS"}, name="Emily Rodriguez"
    )
    repo.save_staff(member)
    return member


@pytest.fixture
def doctor(repo) -> StaffMember:
    member = make_staff(
        "doc-id", Role.DOCTOR, "ICU", {"MD", "BLS"}, name="Michael Chen"
    )
    repo.save_staff(member)
    return member


@pytest.fixture
def shifts(repo) -> ShiftLifecycleManager:
    return ShiftLifecycleManager(repo, now_fn=lambda: NOW)


@pytest.fixture
def workflow(repo) -> RequestWorkflowManager:
    return RequestWorkflowManager(repo, now_fn=lambda: NOW)


@pytest.fixture
def directory(repo) -> StaffDirectory:
    return StaffDirectory(repo, now_fn=lambda: NOW)
