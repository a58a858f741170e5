from collections.abc import Iterable

from hospital_scheduler.conflicts import has_conflict
from hospital_scheduler.database import Repository
from hospital_scheduler.models import Shift, StaffMember, ValidationResult

DEPARTMENT_MISMATCH = "department mismatch"
MISSING_CERTIFICATIONS = "missing required certifications"
ROLE_MISMATCH = "role mismatch"
OVERLAPPING_SHIFT = "overlapping shift"
STAFF_INACTIVE = "staff inactive"
NOT_FOUND = "not found"


def validate_assignment(
    shift: Shift, staff: StaffMember, existing_shifts: Iterable[Shift]
) -> ValidationResult:
    """
    Check every assignment rule and collect all failures.

    `existing_shifts` is the current shift list; the shift being validated
    is skipped so re-validating a current assignee does not conflict with
    itself.
    """
    reasons: list[str] = []

    if not staff.is_active:
        reasons.append(STAFF_INACTIVE)

    if shift.department_id != staff.department_id:
        reasons.append(DEPARTMENT_MISMATCH)

    if shift.required_certifications and not shift.required_certifications.issubset(
        staff.certifications
    ):
        reasons.append(MISSING_CERTIFICATIONS)

    if shift.required_role is not None and shift.required_role != staff.role:
        reasons.append(ROLE_MISMATCH)

    if has_conflict(
        staff.id,
        shift.start_time,
        shift.end_time,
        existing_shifts,
        exclude_shift_id=shift.id,
    ):
        reasons.append(OVERLAPPING_SHIFT)

    return ValidationResult(is_valid=not reasons, reasons=reasons)


def validate_assignment_by_id(
    repo: Repository, shift_id: str, staff_id: str
) -> ValidationResult:
    """Load both records fresh and validate; a missing record short-circuits."""
    shift = repo.get_shift(shift_id)
    staff = repo.get_staff_member(staff_id)
    if shift is None or staff is None:
        return ValidationResult(is_valid=False, reasons=[NOT_FOUND])
    return validate_assignment(shift, staff, repo.get_shifts())
