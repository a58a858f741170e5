import logging
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime

import pydantic

from hospital_scheduler import events
from hospital_scheduler.activity import record_activity
from hospital_scheduler.database import Repository
from hospital_scheduler.errors import (
    AssignmentError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from hospital_scheduler.models import (
    BulkAssignFailure,
    BulkAssignment,
    BulkAssignReport,
    DomainEvent,
    Outcome,
    Shift,
    ShiftChanges,
    ShiftDraft,
    ShiftStatus,
    StaffMember,
    ValidationResult,
    as_utc,
)
from hospital_scheduler.permissions import require_permission
from hospital_scheduler.validation import (
    NOT_FOUND,
    OVERLAPPING_SHIFT,
    validate_assignment,
    validate_assignment_by_id,
)

logger = logging.getLogger(__name__)

NowFn = Callable[[], datetime]

AT_CAPACITY = "shift at capacity"


def derive_status(assigned_count: int, staff_required: int) -> ShiftStatus:
    if assigned_count <= 0:
        return ShiftStatus.OPEN
    if assigned_count < staff_required:
        return ShiftStatus.UNDERSTAFFED
    return ShiftStatus.FILLED


def below_capacity(shift: Shift) -> bool:
    return (
        shift.status != ShiftStatus.CANCELLED
        and len(shift.assigned_staff) < shift.staff_required
    )


def filter_shifts(
    shifts: Iterable[Shift],
    *,
    department_id: str | None = None,
    status: ShiftStatus | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Shift]:
    """Shifts matching every given filter, ordered by start time."""
    start = as_utc(start) if start is not None else None
    end = as_utc(end) if end is not None else None
    matched = [
        s
        for s in shifts
        if (department_id is None or s.department_id == department_id)
        and (status is None or s.status == status)
        and (start is None or s.start_time >= start)
        and (end is None or s.start_time <= end)
    ]
    return sorted(matched, key=lambda s: s.start_time)


class ShiftLifecycleManager:
    """
    Create, assign, unassign, update, cancel and delete shifts.

    Shift status is never written directly: it is derived from the number
    of assignees against `staff_required`, except for the terminal
    `cancelled`. Every mutation runs inside the repository transaction and
    either applies fully or raises before anything is written.
    """

    def __init__(
        self,
        repo: Repository,
        *,
        now_fn: NowFn,
        enforce_capacity: bool = True,
    ) -> None:
        self.repo = repo
        self.now_fn = now_fn
        self.enforce_capacity = enforce_capacity

    def _load_shift(self, shift_id: str) -> Shift:
        shift = self.repo.get_shift(shift_id)
        if shift is None:
            raise NotFoundError(f"Shift {shift_id} not found", [NOT_FOUND])
        return shift

    def _load_staff(self, staff_id: str) -> StaffMember:
        staff = self.repo.get_staff_member(staff_id)
        if staff is None:
            raise NotFoundError(f"Staff {staff_id} not found", [NOT_FOUND])
        return staff

    @staticmethod
    def _ensure_not_cancelled(shift: Shift) -> None:
        if shift.status == ShiftStatus.CANCELLED:
            raise InvalidStateError(
                f"Shift {shift.id} is cancelled", ["shift is cancelled"]
            )

    def create_shift(self, actor: StaffMember, draft: ShiftDraft) -> Outcome[Shift]:
        require_permission(actor.role, "can_create_shifts")
        now = self.now_fn()
        assignees = list(dict.fromkeys(draft.assigned_staff))

        try:
            shift = Shift(
                id=uuid.uuid4().hex,
                created_at=now,
                assigned_at=now if assignees else None,
                **draft.model_dump(exclude={"assigned_staff"}),
            )
        except pydantic.ValidationError as exc:
            raise ValidationError(
                "Invalid shift", [e["msg"] for e in exc.errors()]
            ) from exc

        with self.repo.transaction():
            existing = self.repo.get_shifts()
            for staff_id in assignees:
                staff = self._load_staff(staff_id)
                result = validate_assignment(shift, staff, existing)
                if result.reasons == [OVERLAPPING_SHIFT]:
                    raise ConflictError(
                        f"Staff {staff.id} already assigned to overlapping shift",
                        result.reasons,
                    )
                if not result.is_valid:
                    raise AssignmentError(
                        f"Cannot pre-assign staff {staff.id}", result.reasons
                    )
            if self.enforce_capacity and len(assignees) > shift.staff_required:
                raise AssignmentError("Too many pre-assigned staff", [AT_CAPACITY])

            shift.assigned_staff = assignees
            shift.status = derive_status(len(assignees), shift.staff_required)
            self.repo.save_shift(shift)
            record_activity(
                self.repo,
                "shift_created",
                f"New shift created: {events.describe_window(shift)} "
                f"in {shift.department_id}",
                now,
                {"shiftId": shift.id},
            )

        logger.info("created shift %s (%s)", shift.id, shift.status.value)
        return Outcome(
            value=shift,
            events=[
                events.shift_assigned(shift, staff_id, actor.name)
                for staff_id in assignees
            ],
        )

    def validate(self, shift_id: str, staff_id: str) -> ValidationResult:
        """Dry-run of the assignment rules against freshly loaded records."""
        return validate_assignment_by_id(self.repo, shift_id, staff_id)

    def assign_staff(
        self, actor: StaffMember, shift_id: str, staff_id: str
    ) -> Outcome[Shift]:
        require_permission(actor.role, "can_assign_staff")

        with self.repo.transaction():
            shift = self._load_shift(shift_id)
            self._ensure_not_cancelled(shift)
            if staff_id in shift.assigned_staff:
                return Outcome(value=shift)
            staff = self._load_staff(staff_id)

            result = validate_assignment(shift, staff, self.repo.get_shifts())
            reasons = list(result.reasons)
            if self.enforce_capacity and len(shift.assigned_staff) >= shift.staff_required:
                reasons.append(AT_CAPACITY)
            if reasons:
                logger.warning(
                    "rejected assignment of %s to shift %s: %s",
                    staff_id,
                    shift_id,
                    ", ".join(reasons),
                )
                raise AssignmentError(
                    f"Assignment invalid: {', '.join(reasons)}", reasons
                )

            now = self.now_fn()
            shift.assigned_staff.append(staff_id)
            shift.status = derive_status(len(shift.assigned_staff), shift.staff_required)
            shift.assigned_at = now
            self.repo.save_shift(shift)
            record_activity(
                self.repo,
                "shift_assigned",
                f"{staff.name} assigned to {shift.department_id} shift "
                f"{events.describe_window(shift)}",
                now,
                {"shiftId": shift.id, "staffId": staff_id},
            )

        logger.info(
            "assigned %s to shift %s (%s)", staff_id, shift_id, shift.status.value
        )
        return Outcome(
            value=shift, events=[events.shift_assigned(shift, staff_id, actor.name)]
        )

    def unassign_staff(
        self, actor: StaffMember, shift_id: str, staff_id: str
    ) -> Outcome[Shift]:
        require_permission(actor.role, "can_assign_staff")

        with self.repo.transaction():
            shift = self._load_shift(shift_id)
            self._ensure_not_cancelled(shift)
            if staff_id not in shift.assigned_staff:
                return Outcome(value=shift)

            now = self.now_fn()
            shift.assigned_staff.remove(staff_id)
            shift.status = derive_status(len(shift.assigned_staff), shift.staff_required)
            self.repo.save_shift(shift)
            record_activity(
                self.repo,
                "shift_unassigned",
                f"Staff {staff_id} removed from shift {shift.id}",
                now,
                {"shiftId": shift.id, "staffId": staff_id},
            )

        logger.info(
            "unassigned %s from shift %s (%s)", staff_id, shift_id, shift.status.value
        )
        return Outcome(
            value=shift,
            events=[
                events.schedule_updated(
                    shift,
                    staff_id,
                    "Removed from shift",
                    f"{shift.department_id} {events.describe_window(shift)}",
                )
            ],
        )

    def update_shift(
        self, actor: StaffMember, shift_id: str, changes: ShiftChanges
    ) -> Outcome[Shift]:
        """
        Apply `changes` and re-validate every current assignee against the
        new shape. Assignees who no longer pass are dropped (and told so);
        if capacity shrank, the most recently assigned are dropped first.
        """
        require_permission(actor.role, "can_edit_shifts")

        with self.repo.transaction():
            before = self._load_shift(shift_id)
            self._ensure_not_cancelled(before)

            try:
                after = Shift.model_validate(
                    {**before.model_dump(), **changes.model_dump(exclude_unset=True)}
                )
            except pydantic.ValidationError as exc:
                raise ValidationError(
                    "Invalid shift update", [e["msg"] for e in exc.errors()]
                ) from exc

            others = [s for s in self.repo.get_shifts() if s.id != shift_id]
            kept: list[str] = []
            dropped: dict[str, list[str]] = {}
            for staff_id in before.assigned_staff:
                staff = self.repo.get_staff_member(staff_id)
                if staff is None:
                    dropped[staff_id] = [NOT_FOUND]
                    continue
                result = validate_assignment(after, staff, others)
                if result.is_valid:
                    kept.append(staff_id)
                else:
                    dropped[staff_id] = result.reasons
            if self.enforce_capacity:
                for staff_id in kept[after.staff_required :]:
                    dropped[staff_id] = [AT_CAPACITY]
                kept = kept[: after.staff_required]

            after.assigned_staff = kept
            after.status = derive_status(len(kept), after.staff_required)
            self.repo.save_shift(after)
            record_activity(
                self.repo,
                "shift_updated",
                f"Shift {shift_id} updated"
                + (f", {len(dropped)} assignee(s) removed" if dropped else ""),
                self.now_fn(),
                {"shiftId": shift_id, "dropped": sorted(dropped)},
            )

        emitted: list[DomainEvent] = [
            events.schedule_updated(
                after,
                staff_id,
                "Removed from shift",
                f"{after.department_id} {events.describe_window(after)} "
                f"({', '.join(reasons)})",
            )
            for staff_id, reasons in dropped.items()
        ]
        moved = (before.start_time, before.end_time, before.department_id) != (
            after.start_time,
            after.end_time,
            after.department_id,
        )
        if moved:
            emitted.extend(
                events.shift_changed(before, after, staff_id, actor.name)
                for staff_id in kept
            )
        logger.info(
            "updated shift %s (%s), dropped %d", shift_id, after.status.value, len(dropped)
        )
        return Outcome(value=after, events=emitted)

    def cancel_shift(
        self, actor: StaffMember, shift_id: str, reason: str = ""
    ) -> Outcome[Shift]:
        require_permission(actor.role, "can_edit_shifts")

        with self.repo.transaction():
            shift = self._load_shift(shift_id)
            self._ensure_not_cancelled(shift)
            shift.status = ShiftStatus.CANCELLED
            self.repo.save_shift(shift)
            record_activity(
                self.repo,
                "shift_cancelled",
                f"Shift {shift.id} cancelled" + (f": {reason}" if reason else ""),
                self.now_fn(),
                {"shiftId": shift.id},
            )

        logger.info("cancelled shift %s", shift_id)
        details = f"{shift.department_id} {events.describe_window(shift)}"
        if reason:
            details = f"{details} ({reason})"
        return Outcome(
            value=shift,
            events=[
                events.schedule_updated(shift, staff_id, "Shift cancelled", details)
                for staff_id in shift.assigned_staff
            ],
        )

    def delete_shift(self, actor: StaffMember, shift_id: str) -> Outcome[Shift]:
        require_permission(actor.role, "can_delete_shifts")

        with self.repo.transaction():
            shift = self._load_shift(shift_id)
            self.repo.delete_shift(shift_id)
            record_activity(
                self.repo,
                "shift_deleted",
                f"Shift {shift_id} deleted",
                self.now_fn(),
                {"shiftId": shift_id},
            )

        logger.info("deleted shift %s", shift_id)
        if shift.status == ShiftStatus.CANCELLED:
            return Outcome(value=shift)
        return Outcome(
            value=shift,
            events=[
                events.schedule_updated(
                    shift,
                    staff_id,
                    "Shift removed",
                    f"{shift.department_id} {events.describe_window(shift)}",
                )
                for staff_id in shift.assigned_staff
            ],
        )

    def bulk_assign(
        self, actor: StaffMember, assignments: Iterable[BulkAssignment]
    ) -> Outcome[BulkAssignReport]:
        """
        Assign many staff to many shifts. Each single assignment is atomic;
        failures are collected instead of aborting the batch.
        """
        report = BulkAssignReport()
        emitted: list[DomainEvent] = []
        for assignment in assignments:
            shift: Shift | None = None
            for staff_id in assignment.staff_ids:
                try:
                    outcome = self.assign_staff(actor, assignment.shift_id, staff_id)
                except (AssignmentError, InvalidStateError, NotFoundError) as exc:
                    report.failures.append(
                        BulkAssignFailure(
                            shift_id=assignment.shift_id,
                            staff_id=staff_id,
                            reasons=exc.reasons,
                        )
                    )
                    continue
                shift = outcome.value
                emitted.extend(outcome.events)
            if shift is not None:
                report.shifts.append(shift)
        return Outcome(value=report, events=emitted)

    def coverage_events(self, shift_id: str) -> list[DomainEvent]:
        """
        Coverage alerts for a shift still below capacity: every active,
        eligible, unassigned member of its department plus the
        department's reviewers. Empty once the shift is gone, cancelled
        or staffed.
        """
        shift = self.repo.get_shift(shift_id)
        if shift is None or not below_capacity(shift):
            return []

        shifts = self.repo.get_shifts()
        staff = self.repo.get_staff()
        recipients: dict[str, None] = {}
        for member in staff:
            if member.id in shift.assigned_staff:
                continue
            if validate_assignment(shift, member, shifts).is_valid:
                recipients[member.id] = None
        for reviewer in events.holders_of(staff, "can_approve_requests"):
            if reviewer.department_id == shift.department_id:
                recipients[reviewer.id] = None
        return [events.coverage_needed(shift, r) for r in recipients]
