import logging
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime

from hospital_scheduler import events
from hospital_scheduler.activity import record_activity
from hospital_scheduler.database import Repository
from hospital_scheduler.errors import NotFoundError
from hospital_scheduler.models import (
    Outcome,
    Shift,
    ShiftStatus,
    StaffChanges,
    StaffDeactivation,
    StaffDraft,
    StaffMember,
)
from hospital_scheduler.permissions import require_permission
from hospital_scheduler.shifts import derive_status

logger = logging.getLogger(__name__)

NowFn = Callable[[], datetime]


def search_staff(staff: Iterable[StaffMember], query: str) -> list[StaffMember]:
    term = query.strip().lower()
    if not term:
        return list(staff)
    return [
        s
        for s in staff
        if term in s.name.lower()
        or term in s.email.lower()
        or term in s.department_id.lower()
        or term in s.role.value
    ]


class StaffDirectory:
    """Staff records. Deactivation is a soft delete; records are never removed."""

    def __init__(self, repo: Repository, *, now_fn: NowFn) -> None:
        self.repo = repo
        self.now_fn = now_fn

    def _load(self, staff_id: str) -> StaffMember:
        staff = self.repo.get_staff_member(staff_id)
        if staff is None:
            raise NotFoundError(f"Staff {staff_id} not found", ["not found"])
        return staff

    def create_staff(self, actor: StaffMember, draft: StaffDraft) -> Outcome[StaffMember]:
        require_permission(actor.role, "can_create_staff")
        now = self.now_fn()
        staff = StaffMember(
            id=uuid.uuid4().hex, created_at=now, is_active=True, **draft.model_dump()
        )
        with self.repo.transaction():
            self.repo.save_staff(staff)
            record_activity(
                self.repo,
                "staff_created",
                f"New staff member added: {staff.name}",
                now,
                {"staffId": staff.id},
            )
            everyone = self.repo.get_staff()

        logger.info("staff %s created by %s", staff.id, actor.id)
        return Outcome(value=staff, events=events.employee_created(staff, actor, everyone))

    def update_staff(
        self, actor: StaffMember, staff_id: str, changes: StaffChanges
    ) -> Outcome[StaffMember]:
        require_permission(actor.role, "can_edit_staff")
        with self.repo.transaction():
            staff = self._load(staff_id)
            now = self.now_fn()
            staff = staff.model_copy(
                update={**changes.model_dump(exclude_unset=True, exclude_none=True), "updated_at": now}
            )
            self.repo.save_staff(staff)
            record_activity(
                self.repo,
                "staff_updated",
                f"Staff member updated: {staff.name}",
                now,
                {"staffId": staff.id},
            )
        return Outcome(value=staff)

    def deactivate_staff(
        self, actor: StaffMember, staff_id: str
    ) -> Outcome[StaffDeactivation]:
        """
        Soft-delete a member and take them off every non-cancelled shift
        that has not started yet. Past and running shifts keep them.
        """
        require_permission(actor.role, "can_delete_staff")
        with self.repo.transaction():
            staff = self._load(staff_id)
            if not staff.is_active:
                return Outcome(value=StaffDeactivation(staff=staff))
            now = self.now_fn()
            staff = staff.model_copy(update={"is_active": False, "deactivated_at": now})
            self.repo.save_staff(staff)

            released: list[Shift] = []
            for shift in self.repo.get_shifts():
                if (
                    staff_id not in shift.assigned_staff
                    or shift.status == ShiftStatus.CANCELLED
                    or shift.start_time <= now
                ):
                    continue
                shift.assigned_staff.remove(staff_id)
                shift.status = derive_status(
                    len(shift.assigned_staff), shift.staff_required
                )
                self.repo.save_shift(shift)
                released.append(shift)

            record_activity(
                self.repo,
                "staff_deactivated",
                f"Staff member deactivated: {staff.name}",
                now,
                {"staffId": staff.id, "releasedShiftIds": [s.id for s in released]},
            )
        logger.info(
            "staff %s deactivated by %s, released from %d shift(s)",
            staff_id,
            actor.id,
            len(released),
        )
        return Outcome(value=StaffDeactivation(staff=staff, released_shifts=released))
