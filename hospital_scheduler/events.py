"""
Builders for the events the rules engines emit. Wording follows what the
dashboard shows in its notification panel.
"""

from collections.abc import Iterable

from hospital_scheduler.models import (
    DomainEvent,
    NotificationType,
    Priority,
    Shift,
    StaffMember,
    StaffRequest,
)
from hospital_scheduler.permissions import has_permission


def holders_of(staff: Iterable[StaffMember], capability: str) -> list[StaffMember]:
    return [s for s in staff if s.is_active and has_permission(s.role, capability)]


def describe_window(shift: Shift) -> str:
    start, end = shift.start_time, shift.end_time
    if start.date() == end.date():
        return f"{start:%b %d %H:%M}-{end:%H:%M}"
    return f"{start:%b %d %H:%M} - {end:%b %d %H:%M}"


def describe_dates(request: StaffRequest) -> str:
    start, end = request.start_date.date(), request.end_date.date()
    if start == end:
        return f"{start:%b %d, %Y}"
    return f"{start:%b %d} - {end:%b %d, %Y}"


def _label(value: str) -> str:
    return value.replace("_", "-")


def employee_created(
    new_staff: StaffMember, created_by: StaffMember, everyone: Iterable[StaffMember]
) -> list[DomainEvent]:
    everyone = list(everyone)
    events = [
        DomainEvent(
            type=NotificationType.SYSTEM_ALERT,
            title="New Employee Added",
            message=(
                f"{new_staff.name} ({new_staff.role.value}) has been added "
                f"to the system by {created_by.name}"
            ),
            recipient_id=admin.id,
            priority=Priority.MEDIUM,
            action_url="/staff-management",
            metadata={"staffId": new_staff.id},
        )
        for admin in holders_of(everyone, "can_manage_users")
        if admin.id != new_staff.id
    ]
    notified = {e.recipient_id for e in events}
    events.extend(
        DomainEvent(
            type=NotificationType.SYSTEM_ALERT,
            title="New Staff Member",
            message=(
                f"{new_staff.name} has been added to {new_staff.department_id} "
                f"department by {created_by.name}"
            ),
            recipient_id=supervisor.id,
            priority=Priority.LOW,
            action_url="/staff-management",
            metadata={"departmentId": new_staff.department_id},
        )
        for supervisor in holders_of(everyone, "can_approve_requests")
        if supervisor.department_id == new_staff.department_id
        and supervisor.id not in notified
        and supervisor.id != new_staff.id
    )
    return events


def shift_assigned(shift: Shift, staff_id: str, changed_by: str) -> DomainEvent:
    return DomainEvent(
        type=NotificationType.SHIFT_CHANGE,
        title="Shift Update",
        message=(
            f"You have been assigned to the {shift.department_id} shift "
            f"{describe_window(shift)} by {changed_by}"
        ),
        recipient_id=staff_id,
        priority=Priority.HIGH,
        action_url="/my-schedule",
        metadata={"shiftId": shift.id, "departmentId": shift.department_id},
    )


def shift_changed(
    before: Shift, after: Shift, staff_id: str, changed_by: str
) -> DomainEvent:
    return DomainEvent(
        type=NotificationType.SHIFT_CHANGE,
        title="Shift Update",
        message=(
            f"Your shift has been changed from {describe_window(before)} "
            f"to {describe_window(after)} by {changed_by}"
        ),
        recipient_id=staff_id,
        priority=Priority.HIGH,
        action_url="/my-schedule",
        metadata={"shiftId": after.id, "departmentId": after.department_id},
    )


def schedule_updated(
    shift: Shift, staff_id: str, update_type: str, details: str
) -> DomainEvent:
    return DomainEvent(
        type=NotificationType.SCHEDULE_UPDATE,
        title="Schedule Updated",
        message=f"{update_type}: {details}",
        recipient_id=staff_id,
        priority=Priority.MEDIUM,
        action_url="/my-schedule",
        metadata={"shiftId": shift.id, "departmentId": shift.department_id},
    )


def coverage_needed(shift: Shift, recipient_id: str) -> DomainEvent:
    # urgent once fewer than half the seats are filled
    urgent = len(shift.assigned_staff) * 2 < shift.staff_required
    priority = Priority.URGENT if urgent else Priority.HIGH
    prefix = "URGENT: " if urgent else ""
    return DomainEvent(
        type=NotificationType.COVERAGE_NEEDED,
        title="Coverage Needed",
        message=(
            f"{prefix}Coverage needed in {shift.department_id} for "
            f"{describe_window(shift)} "
            f"({len(shift.assigned_staff)}/{shift.staff_required} staffed)"
        ),
        recipient_id=recipient_id,
        priority=priority,
        action_url="/my-schedule",
        metadata={"shiftId": shift.id, "departmentId": shift.department_id},
    )


def request_submitted(
    request: StaffRequest, reviewers: Iterable[StaffMember]
) -> list[DomainEvent]:
    title = f"New {_label(request.type.value).title()} Request"
    return [
        DomainEvent(
            type=NotificationType.NEW_REQUEST,
            title=title,
            message=(
                f"{request.requester_name} has requested "
                f"{_label(request.type.value)} for {describe_dates(request)}"
            ),
            recipient_id=reviewer.id,
            priority=(
                Priority.HIGH
                if request.urgency in (Priority.HIGH, Priority.URGENT)
                else Priority.MEDIUM
            ),
            action_url="/requests-management",
            metadata={"requestId": request.id},
        )
        for reviewer in reviewers
        if reviewer.id != request.requester_id
    ]


def request_approved(request: StaffRequest, approved_by: str) -> DomainEvent:
    return DomainEvent(
        type=NotificationType.REQUEST_APPROVED,
        title="Request Approved",
        message=(
            f"Your {_label(request.type.value)} request for "
            f"{describe_dates(request)} has been approved by {approved_by}"
        ),
        recipient_id=request.requester_id,
        priority=Priority.MEDIUM,
        action_url="/my-requests",
        metadata={"requestId": request.id},
    )


def request_rejected(
    request: StaffRequest, rejected_by: str, reason: str
) -> DomainEvent:
    return DomainEvent(
        type=NotificationType.REQUEST_REJECTED,
        title="Request Rejected",
        message=(
            f"Your {_label(request.type.value)} request for "
            f"{describe_dates(request)} has been rejected by {rejected_by}. "
            f"Reason: {reason}"
        ),
        recipient_id=request.requester_id,
        priority=Priority.HIGH,
        action_url="/my-requests",
        metadata={"requestId": request.id},
    )


def system_alert(
    title: str,
    message: str,
    recipient_ids: Iterable[str],
    priority: Priority = Priority.MEDIUM,
) -> list[DomainEvent]:
    return [
        DomainEvent(
            type=NotificationType.SYSTEM_ALERT,
            title=title,
            message=message,
            recipient_id=recipient_id,
            priority=priority,
            action_url="/dashboard",
        )
        for recipient_id in recipient_ids
    ]
