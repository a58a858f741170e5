"""
Domain models for the hospital scheduling service.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Generic, TypeVar

from pydantic import AfterValidator, BaseModel, Field, model_validator

T = TypeVar("T")


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class Role(str, Enum):
    ADMIN = "admin"
    SUPERVISOR = "supervisor"
    DOCTOR = "doctor"
    NURSE = "nurse"


class ShiftStatus(str, Enum):
    OPEN = "open"
    UNDERSTAFFED = "understaffed"
    FILLED = "filled"
    CANCELLED = "cancelled"


class RequestType(str, Enum):
    TIME_OFF = "time_off"
    SHIFT_SWAP = "shift_swap"
    COVERAGE = "coverage"
    OVERTIME = "overtime"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class NotificationType(str, Enum):
    SHIFT_CHANGE = "shift_change"
    REQUEST_APPROVED = "request_approved"
    REQUEST_REJECTED = "request_rejected"
    NEW_REQUEST = "new_request"
    COVERAGE_NEEDED = "coverage_needed"
    SCHEDULE_UPDATE = "schedule_update"
    SYSTEM_ALERT = "system_alert"


class StaffMember(BaseModel):
    id: str
    name: str
    email: str
    role: Role
    department_id: str
    certifications: set[str] = Field(default_factory=set)
    is_active: bool = True
    created_at: UtcDatetime | None = None
    updated_at: UtcDatetime | None = None
    deactivated_at: UtcDatetime | None = None  # soft delete marker


class Shift(BaseModel):
    id: str
    department_id: str
    start_time: UtcDatetime
    end_time: UtcDatetime
    title: str = ""
    description: str = ""
    required_role: Role | None = None
    required_certifications: set[str] = Field(default_factory=set)
    staff_required: int = Field(default=1, ge=1)
    assigned_staff: list[str] = Field(default_factory=list)
    status: ShiftStatus = ShiftStatus.OPEN
    created_at: UtcDatetime | None = None
    assigned_at: UtcDatetime | None = None  # last successful assignment

    @model_validator(mode="after")
    def _check_window(self) -> "Shift":
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self

    @property
    def hours(self) -> float:
        return (self.end_time - self.start_time).total_seconds() / 3600


class StaffRequest(BaseModel):
    id: str
    requester_id: str
    requester_name: str
    type: RequestType
    start_date: UtcDatetime
    end_date: UtcDatetime
    reason: str = ""
    urgency: Priority = Priority.MEDIUM
    status: RequestStatus = RequestStatus.PENDING
    swap_with: str | None = None  # staff id, shift_swap only
    affected_shift_ids: list[str] = Field(default_factory=list)
    created_at: UtcDatetime | None = None
    # review fields stay unset while pending and are written once
    reviewed_by: str | None = None
    reviewed_at: UtcDatetime | None = None
    review_notes: str | None = None


class Notification(BaseModel):
    id: str
    type: NotificationType
    title: str
    message: str
    timestamp: UtcDatetime
    user_id: str
    priority: Priority = Priority.MEDIUM
    is_read: bool = False
    action_url: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class Activity(BaseModel):
    id: str
    type: str
    description: str
    created_at: UtcDatetime
    metadata: dict[str, Any] = Field(default_factory=dict)


class ValidationResult(BaseModel):
    is_valid: bool
    reasons: list[str] = Field(default_factory=list)


class DomainEvent(BaseModel):
    """
    A notification the rules engines want sent. Mutating operations return
    these instead of delivering them, and the dispatcher consumes them.
    """

    type: NotificationType
    title: str
    message: str
    recipient_id: str
    priority: Priority = Priority.MEDIUM
    action_url: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class Outcome(BaseModel, Generic[T]):
    """New state of a mutating operation plus the events it produced."""

    value: T
    events: list[DomainEvent] = Field(default_factory=list)


class ShiftDraft(BaseModel):
    department_id: str
    start_time: UtcDatetime
    end_time: UtcDatetime
    title: str = ""
    description: str = ""
    required_role: Role | None = None
    required_certifications: set[str] = Field(default_factory=set)
    staff_required: int = Field(default=1, ge=1)
    assigned_staff: list[str] = Field(default_factory=list)


class ShiftChanges(BaseModel):
    """Partial shift update; only fields explicitly set are applied."""

    department_id: str | None = None
    start_time: UtcDatetime | None = None
    end_time: UtcDatetime | None = None
    title: str | None = None
    description: str | None = None
    required_role: Role | None = None
    required_certifications: set[str] | None = None
    staff_required: int | None = Field(default=None, ge=1)


class StaffDraft(BaseModel):
    name: str
    email: str
    role: Role
    department_id: str
    certifications: set[str] = Field(default_factory=set)


class StaffChanges(BaseModel):
    name: str | None = None
    email: str | None = None
    role: Role | None = None
    department_id: str | None = None
    certifications: set[str] | None = None


class RequestDraft(BaseModel):
    type: RequestType
    start_date: UtcDatetime
    end_date: UtcDatetime
    reason: str = ""
    urgency: Priority = Priority.MEDIUM
    swap_with: str | None = None
    affected_shift_ids: list[str] = Field(default_factory=list)


class BulkAssignment(BaseModel):
    shift_id: str
    staff_ids: list[str]


class BulkAssignFailure(BaseModel):
    shift_id: str
    staff_id: str
    reasons: list[str]


class BulkAssignReport(BaseModel):
    shifts: list[Shift] = Field(default_factory=list)
    failures: list[BulkAssignFailure] = Field(default_factory=list)


class StaffDeactivation(BaseModel):
    staff: StaffMember
    # upcoming shifts the member was taken off
    released_shifts: list[Shift] = Field(default_factory=list)
