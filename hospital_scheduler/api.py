import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import TypeVar

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from hospital_scheduler.activity import recent_activity
from hospital_scheduler.config import Settings, load_settings
from hospital_scheduler.database import InMemoryRepository, Repository
from hospital_scheduler.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    SchedulingError,
    ValidationError,
)
from hospital_scheduler.models import (
    Activity,
    BulkAssignment,
    BulkAssignReport,
    Notification,
    Outcome,
    Priority,
    RequestDraft,
    RequestStatus,
    RequestType,
    Shift,
    ShiftChanges,
    ShiftDraft,
    ShiftStatus,
    StaffChanges,
    StaffDraft,
    StaffMember,
    StaffRequest,
    ValidationResult,
)
from hospital_scheduler.notifications import (
    NotificationDispatcher,
    NotificationStore,
    Toast,
    ToastChannel,
)
from hospital_scheduler.events import system_alert
from hospital_scheduler.permissions import (
    can_manage_schedule,
    can_manage_staff,
    require_permission,
)
from hospital_scheduler.reports import DashboardStats, dashboard_stats
from hospital_scheduler.seed import seed_demo_data
from hospital_scheduler.shifts import (
    ShiftLifecycleManager,
    below_capacity,
    filter_shifts,
)
from hospital_scheduler.staff import StaffDirectory, search_staff
from hospital_scheduler.workflow import (
    RequestWorkflowManager,
    filter_requests,
    visible_requests,
)

logger = logging.getLogger(__name__)

router = APIRouter()

NowFn = Callable[[], datetime]
SleepFn = Callable[[float], Awaitable[None]]

ERROR_STATUS: dict[type[SchedulingError], int] = {
    NotFoundError: 404,
    ValidationError: 422,
    PermissionDeniedError: 403,
    InvalidStateError: 409,
    ConflictError: 409,
}


class AssignStaffRequest(BaseModel):
    staff_id: str


class CancelShiftRequest(BaseModel):
    reason: str = ""


class ReviewRequest(BaseModel):
    notes: str | None = None


class BulkAssignRequest(BaseModel):
    assignments: list[BulkAssignment]


class NotificationList(BaseModel):
    notifications: list[Notification]
    unread_count: int


class SystemAlertRequest(BaseModel):
    title: str = Field(min_length=1)
    message: str = Field(min_length=1)
    # every active member when unset
    recipient_ids: list[str] | None = None
    priority: Priority = Priority.MEDIUM


def _repo(request: Request) -> Repository:
    return request.app.state.repository


def _current_user(request: Request) -> StaffMember:
    # identity comes from the session layer in front of this service
    user_id = request.headers.get("x-user-id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    user = _repo(request).get_staff_member(user_id)
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="Unknown or inactive user")
    return user


def _shift_manager(request: Request) -> ShiftLifecycleManager:
    return _shift_manager_for(request.app)


def _workflow(request: Request) -> RequestWorkflowManager:
    return RequestWorkflowManager(
        request.app.state.repository, now_fn=request.app.state.now_fn
    )


def _directory(request: Request) -> StaffDirectory:
    return StaffDirectory(request.app.state.repository, now_fn=request.app.state.now_fn)


T = TypeVar("T")


def _apply(request: Request, outcome: Outcome[T]) -> T:
    request.app.state.dispatcher.dispatch(outcome.events)
    return outcome.value


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


# staff


@router.get("/staff")
async def list_staff(
    request: Request, q: str = "", include_inactive: bool = False
) -> list[StaffMember]:
    user = _current_user(request)
    require_permission(user.role, "can_view_staff")
    if include_inactive and not can_manage_staff(user.role):
        raise PermissionDeniedError(
            "Only staff managers can list inactive members",
            reasons=["missing capability: can_edit_staff"],
        )
    staff = _repo(request).get_staff()
    if not include_inactive:
        staff = [s for s in staff if s.is_active]
    return sorted(search_staff(staff, q), key=lambda s: s.name)


@router.post("/staff", status_code=201)
async def create_staff(draft: StaffDraft, request: Request) -> StaffMember:
    user = _current_user(request)
    return _apply(request, _directory(request).create_staff(user, draft))


@router.patch("/staff/{staff_id}")
async def update_staff(
    staff_id: str, changes: StaffChanges, request: Request
) -> StaffMember:
    user = _current_user(request)
    return _apply(request, _directory(request).update_staff(user, staff_id, changes))


@router.post("/staff/{staff_id}/deactivate")
async def deactivate_staff(staff_id: str, request: Request) -> StaffMember:
    user = _current_user(request)
    result = _apply(request, _directory(request).deactivate_staff(user, staff_id))
    for shift in result.released_shifts:
        sync_coverage_check(request.app, shift)
    return result.staff


# shifts


@router.get("/shifts")
async def list_shifts(
    request: Request,
    department_id: str | None = None,
    status: ShiftStatus | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Shift]:
    user = _current_user(request)
    require_permission(user.role, "can_view_schedule")
    return filter_shifts(
        _repo(request).get_shifts(),
        department_id=department_id,
        status=status,
        start=start,
        end=end,
    )


@router.post("/shifts", status_code=201)
async def create_shift(draft: ShiftDraft, request: Request) -> Shift:
    user = _current_user(request)
    shift = _apply(request, _shift_manager(request).create_shift(user, draft))
    sync_coverage_check(request.app, shift)
    return shift


@router.post("/shifts/bulk-assign")
async def bulk_assign(body: BulkAssignRequest, request: Request) -> BulkAssignReport:
    user = _current_user(request)
    report = _apply(
        request, _shift_manager(request).bulk_assign(user, body.assignments)
    )
    for shift in report.shifts:
        sync_coverage_check(request.app, shift)
    return report


@router.patch("/shifts/{shift_id}")
async def update_shift(shift_id: str, changes: ShiftChanges, request: Request) -> Shift:
    user = _current_user(request)
    shift = _apply(
        request, _shift_manager(request).update_shift(user, shift_id, changes)
    )
    sync_coverage_check(request.app, shift)
    return shift


@router.delete("/shifts/{shift_id}", status_code=204)
async def delete_shift(shift_id: str, request: Request) -> None:
    user = _current_user(request)
    _apply(request, _shift_manager(request).delete_shift(user, shift_id))
    cancel_coverage_check(request.app, shift_id)


@router.post("/shifts/{shift_id}/assign")
async def assign_staff(
    shift_id: str, body: AssignStaffRequest, request: Request
) -> Shift:
    user = _current_user(request)
    shift = _apply(
        request, _shift_manager(request).assign_staff(user, shift_id, body.staff_id)
    )
    sync_coverage_check(request.app, shift)
    return shift


@router.post("/shifts/{shift_id}/unassign")
async def unassign_staff(
    shift_id: str, body: AssignStaffRequest, request: Request
) -> Shift:
    user = _current_user(request)
    shift = _apply(
        request,
        _shift_manager(request).unassign_staff(user, shift_id, body.staff_id),
    )
    sync_coverage_check(request.app, shift)
    return shift


@router.post("/shifts/{shift_id}/cancel")
async def cancel_shift(
    shift_id: str, body: CancelShiftRequest, request: Request
) -> Shift:
    user = _current_user(request)
    shift = _apply(
        request, _shift_manager(request).cancel_shift(user, shift_id, body.reason)
    )
    cancel_coverage_check(request.app, shift_id)
    return shift


@router.get("/shifts/{shift_id}/validate/{staff_id}")
async def validate_assignment(
    shift_id: str, staff_id: str, request: Request
) -> ValidationResult:
    user = _current_user(request)
    if not can_manage_schedule(user.role):
        raise PermissionDeniedError(
            "Only schedulers can check assignments",
            reasons=["missing capability: can_edit_shifts"],
        )
    return _shift_manager(request).validate(shift_id, staff_id)


# requests


@router.get("/requests")
async def list_requests(
    request: Request,
    status: RequestStatus | None = None,
    type: RequestType | None = None,
    urgency: Priority | None = None,
    search: str | None = None,
) -> list[StaffRequest]:
    user = _current_user(request)
    require_permission(user.role, "can_view_requests")
    return filter_requests(
        visible_requests(user, _repo(request).get_requests()),
        status=status,
        type=type,
        urgency=urgency,
        search=search,
    )


@router.post("/requests", status_code=201)
async def submit_request(draft: RequestDraft, request: Request) -> StaffRequest:
    user = _current_user(request)
    return _apply(request, _workflow(request).submit(user, draft))


@router.post("/requests/{request_id}/approve")
async def approve_request(
    request_id: str, body: ReviewRequest, request: Request
) -> StaffRequest:
    user = _current_user(request)
    return _apply(request, _workflow(request).approve(user, request_id, body.notes))


@router.post("/requests/{request_id}/reject")
async def reject_request(
    request_id: str, body: ReviewRequest, request: Request
) -> StaffRequest:
    user = _current_user(request)
    return _apply(
        request, _workflow(request).reject(user, request_id, body.notes or "")
    )


# notifications


@router.get("/notifications")
async def list_notifications(
    request: Request, unread_only: bool = False
) -> NotificationList:
    user = _current_user(request)
    store: NotificationStore = request.app.state.notification_store
    return NotificationList(
        notifications=store.list_for_user(user.id, unread_only=unread_only),
        unread_count=store.unread_count(user.id),
    )


@router.get("/notifications/toasts")
async def list_toasts(request: Request) -> list[Toast]:
    user = _current_user(request)
    return request.app.state.toasts.active(user.id)


@router.post("/notifications/system-alert", status_code=201)
async def send_system_alert(
    body: SystemAlertRequest, request: Request
) -> list[Notification]:
    user = _current_user(request)
    require_permission(user.role, "can_configure_system")
    repo = _repo(request)
    if body.recipient_ids is None:
        recipients = [s.id for s in repo.get_staff() if s.is_active]
    else:
        recipients = list(dict.fromkeys(body.recipient_ids))
        missing = [r for r in recipients if repo.get_staff_member(r) is None]
        if missing:
            raise NotFoundError(
                f"Unknown recipients: {', '.join(missing)}", ["not found"]
            )

    logger.info("system alert from %s to %d staff", user.id, len(recipients))
    dispatcher: NotificationDispatcher = request.app.state.dispatcher
    return dispatcher.dispatch(
        system_alert(body.title, body.message, recipients, body.priority)
    )


@router.post("/notifications/read-all")
async def mark_all_notifications_read(request: Request) -> dict[str, int]:
    user = _current_user(request)
    store: NotificationStore = request.app.state.notification_store
    return {"updated": store.mark_all_read(user.id)}


@router.post("/notifications/{notification_id}/read")
async def mark_notification_read(notification_id: str, request: Request) -> Notification:
    user = _current_user(request)
    return request.app.state.notification_store.mark_read(user.id, notification_id)


@router.delete("/notifications/{notification_id}", status_code=204)
async def delete_notification(notification_id: str, request: Request) -> None:
    user = _current_user(request)
    request.app.state.notification_store.delete(user.id, notification_id)


# reporting


@router.get("/activity")
async def list_activity(request: Request, hours: float = 24) -> list[Activity]:
    user = _current_user(request)
    require_permission(user.role, "can_view_reports")
    return recent_activity(_repo(request), request.app.state.now_fn(), hours)


@router.get("/stats")
async def stats(request: Request) -> DashboardStats:
    user = _current_user(request)
    require_permission(user.role, "can_view_reports")
    return dashboard_stats(_repo(request))


# coverage escalation


def sync_coverage_check(app: FastAPI, shift: Shift) -> None:
    """
    Start the coverage timer for a shift below capacity, or stop it once
    the shift is staffed. A running timer is left alone.
    """
    if not below_capacity(shift):
        cancel_coverage_check(app, shift.id)
        return
    if shift.id in app.state.coverage_tasks_by_shift:
        return

    shift_id = shift.id
    task = asyncio.create_task(
        escalate_if_understaffed(
            shift_id,
            _shift_manager_for(app),
            app.state.dispatcher,
            started_at=app.state.now_fn(),
            threshold=timedelta(minutes=app.state.settings.coverage_threshold_minutes),
            now_fn=app.state.now_fn,
            sleep_fn=app.state.sleep_fn,
        )
    )
    app.state.coverage_tasks.add(task)
    app.state.coverage_tasks_by_shift[shift_id] = task

    def _cleanup(_t: asyncio.Task) -> None:
        app.state.coverage_tasks.discard(_t)
        if app.state.coverage_tasks_by_shift.get(shift_id) is _t:
            app.state.coverage_tasks_by_shift.pop(shift_id, None)

    task.add_done_callback(_cleanup)


def cancel_coverage_check(app: FastAPI, shift_id: str) -> None:
    task = app.state.coverage_tasks_by_shift.pop(shift_id, None)
    if task is not None:
        task.cancel()


def _shift_manager_for(app: FastAPI) -> ShiftLifecycleManager:
    return ShiftLifecycleManager(
        app.state.repository,
        now_fn=app.state.now_fn,
        enforce_capacity=app.state.settings.enforce_capacity,
    )


async def escalate_if_understaffed(
    shift_id: str,
    shifts: ShiftLifecycleManager,
    dispatcher: NotificationDispatcher,
    *,
    started_at: datetime,
    threshold: timedelta,
    now_fn: NowFn,
    sleep_fn: SleepFn,
) -> None:
    if started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=UTC)
    target = started_at + threshold

    try:
        remaining = (target - now_fn()).total_seconds()
        if remaining > 0:
            await sleep_fn(remaining)

        # re-read: the shift may have been filled, cancelled or deleted
        coverage = shifts.coverage_events(shift_id)
        if coverage:
            logger.info(
                "shift %s still below capacity, alerting %d staff",
                shift_id,
                len(coverage),
            )
        dispatcher.dispatch(coverage)

    except asyncio.CancelledError:
        return


async def scheduling_error_handler(
    request: Request, exc: SchedulingError
) -> JSONResponse:
    status_code = next(
        (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 400
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "reasons": exc.reasons},
    )


def create_app(
    settings: Settings | None = None, repository: Repository | None = None
) -> FastAPI:
    settings = settings or load_settings()
    logging.getLogger("hospital_scheduler").setLevel(settings.log_level.upper())

    app = FastAPI(title="Hospital Scheduler")
    app.state.settings = settings
    app.state.repository = (
        repository if repository is not None else InMemoryRepository()
    )

    app.state.now_fn = lambda: datetime.now(UTC)
    app.state.sleep_fn = asyncio.sleep

    # read now_fn through app.state so tests can swap the clock later
    store = NotificationStore(limit=settings.notification_limit)
    toasts = ToastChannel(
        now_fn=lambda: app.state.now_fn(),
        ttl_seconds=settings.toast_ttl_seconds,
        retry_attempts=settings.toast_retry_attempts,
    )
    app.state.notification_store = store
    app.state.toasts = toasts
    app.state.dispatcher = NotificationDispatcher(
        store, toasts, now_fn=lambda: app.state.now_fn()
    )

    app.state.coverage_tasks = set()
    app.state.coverage_tasks_by_shift = {}

    if settings.seed_demo_data:
        seed_demo_data(app.state.repository, app.state.now_fn())

    app.add_exception_handler(SchedulingError, scheduling_error_handler)
    app.include_router(router)
    return app
