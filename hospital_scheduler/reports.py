from pydantic import BaseModel

from hospital_scheduler.database import Repository
from hospital_scheduler.models import RequestStatus, ShiftStatus


class DashboardStats(BaseModel):
    total_staff: int
    active_staff: int
    total_shifts: int
    open_shifts: int
    understaffed_shifts: int
    filled_shifts: int
    pending_requests: int
    approved_requests: int
    rejected_requests: int
    departments: int
    total_hours_scheduled: float


def dashboard_stats(repo: Repository) -> DashboardStats:
    staff = repo.get_staff()
    shifts = repo.get_shifts()
    requests = repo.get_requests()
    live_shifts = [s for s in shifts if s.status != ShiftStatus.CANCELLED]

    def shifts_in(status: ShiftStatus) -> int:
        return sum(1 for s in shifts if s.status == status)

    def requests_in(status: RequestStatus) -> int:
        return sum(1 for r in requests if r.status == status)

    return DashboardStats(
        total_staff=len(staff),
        active_staff=sum(1 for s in staff if s.is_active),
        total_shifts=len(shifts),
        open_shifts=shifts_in(ShiftStatus.OPEN),
        understaffed_shifts=shifts_in(ShiftStatus.UNDERSTAFFED),
        filled_shifts=shifts_in(ShiftStatus.FILLED),
        pending_requests=requests_in(RequestStatus.PENDING),
        approved_requests=requests_in(RequestStatus.APPROVED),
        rejected_requests=requests_in(RequestStatus.REJECTED),
        departments=len({s.department_id for s in staff} | {s.department_id for s in shifts}),
        total_hours_scheduled=round(sum(s.hours for s in live_shifts), 2),
    )
