"""
Staff request workflow: pending -> approved | rejected, both terminal.

Review fields are written exactly once, together with the status change.
"""

import logging
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime

from hospital_scheduler import events
from hospital_scheduler.activity import record_activity
from hospital_scheduler.database import Repository
from hospital_scheduler.errors import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from hospital_scheduler.models import (
    Outcome,
    Priority,
    RequestDraft,
    RequestStatus,
    RequestType,
    StaffMember,
    StaffRequest,
)
from hospital_scheduler.permissions import can_approve_requests, require_permission

logger = logging.getLogger(__name__)

NowFn = Callable[[], datetime]


def can_see_all_requests(viewer: StaffMember) -> bool:
    return can_approve_requests(viewer.role)


def visible_requests(
    viewer: StaffMember, requests: Iterable[StaffRequest]
) -> list[StaffRequest]:
    """
    Reviewers see everything; anyone else only their own requests.
    Applied wherever requests are listed.
    """
    if can_see_all_requests(viewer):
        return list(requests)
    return [r for r in requests if r.requester_id == viewer.id]


def filter_requests(
    requests: Iterable[StaffRequest],
    *,
    status: RequestStatus | None = None,
    type: RequestType | None = None,
    urgency: Priority | None = None,
    search: str | None = None,
) -> list[StaffRequest]:
    """Matching requests, newest first."""
    term = (search or "").strip().lower()
    matched = [
        r
        for r in requests
        if (status is None or r.status == status)
        and (type is None or r.type == type)
        and (urgency is None or r.urgency == urgency)
        and (
            not term
            or term in r.requester_name.lower()
            or term in r.reason.lower()
        )
    ]
    return sorted(
        matched,
        key=lambda r: r.created_at or r.start_date,
        reverse=True,
    )


class RequestWorkflowManager:
    def __init__(self, repo: Repository, *, now_fn: NowFn) -> None:
        self.repo = repo
        self.now_fn = now_fn

    def _load(self, request_id: str) -> StaffRequest:
        request = self.repo.get_request(request_id)
        if request is None:
            raise NotFoundError(f"Request {request_id} not found", ["not found"])
        return request

    @staticmethod
    def _ensure_pending(request: StaffRequest) -> None:
        if request.status != RequestStatus.PENDING:
            raise InvalidStateError(
                f"Request {request.id} is already {request.status.value}",
                [f"request already {request.status.value}"],
            )

    def submit(self, actor: StaffMember, draft: RequestDraft) -> Outcome[StaffRequest]:
        require_permission(actor.role, "can_create_requests")
        if draft.start_date > draft.end_date:
            raise ValidationError(
                "Invalid request dates", ["start date is after end date"]
            )
        if draft.swap_with is not None:
            if draft.type != RequestType.SHIFT_SWAP:
                raise ValidationError(
                    "Only shift swaps name a swap partner",
                    ["swap_with is only valid for shift_swap requests"],
                )
            if self.repo.get_staff_member(draft.swap_with) is None:
                raise NotFoundError(
                    f"Staff {draft.swap_with} not found", ["not found"]
                )

        now = self.now_fn()
        request = StaffRequest(
            id=uuid.uuid4().hex,
            requester_id=actor.id,
            requester_name=actor.name,
            created_at=now,
            **draft.model_dump(),
        )
        with self.repo.transaction():
            self.repo.save_request(request)
            record_activity(
                self.repo,
                "request_submitted",
                f"{actor.name} submitted a {request.type.value} request",
                now,
                {"requestId": request.id},
            )
            reviewers = events.holders_of(self.repo.get_staff(), "can_approve_requests")

        logger.info("request %s submitted by %s", request.id, actor.id)
        return Outcome(
            value=request, events=events.request_submitted(request, reviewers)
        )

    def approve(
        self, reviewer: StaffMember, request_id: str, notes: str | None = None
    ) -> Outcome[StaffRequest]:
        require_permission(reviewer.role, "can_approve_requests")

        with self.repo.transaction():
            request = self._load(request_id)
            self._ensure_pending(request)
            now = self.now_fn()
            request = request.model_copy(
                update={
                    "status": RequestStatus.APPROVED,
                    "reviewed_by": reviewer.id,
                    "reviewed_at": now,
                    "review_notes": notes or None,
                }
            )
            self.repo.save_request(request)
            record_activity(
                self.repo,
                "request_approved",
                f"{reviewer.name} approved request {request.id}",
                now,
                {"requestId": request.id},
            )

        logger.info("request %s approved by %s", request_id, reviewer.id)
        return Outcome(
            value=request, events=[events.request_approved(request, reviewer.name)]
        )

    def reject(
        self, reviewer: StaffMember, request_id: str, notes: str
    ) -> Outcome[StaffRequest]:
        """Reject a pending request. A non-blank reason is mandatory."""
        require_permission(reviewer.role, "can_reject_requests")

        with self.repo.transaction():
            request = self._load(request_id)
            self._ensure_pending(request)
            reason = (notes or "").strip()
            if not reason:
                raise ValidationError(
                    "Rejection needs a reason", ["rejection reason required"]
                )
            now = self.now_fn()
            request = request.model_copy(
                update={
                    "status": RequestStatus.REJECTED,
                    "reviewed_by": reviewer.id,
                    "reviewed_at": now,
                    "review_notes": reason,
                }
            )
            self.repo.save_request(request)
            record_activity(
                self.repo,
                "request_rejected",
                f"{reviewer.name} rejected request {request.id}",
                now,
                {"requestId": request.id},
            )

        logger.info("request %s rejected by %s", request_id, reviewer.id)
        return Outcome(
            value=request,
            events=[events.request_rejected(request, reviewer.name, reason)],
        )
