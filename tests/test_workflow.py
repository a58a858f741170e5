from datetime import timedelta

import pytest

from hospital_scheduler.errors import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from hospital_scheduler.models import (
    NotificationType,
    Priority,
    RequestDraft,
    RequestStatus,
    RequestType,
)
from hospital_scheduler.workflow import (
    RequestWorkflowManager,
    filter_requests,
    visible_requests,
)

from conftest import NOW, at


def _time_off(**overrides) -> RequestDraft:
    values = dict(
        type=RequestType.TIME_OFF,
        start_date=at(0, day=25),
        end_date=at(23, day=27),
        reason="Family vacation",
    )
    values.update(overrides)
    return RequestDraft(**values)


def test_submit_creates_pending_request_and_alerts_reviewers(
    repo, workflow, admin, supervisor, nurse, doctor
) -> None:
    outcome = workflow.submit(nurse, _time_off())

    request = outcome.value
    assert request.status == RequestStatus.PENDING
    assert request.requester_id == nurse.id
    assert request.requester_name == nurse.name
    assert request.reviewed_by is None
    assert request.reviewed_at is None
    assert request.review_notes is None
    assert repo.get_request(request.id) == request

    assert {e.recipient_id for e in outcome.events} == {admin.id, supervisor.id}
    assert all(e.type == NotificationType.NEW_REQUEST for e in outcome.events)
    assert "Jul 25 - Jul 27, 2025" in outcome.events[0].message


def test_submit_validates_dates(workflow, nurse) -> None:
    with pytest.raises(ValidationError):
        workflow.submit(nurse, _time_off(start_date=at(0, day=28)))


def test_swap_partner_must_exist(workflow, nurse) -> None:
    with pytest.raises(NotFoundError):
        workflow.submit(
            nurse, _time_off(type=RequestType.SHIFT_SWAP, swap_with="ghost")
        )
    with pytest.raises(ValidationError):
        workflow.submit(nurse, _time_off(swap_with=nurse.id))


def test_approve_sets_review_fields_once(repo, workflow, supervisor, nurse) -> None:
    request = workflow.submit(nurse, _time_off()).value

    outcome = workflow.approve(supervisor, request.id)

    approved = outcome.value
    assert approved.status == RequestStatus.APPROVED
    assert approved.reviewed_by == supervisor.id
    assert approved.reviewed_at == NOW
    assert approved.review_notes is None
    (event,) = outcome.events
    assert event.type == NotificationType.REQUEST_APPROVED
    assert event.recipient_id == nurse.id
    assert "approved by Grace Lee" in event.message


def test_second_review_fails_and_changes_nothing(repo, admin, supervisor, nurse) -> None:
    clock = {"now": NOW}
    workflow = RequestWorkflowManager(repo, now_fn=lambda: clock["now"])
    request = workflow.submit(nurse, _time_off()).value
    workflow.approve(supervisor, request.id, "coverage arranged")
    stored = repo.get_request(request.id)

    clock["now"] = NOW + timedelta(hours=1)
    with pytest.raises(InvalidStateError):
        workflow.approve(admin, request.id, "again")
    with pytest.raises(InvalidStateError):
        workflow.reject(admin, request.id, "changed my mind")

    assert repo.get_request(request.id) == stored
    assert stored.review_notes == "coverage arranged"
    assert stored.reviewed_at == NOW


def test_reject_requires_reason(repo, workflow, supervisor, nurse) -> None:
    request = workflow.submit(nurse, _time_off()).value

    with pytest.raises(ValidationError):
        workflow.reject(supervisor, request.id, "   ")
    assert repo.get_request(request.id).status == RequestStatus.PENDING

    outcome = workflow.reject(supervisor, request.id, "Insufficient coverage")
    assert outcome.value.status == RequestStatus.REJECTED
    assert outcome.value.review_notes == "Insufficient coverage"
    (event,) = outcome.events
    assert event.type == NotificationType.REQUEST_REJECTED
    assert event.priority == Priority.HIGH
    assert event.message.endswith("Reason: Insufficient coverage")


@pytest.mark.parametrize("action", ["approve", "reject"])
def test_clinical_staff_cannot_review(workflow, nurse, doctor, action) -> None:
    request = workflow.submit(nurse, _time_off()).value

    with pytest.raises(PermissionDeniedError):
        getattr(workflow, action)(doctor, request.id, "nope")


def test_unknown_request(workflow, supervisor) -> None:
    with pytest.raises(NotFoundError):
        workflow.approve(supervisor, "missing")


def test_visibility(repo, workflow, supervisor, nurse, doctor) -> None:
    mine = workflow.submit(nurse, _time_off()).value
    theirs = workflow.submit(doctor, _time_off(reason="Conference")).value
    everything = repo.get_requests()

    assert visible_requests(nurse, everything) == [mine]
    assert visible_requests(doctor, everything) == [theirs]
    assert {r.id for r in visible_requests(supervisor, everything)} == {
        mine.id,
        theirs.id,
    }


def test_filter_requests(repo, workflow, supervisor, nurse, doctor) -> None:
    vacation = workflow.submit(nurse, _time_off(urgency=Priority.LOW)).value
    overtime = workflow.submit(
        doctor,
        _time_off(
            type=RequestType.OVERTIME,
            urgency=Priority.HIGH,
            reason="Complex surgery requiring extended time",
        ),
    ).value
    workflow.approve(supervisor, vacation.id)
    everything = repo.get_requests()

    assert filter_requests(everything, status=RequestStatus.PENDING) == [
        repo.get_request(overtime.id)
    ]
    assert [r.id for r in filter_requests(everything, type=RequestType.TIME_OFF)] == [
        vacation.id
    ]
    assert [r.id for r in filter_requests(everything, urgency=Priority.HIGH)] == [
        overtime.id
    ]
    assert [r.id for r in filter_requests(everything, search="surgery")] == [
        overtime.id
    ]
    assert [r.id for r in filter_requests(everything, search="chen")] == [overtime.id]
