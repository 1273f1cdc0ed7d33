from datetime import datetime, timezone

import pytest

from app.models.journal import TRANSITIONS, JournalStatus, ReviewStatus, UserRole, WorkflowEvent
from app.models.schemas import Journal, User
from app.services import workflow
from app.services.workflow import (
    Actor,
    InvalidTransition,
    Unauthorized,
    ValidationError,
    WorkflowError,
)

NOW = datetime(2026, 5, 4, 9, 30, tzinfo=timezone.utc)
EARLIER = datetime(2026, 1, 10, 8, 0, tzinfo=timezone.utc)

ADMIN = Actor(id=1, role=UserRole.ADMIN)
SUPER = Actor(id=2, role=UserRole.SUPER_ADMIN)
PUBLISHER = Actor(id=3, role=UserRole.PUBLISHER)
REVIEWER = Actor(id=7, role=UserRole.REVIEWER)
OTHER_REVIEWER = Actor(id=9, role=UserRole.REVIEWER)

REVIEWER_USER = User(id=7, role=UserRole.REVIEWER, first_name="Rita", last_name="Reviewer")

_BOUND = {"assigned", "being_reviewed", "approved", "published", "rejected"}


def _journal(status: str = "submitted", **overrides) -> Journal:
    data = {
        "id": 11,
        "title": "Coastal Erosion Models",
        "abstract": "We compare three models.",
        "file_path": "3/f00d_coastal.pdf",
        "status": status,
        "publisher_id": 3,
        "reviewer_id": 7 if status in _BOUND else None,
        "created_at": EARLIER,
        "updated_at": EARLIER,
    }
    if status == "published":
        data["publication_number"] = "UJ-2026-001"
        data["published_date"] = EARLIER
    data.update(overrides)
    return Journal.model_validate(data)


# event -> actor allowed to attempt it, plus a payload that is valid when the state is legal
_AUTHORIZED = {
    WorkflowEvent.SUBMIT: (PUBLISHER, {"title": "t", "abstract": "a", "file_path": "3/x.pdf"}),
    WorkflowEvent.RECEIVE: (ADMIN, {}),
    WorkflowEvent.ASSIGN_REVIEWER: (ADMIN, {"reviewer_id": 7, "reviewer": REVIEWER_USER}),
    WorkflowEvent.START_REVIEW: (REVIEWER, {}),
    WorkflowEvent.SUBMIT_REVIEW: (REVIEWER, {"status": "approved", "comments": "Solid"}),
    WorkflowEvent.PUBLISH: (REVIEWER, {"publication_number": "UJ-2026-009"}),
    WorkflowEvent.UNPUBLISH: (ADMIN, {}),
}

_LEGAL = {
    ("submitted", WorkflowEvent.RECEIVE),
    ("submitted", WorkflowEvent.ASSIGN_REVIEWER),
    ("received", WorkflowEvent.ASSIGN_REVIEWER),
    ("assigned", WorkflowEvent.START_REVIEW),
    ("assigned", WorkflowEvent.SUBMIT_REVIEW),
    ("being_reviewed", WorkflowEvent.SUBMIT_REVIEW),
    ("approved", WorkflowEvent.PUBLISH),
    ("published", WorkflowEvent.UNPUBLISH),
}


# === scenarios ===


def test_admin_assigns_reviewer_to_submitted_journal():
    journal = _journal("submitted")
    plan = workflow.decide(
        journal, WorkflowEvent.ASSIGN_REVIEWER, ADMIN, {"reviewer_id": 7, "reviewer": REVIEWER_USER}, now=NOW
    )
    assert plan.after.status == JournalStatus.ASSIGNED
    assert plan.after.reviewer_id == 7
    assert plan.changes == {"status": JournalStatus.ASSIGNED, "reviewer_id": 7, "updated_at": NOW}
    assert journal.status == JournalStatus.SUBMITTED
    assert journal.reviewer_id is None


def test_publish_without_any_number_is_validation_error():
    journal = _journal("approved")
    snapshot = journal.model_dump()
    with pytest.raises(ValidationError) as exc:
        workflow.decide(journal, WorkflowEvent.PUBLISH, REVIEWER, {"publication_number": ""}, now=NOW)
    assert exc.value.field == "publication_number"
    assert journal.model_dump() == snapshot


def test_assigned_reviewer_approves_and_review_row_is_planned():
    journal = _journal("assigned")
    plan = workflow.decide(
        journal, WorkflowEvent.SUBMIT_REVIEW, REVIEWER, {"status": "approved", "comments": "Good work"}, now=NOW
    )
    assert plan.after.status == JournalStatus.APPROVED
    assert plan.review is not None
    assert plan.review.status == ReviewStatus.APPROVED
    assert plan.review.reviewer_id == 7
    assert plan.review.journal_id == journal.id
    assert plan.review.comments == "Good work"
    assert plan.review.reviewed_at == NOW


def test_any_reviewer_may_unpublish():
    journal = _journal("published")
    plan = workflow.decide(journal, WorkflowEvent.UNPUBLISH, OTHER_REVIEWER, now=NOW)
    assert plan.after.status == JournalStatus.APPROVED
    assert plan.after.reviewer_id == 7


# === table coverage ===


@pytest.mark.parametrize("status", [s.value for s in JournalStatus])
@pytest.mark.parametrize("event", list(WorkflowEvent))
def test_unlisted_pairs_fail_and_leave_journal_untouched(status, event):
    if (status, event) in _LEGAL:
        pytest.skip("legal transition")
    if status == "published" and event == WorkflowEvent.PUBLISH:
        pytest.skip("idempotent re-publish covered separately")

    journal = _journal(status)
    snapshot = journal.model_dump()
    actor, payload = _AUTHORIZED[event]

    with pytest.raises(WorkflowError) as exc:
        workflow.decide(journal, event, actor, payload, now=NOW)

    assert isinstance(exc.value, (InvalidTransition, Unauthorized))
    if journal.reviewer_id == 7 or event not in (
        WorkflowEvent.START_REVIEW,
        WorkflowEvent.SUBMIT_REVIEW,
        WorkflowEvent.PUBLISH,
    ):
        assert isinstance(exc.value, InvalidTransition)
    assert journal.model_dump() == snapshot


@pytest.mark.parametrize("status,event", sorted(_LEGAL, key=lambda p: (p[0], p[1].value)))
def test_listed_pairs_reach_allowed_status(status, event):
    journal = _journal(status)
    actor, payload = _AUTHORIZED[event]
    plan = workflow.decide(journal, event, actor, payload, now=NOW)
    assert plan.after.status.value in JournalStatus.allowed_next(status)
    assert plan.after.updated_at == NOW


def test_engine_and_allowed_next_read_the_same_table(monkeypatch):
    monkeypatch.setitem(
        TRANSITIONS, WorkflowEvent.RECEIVE, (frozenset(), frozenset({JournalStatus.RECEIVED}))
    )

    assert JournalStatus.allowed_next("submitted") == {"assigned"}
    with pytest.raises(InvalidTransition):
        workflow.decide(_journal("submitted"), WorkflowEvent.RECEIVE, ADMIN, now=NOW)


def test_target_outside_table_is_refused(monkeypatch):
    monkeypatch.setitem(
        TRANSITIONS,
        WorkflowEvent.PUBLISH,
        (frozenset({JournalStatus.APPROVED}), frozenset({JournalStatus.APPROVED})),
    )
    with pytest.raises(InvalidTransition):
        workflow.decide(
            _journal("approved"), WorkflowEvent.PUBLISH, REVIEWER, {"publication_number": "UJ-9"}, now=NOW
        )


@pytest.mark.parametrize("status", [s.value for s in JournalStatus])
def test_publisher_can_never_assign(status):
    with pytest.raises(Unauthorized):
        workflow.decide(
            _journal(status),
            WorkflowEvent.ASSIGN_REVIEWER,
            PUBLISHER,
            {"reviewer_id": 7, "reviewer": REVIEWER_USER},
            now=NOW,
        )


def test_authorization_is_checked_before_state():
    # rejected is terminal, but the publisher must learn only that they lack the role
    with pytest.raises(Unauthorized):
        workflow.decide(_journal("rejected"), WorkflowEvent.PUBLISH, PUBLISHER, {"publication_number": "X"})
    with pytest.raises(Unauthorized):
        workflow.decide(_journal("assigned"), WorkflowEvent.SUBMIT_REVIEW, OTHER_REVIEWER, {"status": "approved"})


def test_unknown_event_is_invalid_transition():
    with pytest.raises(InvalidTransition):
        workflow.decide(_journal("submitted"), "archive", ADMIN)


# === payload rules ===


def test_assign_requires_existing_reviewer():
    journal = _journal("received")
    with pytest.raises(ValidationError):
        workflow.decide(journal, WorkflowEvent.ASSIGN_REVIEWER, ADMIN, {}, now=NOW)
    with pytest.raises(ValidationError):
        workflow.decide(journal, WorkflowEvent.ASSIGN_REVIEWER, ADMIN, {"reviewer_id": 7, "reviewer": None})

    not_reviewer = User(id=8, role=UserRole.PUBLISHER)
    with pytest.raises(ValidationError):
        workflow.decide(
            journal, WorkflowEvent.ASSIGN_REVIEWER, SUPER, {"reviewer_id": 8, "reviewer": not_reviewer}
        )


def test_review_requires_verdict_and_comments():
    journal = _journal("being_reviewed")
    with pytest.raises(ValidationError):
        workflow.decide(journal, WorkflowEvent.SUBMIT_REVIEW, REVIEWER, {"status": "pending", "comments": "x"})
    with pytest.raises(ValidationError):
        workflow.decide(journal, WorkflowEvent.SUBMIT_REVIEW, REVIEWER, {"status": "rejected", "comments": "  "})

    plan = workflow.decide(
        journal, WorkflowEvent.SUBMIT_REVIEW, REVIEWER, {"status": "rejected", "comments": "Out of scope"}, now=NOW
    )
    assert plan.after.status == JournalStatus.REJECTED
    assert plan.review.status == ReviewStatus.REJECTED


def test_submit_builds_new_submission():
    plan = workflow.decide(
        None,
        WorkflowEvent.SUBMIT,
        PUBLISHER,
        {"title": " Title ", "abstract": "Abstract", "file_path": "3/x.pdf"},
        now=NOW,
    )
    assert plan.submission["status"] == "submitted"
    assert plan.submission["publisher_id"] == 3
    assert plan.submission["title"] == "Title"
    assert plan.is_noop is False

    with pytest.raises(ValidationError):
        workflow.decide(None, WorkflowEvent.SUBMIT, PUBLISHER, {"title": "t", "abstract": "a"})
    with pytest.raises(Unauthorized):
        workflow.decide(None, WorkflowEvent.SUBMIT, REVIEWER, {"title": "t", "abstract": "a", "file_path": "p"})


# === publish / unpublish ===


def test_publish_sets_number_and_date_together():
    plan = workflow.decide(
        _journal("approved"), WorkflowEvent.PUBLISH, REVIEWER, {"publication_number": " UJ-7 "}, now=NOW
    )
    assert plan.after.publication_number == "UJ-7"
    assert plan.after.published_date == NOW
    assert set(plan.changes) == {"status", "publication_number", "published_date", "updated_at"}


def test_publish_is_idempotent_for_same_number():
    journal = _journal("published")
    for number in ("UJ-2026-001", "", None):
        plan = workflow.decide(journal, WorkflowEvent.PUBLISH, REVIEWER, {"publication_number": number}, now=NOW)
        assert plan.is_noop
        assert plan.after == journal

    with pytest.raises(InvalidTransition):
        workflow.decide(journal, WorkflowEvent.PUBLISH, REVIEWER, {"publication_number": "UJ-OTHER"}, now=NOW)


def test_unpublish_then_republish_round_trip():
    published = _journal("published")

    unpublished = workflow.decide(published, WorkflowEvent.UNPUBLISH, ADMIN, now=NOW).after
    assert unpublished.status == JournalStatus.APPROVED
    assert unpublished.publication_number == "UJ-2026-001"
    assert unpublished.published_date == EARLIER

    later = datetime(2026, 6, 1, tzinfo=timezone.utc)
    again = workflow.decide(unpublished, WorkflowEvent.PUBLISH, REVIEWER, {"publication_number": ""}, now=later).after
    assert again.status == JournalStatus.PUBLISHED
    assert again.publication_number == "UJ-2026-001"
    assert again.published_date == later

    renumbered = workflow.decide(
        unpublished, WorkflowEvent.PUBLISH, REVIEWER, {"publication_number": "UJ-2026-050"}, now=later
    ).after
    assert renumbered.publication_number == "UJ-2026-050"


def test_publisher_cannot_unpublish():
    with pytest.raises(Unauthorized):
        workflow.decide(_journal("published"), WorkflowEvent.UNPUBLISH, PUBLISHER)


# === helpers used by the pages ===


def test_available_events_per_actor():
    assert workflow.available_events(_journal("submitted"), ADMIN) == [
        WorkflowEvent.RECEIVE,
        WorkflowEvent.ASSIGN_REVIEWER,
    ]
    assert workflow.available_events(_journal("assigned"), REVIEWER) == [
        WorkflowEvent.START_REVIEW,
        WorkflowEvent.SUBMIT_REVIEW,
    ]
    assert workflow.available_events(_journal("assigned"), OTHER_REVIEWER) == []
    assert workflow.available_events(None, PUBLISHER) == [WorkflowEvent.SUBMIT]
    assert workflow.available_events(_journal("rejected"), SUPER) == []


def test_event_for_status_mapping():
    assert workflow.event_for_status(_journal("submitted"), "received") == WorkflowEvent.RECEIVE
    assert workflow.event_for_status(_journal("assigned"), "being_reviewed") == WorkflowEvent.START_REVIEW
    assert workflow.event_for_status(_journal("assigned"), "approved") == WorkflowEvent.SUBMIT_REVIEW
    assert workflow.event_for_status(_journal("published"), "approved") == WorkflowEvent.UNPUBLISH
    assert workflow.event_for_status(_journal("approved"), "PUBLISHED") == WorkflowEvent.PUBLISH
    with pytest.raises(ValidationError):
        workflow.event_for_status(_journal("submitted"), "archived")


def test_error_payloads():
    err = ValidationError("Title is required", field="title")
    assert err.to_dict() == {"error": "validation_error", "detail": "Title is required", "field": "title"}
    assert workflow.RemoteFailure("down").retryable is True
    assert workflow.JournalNotFound("gone").to_dict()["error"] == "not_found"
