from __future__ import annotations

from enum import Enum


class UserRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    REVIEWER = "reviewer"
    PUBLISHER = "publisher"


ADMIN_ROLES = frozenset({UserRole.SUPER_ADMIN, UserRole.ADMIN})


class ReviewStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class WorkflowEvent(str, Enum):
    """
    Named events that drive a journal through its lifecycle.

    - receive: first admin view of a submitted journal
    - start_review: the assigned reviewer downloads the manuscript
    - publish: covers re-publish after an unpublish as well
    """

    SUBMIT = "submit"
    RECEIVE = "receive"
    ASSIGN_REVIEWER = "assign_reviewer"
    START_REVIEW = "start_review"
    SUBMIT_REVIEW = "submit_review"
    PUBLISH = "publish"
    UNPUBLISH = "unpublish"


class JournalStatus(str, Enum):
    """
    Journal lifecycle statuses (closed set).

    Legal moves come from TRANSITIONS below; `allowed_next` is a view over that table.
    """

    SUBMITTED = "submitted"
    RECEIVED = "received"
    ASSIGNED = "assigned"
    BEING_REVIEWED = "being_reviewed"
    APPROVED = "approved"
    PUBLISHED = "published"
    REJECTED = "rejected"

    @classmethod
    def allowed_next(cls, current: str | None) -> set[str]:
        """
        - submitted -> received / assigned
        - received -> assigned
        - assigned -> being_reviewed / approved / rejected
        - being_reviewed -> approved / rejected
        - approved -> published
        - published -> approved (unpublish)
        - rejected: terminal
        """
        c = normalize_status(current)
        if c is None:
            return set()
        status = cls(c)
        out: set[str] = set()
        for sources, targets in TRANSITIONS.values():
            if status in sources:
                out.update(t.value for t in targets)
        return out


# event -> (source statuses, target statuses); submit creates the record and has no source
TRANSITIONS: dict[WorkflowEvent, tuple[frozenset[JournalStatus], frozenset[JournalStatus]]] = {
    WorkflowEvent.RECEIVE: (frozenset({JournalStatus.SUBMITTED}), frozenset({JournalStatus.RECEIVED})),
    WorkflowEvent.ASSIGN_REVIEWER: (
        frozenset({JournalStatus.SUBMITTED, JournalStatus.RECEIVED}),
        frozenset({JournalStatus.ASSIGNED}),
    ),
    WorkflowEvent.START_REVIEW: (
        frozenset({JournalStatus.ASSIGNED}),
        frozenset({JournalStatus.BEING_REVIEWED}),
    ),
    # the verdict picks the target
    WorkflowEvent.SUBMIT_REVIEW: (
        frozenset({JournalStatus.ASSIGNED, JournalStatus.BEING_REVIEWED}),
        frozenset({JournalStatus.APPROVED, JournalStatus.REJECTED}),
    ),
    WorkflowEvent.PUBLISH: (frozenset({JournalStatus.APPROVED}), frozenset({JournalStatus.PUBLISHED})),
    WorkflowEvent.UNPUBLISH: (frozenset({JournalStatus.PUBLISHED}), frozenset({JournalStatus.APPROVED})),
}


# reviewer_id must be set exactly for these statuses
REVIEWER_BOUND_STATUSES = frozenset(
    {
        JournalStatus.ASSIGNED,
        JournalStatus.BEING_REVIEWED,
        JournalStatus.APPROVED,
        JournalStatus.PUBLISHED,
        JournalStatus.REJECTED,
    }
)


def normalize_status(value: str | None) -> str | None:
    if value is None:
        return None
    v = str(value).strip().lower()
    if not v:
        return None
    try:
        return JournalStatus(v).value
    except ValueError:
        return None


def normalize_role(value: str | None) -> str | None:
    v = str(value or "").strip().lower()
    try:
        return UserRole(v).value
    except ValueError:
        return None
