from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from app.models.journal import (
    ADMIN_ROLES,
    TRANSITIONS,
    JournalStatus,
    ReviewStatus,
    UserRole,
    WorkflowEvent,
    normalize_status,
)
from app.models.schemas import Journal, JournalReview, User


class WorkflowError(Exception):
    """Base class for every failure reported by the journal workflow."""

    kind = "workflow_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind, "detail": self.message}


class InvalidTransition(WorkflowError):
    kind = "invalid_transition"


class Unauthorized(WorkflowError):
    kind = "unauthorized"


class ValidationError(WorkflowError):
    kind = "validation_error"

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        out = super().to_dict()
        if self.field:
            out["field"] = self.field
        return out


class RemoteFailure(WorkflowError):
    """The persistence API could not complete the call; nothing was applied."""

    kind = "remote_failure"

    def __init__(self, message: str, *, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


class JournalNotFound(WorkflowError):
    kind = "not_found"


@dataclass(frozen=True)
class Actor:
    """The user attempting a transition; always passed in explicitly."""

    id: int
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


@dataclass(frozen=True)
class TransitionPlan:
    """
    Outcome of a legal transition, computed without any I/O.

    `changes` holds exactly the fields that differ between `before` and `after`; an empty
    dict means the request was an idempotent repeat and nothing needs to be written.
    """

    event: WorkflowEvent
    before: Optional[Journal]
    after: Optional[Journal]
    changes: dict[str, Any] = field(default_factory=dict)
    review: Optional[JournalReview] = None
    submission: Optional[dict[str, Any]] = None

    @property
    def is_noop(self) -> bool:
        return self.submission is None and not self.changes


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_event(event: WorkflowEvent | str) -> WorkflowEvent:
    try:
        return WorkflowEvent(event)
    except ValueError as e:
        raise InvalidTransition(f"Unknown workflow event: {event!r}") from e


def _is_assigned_reviewer(journal: Optional[Journal], actor: Actor) -> bool:
    return (
        actor.role == UserRole.REVIEWER
        and journal is not None
        and journal.reviewer_id is not None
        and journal.reviewer_id == actor.id
    )


def authorize(journal: Optional[Journal], event: WorkflowEvent | str, actor: Actor) -> None:
    """
    Single authorization predicate for every workflow event.

    Raises Unauthorized; it is evaluated before the state check so callers without the
    right role learn nothing about the journal's position in the workflow.
    """
    ev = _as_event(event)
    if ev == WorkflowEvent.SUBMIT:
        allowed = actor.role == UserRole.PUBLISHER
    elif ev in (WorkflowEvent.RECEIVE, WorkflowEvent.ASSIGN_REVIEWER):
        allowed = actor.is_admin
    elif ev in (WorkflowEvent.START_REVIEW, WorkflowEvent.SUBMIT_REVIEW, WorkflowEvent.PUBLISH):
        allowed = _is_assigned_reviewer(journal, actor)
    elif ev == WorkflowEvent.UNPUBLISH:
        # any reviewer, not only the assigned one
        allowed = actor.is_admin or actor.role == UserRole.REVIEWER
    else:
        allowed = False

    if not allowed:
        raise Unauthorized(f"Role '{actor.role.value}' may not perform '{ev.value}' on this journal")


def _check_state(journal: Optional[Journal], ev: WorkflowEvent, payload: Mapping[str, Any]) -> None:
    if ev == WorkflowEvent.SUBMIT:
        if journal is not None:
            raise InvalidTransition("Journal already exists; submit only creates new records")
        return

    if journal is None:
        raise InvalidTransition(f"'{ev.value}' requires an existing journal")

    sources, _ = TRANSITIONS[ev]
    if journal.status in sources:
        return

    # publishing an already-published journal with the same number is an idempotent repeat
    if ev == WorkflowEvent.PUBLISH and journal.status == JournalStatus.PUBLISHED:
        requested = str(payload.get("publication_number") or "").strip()
        if not requested or requested == journal.publication_number:
            return
        raise InvalidTransition(
            "Journal is already published under a different publication number; unpublish it first"
        )

    raise InvalidTransition(
        f"Invalid transition: '{ev.value}' is not allowed from status '{journal.status.value}'"
    )


def ensure_allowed(
    journal: Optional[Journal],
    event: WorkflowEvent | str,
    actor: Actor,
    payload: Mapping[str, Any] | None = None,
) -> WorkflowEvent:
    """Authorization first, then state legality. Returns the parsed event."""
    ev = _as_event(event)
    authorize(journal, ev, actor)
    _check_state(journal, ev, payload or {})
    return ev


def can_trigger(journal: Optional[Journal], event: WorkflowEvent | str, actor: Actor) -> bool:
    try:
        ensure_allowed(journal, event, actor)
    except WorkflowError:
        return False
    return True


def available_events(journal: Optional[Journal], actor: Actor) -> list[WorkflowEvent]:
    """Events the presentation layer may offer to `actor` for this journal."""
    return [ev for ev in WorkflowEvent if can_trigger(journal, ev, actor)]


def _require_text(payload: Mapping[str, Any], key: str, message: str) -> str:
    value = payload.get(key)
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValidationError(message, field=key)
    return text


def _rebuild(journal: Journal, changes: dict[str, Any]) -> Journal:
    # model_copy skips validation; rebuild so the invariants are re-checked
    data = journal.model_dump()
    data.update(changes)
    try:
        return Journal.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(f"Transition would break journal invariants: {e}") from e


def _diff(before: Journal, after: Journal, fields: tuple[str, ...]) -> dict[str, Any]:
    return {f: getattr(after, f) for f in fields if getattr(before, f) != getattr(after, f)}


def decide(
    journal: Optional[Journal],
    event: WorkflowEvent | str,
    actor: Actor,
    payload: Mapping[str, Any] | None = None,
    *,
    now: datetime | None = None,
) -> TransitionPlan:
    """
    Pure decision function: (snapshot, event, actor, payload) -> TransitionPlan.

    Raises Unauthorized, InvalidTransition or ValidationError. The input snapshot is never
    modified; either every derived field change is in the plan or the call raises.
    """
    payload = payload or {}
    ev = ensure_allowed(journal, event, actor, payload)
    ts = now or _utcnow()

    if ev == WorkflowEvent.SUBMIT:
        title = _require_text(payload, "title", "Title is required")
        abstract = _require_text(payload, "abstract", "Abstract is required")
        file_path = payload.get("file_path")
        if not file_path:
            raise ValidationError("A manuscript file is required", field="file")
        submission = {
            "title": title,
            "abstract": abstract,
            "file_path": str(file_path),
            "status": JournalStatus.SUBMITTED.value,
            "publisher_id": actor.id,
            "created_at": ts,
            "updated_at": ts,
        }
        return TransitionPlan(event=ev, before=None, after=None, submission=submission)

    if journal is None:
        raise InvalidTransition(f"'{ev.value}' requires an existing journal")
    changes: dict[str, Any] = {}
    review: Optional[JournalReview] = None

    if ev == WorkflowEvent.RECEIVE:
        changes = {"status": JournalStatus.RECEIVED}

    elif ev == WorkflowEvent.ASSIGN_REVIEWER:
        if payload.get("reviewer_id") in (None, ""):
            raise ValidationError("reviewer_id is required", field="reviewer_id")
        try:
            reviewer_id = int(payload["reviewer_id"])
        except (TypeError, ValueError) as e:
            raise ValidationError("reviewer_id must be an integer", field="reviewer_id") from e
        reviewer = payload.get("reviewer")
        if not isinstance(reviewer, User) or reviewer.id != reviewer_id:
            raise ValidationError(f"User {reviewer_id} does not exist", field="reviewer_id")
        if reviewer.role != UserRole.REVIEWER:
            raise ValidationError(f"User {reviewer_id} is not a reviewer", field="reviewer_id")
        changes = {"status": JournalStatus.ASSIGNED, "reviewer_id": reviewer_id}

    elif ev == WorkflowEvent.START_REVIEW:
        changes = {"status": JournalStatus.BEING_REVIEWED}

    elif ev == WorkflowEvent.SUBMIT_REVIEW:
        verdict = str(payload.get("status") or "").strip().lower()
        if verdict not in (ReviewStatus.APPROVED.value, ReviewStatus.REJECTED.value):
            raise ValidationError("Review status must be 'approved' or 'rejected'", field="status")
        comments = _require_text(payload, "comments", "Review comments are required")
        target = JournalStatus.APPROVED if verdict == ReviewStatus.APPROVED.value else JournalStatus.REJECTED
        changes = {"status": target}
        review = JournalReview(
            journal_id=journal.id,
            reviewer_id=actor.id,
            status=ReviewStatus(verdict),
            comments=comments,
            reviewed_at=ts,
            created_at=ts,
        )

    elif ev == WorkflowEvent.PUBLISH:
        requested = str(payload.get("publication_number") or "").strip()
        if journal.status == JournalStatus.PUBLISHED:
            return TransitionPlan(event=ev, before=journal, after=journal)
        number = requested or (journal.publication_number or "")
        if not number:
            raise ValidationError("Publication number is required", field="publication_number")
        changes = {
            "status": JournalStatus.PUBLISHED,
            "publication_number": number,
            "published_date": ts,
        }

    elif ev == WorkflowEvent.UNPUBLISH:
        # publication_number / published_date are retained for re-publish
        changes = {"status": JournalStatus.APPROVED}

    _, targets = TRANSITIONS[ev]
    if changes.get("status") not in targets:
        raise InvalidTransition(f"'{ev.value}' cannot move a journal to {changes.get('status')!r}")

    changes["updated_at"] = ts
    after = _rebuild(journal, changes)
    fields = tuple(changes.keys())
    return TransitionPlan(
        event=ev,
        before=journal,
        after=after,
        changes=_diff(journal, after, fields),
        review=review,
    )


def event_for_status(current: Journal, target: str) -> WorkflowEvent:
    """
    Map a raw "set status" request onto the workflow event that produces it.

    Unknown statuses are a ValidationError. The mapping only looks at the target (and at
    `published -> approved` for unpublish); legality is left to `decide`, so authorization
    is still checked before the transition table.
    """
    norm = normalize_status(target)
    if norm is None:
        raise ValidationError(f"Unknown journal status: {target!r}", field="status")
    to_status = JournalStatus(norm)

    if to_status == JournalStatus.SUBMITTED:
        return WorkflowEvent.SUBMIT
    if to_status == JournalStatus.RECEIVED:
        return WorkflowEvent.RECEIVE
    if to_status == JournalStatus.ASSIGNED:
        return WorkflowEvent.ASSIGN_REVIEWER
    if to_status == JournalStatus.BEING_REVIEWED:
        return WorkflowEvent.START_REVIEW
    if to_status == JournalStatus.PUBLISHED:
        return WorkflowEvent.PUBLISH
    if to_status == JournalStatus.APPROVED and current.status == JournalStatus.PUBLISHED:
        return WorkflowEvent.UNPUBLISH
    return WorkflowEvent.SUBMIT_REVIEW
