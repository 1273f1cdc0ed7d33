from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from app.models.journal import JournalStatus, ReviewStatus, WorkflowEvent
from app.models.schemas import Journal, JournalAuthor
from app.services.journal_repository import JournalRepository
from app.services import workflow
from app.services.workflow import Actor, InvalidTransition, RemoteFailure, TransitionPlan, WorkflowError

logger = logging.getLogger("journalportal.workflow")


@dataclass(frozen=True)
class TransitionResult:
    """Either the refreshed journal or the typed error, never both."""

    journal: Optional[Journal] = None
    error: Optional[WorkflowError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Journal:
        """Return the journal or raise the typed error."""
        if self.error is not None:
            raise self.error
        if self.journal is None:
            raise RemoteFailure("Workflow returned neither a journal nor an error", retryable=False)
        return self.journal


class JournalWorkflowService:
    """
    The one place that mutates journal status.

    - runs the pure engine (authorization -> state -> payload)
    - dispatches the resulting plan to the persistence API
    - re-reads the journal afterwards, since the remote service is the source of truth

    Every WorkflowError is returned inside TransitionResult, so pages render a typed error
    instead of re-deriving rules.
    """

    def __init__(self, repository: JournalRepository | None = None) -> None:
        self.repo = repository or JournalRepository()

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def attempt_transition(
        self,
        journal: Optional[Journal],
        event: WorkflowEvent | str,
        actor: Actor,
        payload: Mapping[str, Any] | None = None,
    ) -> TransitionResult:
        data = dict(payload or {})
        try:
            ev = workflow.ensure_allowed(journal, event, actor, data)
            if ev == WorkflowEvent.ASSIGN_REVIEWER:
                data["reviewer"] = self._resolve_reviewer(data.get("reviewer_id"))
            plan = workflow.decide(journal, ev, actor, data, now=self._now())
            updated = self._apply(plan, actor, data)
        except WorkflowError as e:
            logger.info(
                "[Workflow] %s by user %s (%s) on journal %s refused: %s",
                getattr(event, "value", event),
                actor.id,
                actor.role.value,
                journal.id if journal else None,
                e.kind,
            )
            return TransitionResult(error=e)
        return TransitionResult(journal=updated)

    def transition_by_id(
        self,
        journal_id: int,
        event: WorkflowEvent | str,
        actor: Actor,
        payload: Mapping[str, Any] | None = None,
    ) -> TransitionResult:
        try:
            journal = self.repo.get_journal(journal_id)
        except WorkflowError as e:
            return TransitionResult(error=e)
        return self.attempt_transition(journal, event, actor, payload)

    def change_status(
        self,
        journal_id: int,
        status: str,
        actor: Actor,
        payload: Mapping[str, Any] | None = None,
    ) -> TransitionResult:
        """
        Generic "set status" request, routed through the transition table.
        """
        try:
            journal = self.repo.get_journal(journal_id)
            ev = workflow.event_for_status(journal, status)
        except WorkflowError as e:
            return TransitionResult(error=e)
        data = dict(payload or {})
        if ev == WorkflowEvent.SUBMIT_REVIEW:
            data["status"] = status
        return self.attempt_transition(journal, ev, actor, data)

    def submit(
        self,
        actor: Actor,
        *,
        title: str,
        abstract: str,
        file_path: str | None,
        authors: list[JournalAuthor] | None = None,
    ) -> TransitionResult:
        return self.attempt_transition(
            None,
            WorkflowEvent.SUBMIT,
            actor,
            {"title": title, "abstract": abstract, "file_path": file_path, "authors": authors or []},
        )

    def _resolve_reviewer(self, reviewer_id: Any):
        try:
            rid = int(reviewer_id)
        except (TypeError, ValueError):
            # decide() reports the missing / malformed id
            return None
        return self.repo.get_user(rid)

    def _apply(self, plan: TransitionPlan, actor: Actor, data: Mapping[str, Any]) -> Journal:
        if plan.event == WorkflowEvent.SUBMIT:
            if plan.submission is None:
                raise InvalidTransition("submit plan carries no submission")
            created = self.repo.create_journal(plan.submission, authors=data.get("authors") or [])
            self.repo.log_transition(
                journal_id=created.id,
                from_status=None,
                to_status=JournalStatus.SUBMITTED.value,
                event=plan.event.value,
                changed_by=actor.id,
                created_at=plan.submission["created_at"],
            )
            logger.info("[Workflow] journal %s submitted by user %s", created.id, actor.id)
            return created

        before, after = plan.before, plan.after
        if before is None or after is None:
            raise InvalidTransition(f"'{plan.event.value}' plan carries no journal snapshot")
        if plan.is_noop:
            return before

        expected = before.status.value
        ts = after.updated_at or self._now()
        jid = before.id

        if plan.event == WorkflowEvent.ASSIGN_REVIEWER:
            if after.reviewer_id is None:
                raise InvalidTransition("assign_reviewer plan carries no reviewer")
            self.repo.assign_reviewer(jid, after.reviewer_id, expected_status=expected, updated_at=ts)
        elif plan.event == WorkflowEvent.SUBMIT_REVIEW:
            if plan.review is None:
                raise InvalidTransition("submit_review plan carries no review")
            self.repo.submit_review(
                jid,
                plan.review.reviewer_id,
                ReviewStatus(plan.review.status),
                plan.review.comments,
                expected_status=expected,
                reviewed_at=plan.review.reviewed_at or ts,
            )
        elif plan.event == WorkflowEvent.PUBLISH:
            if not (after.publication_number and after.published_date):
                raise InvalidTransition("publish plan carries no publication number")
            self.repo.publish(
                jid,
                after.publication_number,
                expected_status=expected,
                published_date=after.published_date,
            )
        elif plan.event == WorkflowEvent.UNPUBLISH:
            self.repo.unpublish(jid, expected_status=expected, updated_at=ts)
        else:
            # receive / start_review only move the status
            self.repo.set_status(jid, after.status, expected_status=expected, updated_at=ts)

        self.repo.log_transition(
            journal_id=jid,
            from_status=expected,
            to_status=after.status.value,
            event=plan.event.value,
            changed_by=actor.id,
            created_at=ts,
        )
        logger.info(
            "[Workflow] journal %s: %s -> %s (%s by user %s)",
            jid,
            expected,
            after.status.value,
            plan.event.value,
            actor.id,
        )
        try:
            return self.repo.get_journal(jid)
        except WorkflowError as e:
            # the write went through; fall back to the computed snapshot rather than report a failure
            logger.warning("[Workflow] re-read of journal %s failed after %s: %s", jid, plan.event.value, e)
            return after


def get_workflow_service() -> JournalWorkflowService:
    return JournalWorkflowService()
