from __future__ import annotations

import json
import logging
from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from pydantic import ValidationError as PydanticValidationError

from app.core.config import StorageConfig
from app.core.role_matrix import can_perform_action, list_allowed_actions
from app.core.roles import get_current_actor, require_reviewer_directory
from app.models.journal import JournalStatus, UserRole, WorkflowEvent
from app.models.schemas import (
    AssignReviewerPayload,
    Journal,
    JournalAuthor,
    JournalCreate,
    PublishedFilters,
    PublishPayload,
    ReviewPayload,
    StatusUpdatePayload,
)
from app.services import storage_service, workflow
from app.services.journal_repository import JournalRepository
from app.services.publication_service import PublicationService, get_publication_service
from app.services.workflow import Actor, Unauthorized, ValidationError
from app.services.workflow_service import (
    JournalWorkflowService,
    TransitionResult,
    get_workflow_service,
)

logger = logging.getLogger("journalportal.api.journals")

router = APIRouter(prefix="/journals", tags=["Journals"])


def get_journal_repository() -> JournalRepository:
    return JournalRepository()


def _journal_view(journal: Journal, actor: Actor | None = None) -> dict[str, Any]:
    data = journal.model_dump(mode="json")
    data["author_names"] = ", ".join(a.author_name for a in journal.authors)
    if actor is not None:
        data["available_actions"] = [ev.value for ev in workflow.available_events(journal, actor)]
    return data


def _unwrap(result: TransitionResult, actor: Actor) -> dict[str, Any]:
    return {"journal": _journal_view(result.unwrap(), actor)}


def can_view(journal: Journal, actor: Actor) -> bool:
    """
    - admin / super_admin: everything
    - publisher: own journals only
    - reviewer: journals assigned to them, plus anything past review (approved/published)
    """
    if actor.is_admin:
        return True
    if actor.role == UserRole.PUBLISHER:
        return journal.publisher_id == actor.id
    if actor.role == UserRole.REVIEWER:
        return journal.reviewer_id == actor.id or journal.status in (
            JournalStatus.APPROVED,
            JournalStatus.PUBLISHED,
        )
    return False


def _load_visible(repo: JournalRepository, journal_id: int, actor: Actor) -> Journal:
    journal = repo.get_journal(journal_id)
    if not can_view(journal, actor):
        raise Unauthorized("You do not have access to this journal")
    return journal


# === public ===


@router.get("/published")
async def list_published_journals(
    sort_by: Literal["title", "published_date", "created_at"] = Query("published_date"),
    sort_order: Literal["ASC", "DESC"] = Query("DESC"),
    search: str = Query("", max_length=200),
    limit: int = Query(20, ge=1, le=100),
    page: int = Query(1, ge=1),
    svc: PublicationService = Depends(get_publication_service),
):
    """
    Public listing of published journals with sorting, search and pagination.
    """
    filters = PublishedFilters(sort_by=sort_by, sort_order=sort_order, search=search, limit=limit, page=page)
    return svc.list_published(filters)


@router.get("/published/{journal_id}")
async def get_published_journal(
    journal_id: int,
    svc: PublicationService = Depends(get_publication_service),
):
    return {"journal": svc.get_published(journal_id)}


@router.get("/published/{journal_id}/file")
async def get_published_journal_file(
    journal_id: int,
    svc: PublicationService = Depends(get_publication_service),
):
    cfg = StorageConfig.from_env()
    return svc.published_file(journal_id, bucket=cfg.bucket)


# === authenticated ===


@router.get("/reviewers")
async def list_reviewers(
    actor: Actor = Depends(require_reviewer_directory),
    repo: JournalRepository = Depends(get_journal_repository),
):
    reviewers = repo.list_reviewers()
    return {"reviewers": [r.model_dump(mode="json") for r in reviewers]}


@router.get("")
async def list_journals(
    status: Optional[str] = Query(None),
    actor: Actor = Depends(get_current_actor),
    repo: JournalRepository = Depends(get_journal_repository),
):
    """
    Role-scoped listing: publishers see their submissions, reviewers their assignments,
    staff everything.
    """
    status_filter: JournalStatus | None = None
    if status:
        try:
            status_filter = JournalStatus(status.strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown journal status: {status!r}", field="status")

    roles = [actor.role.value]
    if can_perform_action(action="journal:view_all", roles=roles):
        journals = repo.list_journals(status=status_filter)
    elif can_perform_action(action="journal:view_assigned", roles=roles):
        journals = repo.list_journals(reviewer_id=actor.id, status=status_filter)
    elif can_perform_action(action="journal:view_own", roles=roles):
        journals = repo.list_journals(publisher_id=actor.id, status=status_filter)
    else:
        raise Unauthorized("Your role may not list journals")
    return {"journals": [_journal_view(j) for j in journals]}


@router.post("", status_code=201)
async def submit_journal(
    title: str = Form(...),
    abstract: str = Form(...),
    authors: str = Form("[]"),
    journalFile: UploadFile = File(...),
    actor: Actor = Depends(get_current_actor),
    svc: JournalWorkflowService = Depends(get_workflow_service),
):
    """
    Publisher submission. The file is forwarded to Storage untouched; the journal row
    only keeps the object path.
    """
    # check the role before accepting any upload
    workflow.authorize(None, WorkflowEvent.SUBMIT, actor)

    try:
        raw_authors = json.loads(authors or "[]")
        form = JournalCreate.model_validate({"title": title, "abstract": abstract, "authors": raw_authors})
    except (json.JSONDecodeError, PydanticValidationError) as e:
        raise HTTPException(status_code=422, detail=f"Invalid submission: {e}")

    cfg = StorageConfig.from_env()
    content = await journalFile.read()
    path = storage_service.upload_manuscript(
        publisher_id=actor.id,
        filename=journalFile.filename,
        content=content,
        content_type=journalFile.content_type,
        config=cfg,
    )

    author_rows = [
        JournalAuthor(
            author_name=a.name,
            author_email=a.email,
            author_department=a.department,
            is_primary=a.is_primary,
        )
        for a in form.authors
    ]
    result = svc.submit(actor, title=form.title, abstract=form.abstract, file_path=path, authors=author_rows)
    if not result.ok:
        storage_service.remove_object(bucket=cfg.bucket, path=path)
    body = _unwrap(result, actor)
    body["message"] = "Journal submitted successfully"
    return body


@router.get("/{journal_id}")
async def get_journal(
    journal_id: int,
    actor: Actor = Depends(get_current_actor),
    repo: JournalRepository = Depends(get_journal_repository),
    svc: JournalWorkflowService = Depends(get_workflow_service),
):
    """
    Journal detail. The first staff view of a submitted journal marks it received.
    """
    journal = _load_visible(repo, journal_id, actor)
    if journal.status == JournalStatus.SUBMITTED and workflow.can_trigger(journal, WorkflowEvent.RECEIVE, actor):
        result = svc.attempt_transition(journal, WorkflowEvent.RECEIVE, actor)
        if result.ok and result.journal is not None:
            journal = result.journal
        else:
            # reading must still work when the auto-receive write fails
            logger.warning("auto-receive of journal %s failed: %s", journal_id, result.error)
    return {"journal": _journal_view(journal, actor)}


@router.get("/{journal_id}/actions")
async def get_journal_actions(
    journal_id: int,
    actor: Actor = Depends(get_current_actor),
    repo: JournalRepository = Depends(get_journal_repository),
):
    journal = _load_visible(repo, journal_id, actor)
    return {
        "journal_id": journal.id,
        "status": journal.status.value,
        "actions": [ev.value for ev in workflow.available_events(journal, actor)],
        "capabilities": sorted(list_allowed_actions([actor.role.value])),
    }


@router.put("/{journal_id}/assign")
async def assign_reviewer(
    journal_id: int,
    payload: AssignReviewerPayload,
    actor: Actor = Depends(get_current_actor),
    svc: JournalWorkflowService = Depends(get_workflow_service),
):
    result = svc.transition_by_id(
        journal_id, WorkflowEvent.ASSIGN_REVIEWER, actor, {"reviewer_id": payload.reviewer_id}
    )
    return _unwrap(result, actor)


@router.put("/{journal_id}/review")
async def review_journal(
    journal_id: int,
    payload: ReviewPayload,
    actor: Actor = Depends(get_current_actor),
    svc: JournalWorkflowService = Depends(get_workflow_service),
):
    result = svc.transition_by_id(
        journal_id,
        WorkflowEvent.SUBMIT_REVIEW,
        actor,
        {"status": payload.status, "comments": payload.comments},
    )
    return _unwrap(result, actor)


@router.put("/{journal_id}/publish")
async def publish_journal(
    journal_id: int,
    payload: Optional[PublishPayload] = None,
    actor: Actor = Depends(get_current_actor),
    svc: JournalWorkflowService = Depends(get_workflow_service),
):
    result = svc.transition_by_id(
        journal_id,
        WorkflowEvent.PUBLISH,
        actor,
        {"publication_number": payload.publication_number if payload else ""},
    )
    return _unwrap(result, actor)


@router.put("/{journal_id}/unpublish")
async def unpublish_journal(
    journal_id: int,
    actor: Actor = Depends(get_current_actor),
    svc: JournalWorkflowService = Depends(get_workflow_service),
):
    result = svc.transition_by_id(journal_id, WorkflowEvent.UNPUBLISH, actor)
    return _unwrap(result, actor)


@router.put("/{journal_id}/status")
async def update_journal_status(
    journal_id: int,
    payload: StatusUpdatePayload,
    actor: Actor = Depends(get_current_actor),
    svc: JournalWorkflowService = Depends(get_workflow_service),
):
    """
    Generic status change kept for older pages; still routed through the transition table.
    """
    result = svc.change_status(
        journal_id,
        payload.status,
        actor,
        {"comments": payload.comments, "publication_number": payload.publication_number},
    )
    return _unwrap(result, actor)


@router.post("/{journal_id}/download")
async def download_journal(
    journal_id: int,
    actor: Actor = Depends(get_current_actor),
    repo: JournalRepository = Depends(get_journal_repository),
    svc: JournalWorkflowService = Depends(get_workflow_service),
):
    """
    Hand out the manuscript reference; the assigned reviewer's first download starts the review.
    """
    journal = _load_visible(repo, journal_id, actor)
    if workflow.can_trigger(journal, WorkflowEvent.START_REVIEW, actor):
        journal = svc.attempt_transition(journal, WorkflowEvent.START_REVIEW, actor).unwrap()

    cfg = StorageConfig.from_env()
    return {
        "journal": _journal_view(journal, actor),
        "file_path": journal.file_path,
        "download_url": storage_service.download_url_for(journal.file_path, bucket=cfg.bucket),
    }


@router.delete("/{journal_id}")
async def delete_journal(
    journal_id: int,
    actor: Actor = Depends(get_current_actor),
    repo: JournalRepository = Depends(get_journal_repository),
):
    """
    Administrative override (super_admin); not a workflow transition.
    """
    if not can_perform_action(action="journal:delete", roles=[actor.role.value]):
        raise Unauthorized("Only super admins may delete journals")
    repo.delete_journal(journal_id)
    logger.warning("journal %s deleted by user %s", journal_id, actor.id)
    return {"message": "Journal deleted successfully"}
