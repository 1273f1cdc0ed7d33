from fastapi import APIRouter, Depends

from app.api.v1.journals import can_view, get_journal_repository
from app.core.role_matrix import can_perform_action
from app.core.roles import get_current_actor
from app.services.journal_repository import JournalRepository
from app.services.review_service import ReviewService, get_review_service, latest_review
from app.services.workflow import Actor, Unauthorized

router = APIRouter(prefix="/reviews", tags=["Reviews"])


@router.get("/journal/{journal_id}")
async def get_journal_reviews(
    journal_id: int,
    actor: Actor = Depends(get_current_actor),
    repo: JournalRepository = Depends(get_journal_repository),
    svc: ReviewService = Depends(get_review_service),
):
    """
    Review history of one journal, oldest first.

    中文注释:
    - publisher 只能看自己稿件的审稿意见；
    - reviewer 只能看分配给自己的（或已进入 approved/published 的）稿件。
    """
    journal = repo.get_journal(journal_id)
    if not can_view(journal, actor):
        raise Unauthorized("You do not have access to this journal")
    reviews = svc.reviews_for_actor(journal, actor)
    latest = latest_review(reviews)
    return {
        "journal_id": journal.id,
        "status": journal.status.value,
        "reviews": [r.model_dump(mode="json") for r in reviews],
        "latest": latest.model_dump(mode="json") if latest else None,
    }


@router.get("/assigned")
async def get_assigned_journals(
    actor: Actor = Depends(get_current_actor),
    svc: ReviewService = Depends(get_review_service),
):
    if not can_perform_action(action="journal:view_assigned", roles=[actor.role.value]):
        raise Unauthorized("Only reviewers have assigned journals")
    journals = svc.assigned_journals(actor)
    return {"journals": [j.model_dump(mode="json") for j in journals]}
