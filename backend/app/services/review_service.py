from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Optional

from app.models.journal import UserRole
from app.models.schemas import Journal, JournalReview
from app.services.journal_repository import JournalRepository
from app.services.workflow import Actor, Unauthorized

_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)


def _sort_key(review: JournalReview) -> tuple[datetime, int]:
    ts = review.reviewed_at
    if ts is not None and ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return (ts or _FAR_FUTURE, review.id if review.id is not None else 0)


def order_reviews(reviews: Iterable[JournalReview]) -> list[JournalReview]:
    """Chronological (reviewed_at ascending); ties by id, undated rows last."""
    return sorted(reviews, key=_sort_key)


def latest_review(reviews: Iterable[JournalReview]) -> Optional[JournalReview]:
    ordered = [r for r in order_reviews(reviews) if r.reviewed_at is not None]
    return ordered[-1] if ordered else None


class ReviewService:
    """
    Read-side projection of journal_reviews for the detail page and reviewer dashboard.
    """

    def __init__(self, repository: JournalRepository | None = None) -> None:
        self.repo = repository or JournalRepository()

    def list_reviews(self, journal_id: int) -> list[JournalReview]:
        return order_reviews(self.repo.list_reviews(journal_id))

    def reviews_for_actor(self, journal: Journal, actor: Actor) -> list[JournalReview]:
        """
        Reviews are visible to staff, to any reviewer, and to the journal's own publisher.
        """
        if actor.role == UserRole.PUBLISHER and journal.publisher_id != actor.id:
            raise Unauthorized("Publishers may only read reviews of their own journals")
        return self.list_reviews(journal.id)

    def assigned_journals(self, actor: Actor) -> list[Journal]:
        if actor.role != UserRole.REVIEWER:
            raise Unauthorized("Only reviewers have assigned journals")
        return self.repo.list_journals(reviewer_id=actor.id)


def get_review_service() -> ReviewService:
    return ReviewService()
