from __future__ import annotations

import math
from typing import Any

from app.models.journal import JournalStatus
from app.models.schemas import Journal, Pagination, PublishedFilters
from app.services import storage_service
from app.services.journal_repository import JournalRepository
from app.services.workflow import JournalNotFound

# public payload: no reviewer identity, no review comments
_PUBLIC_FIELDS = {
    "id",
    "title",
    "abstract",
    "file_path",
    "status",
    "publisher_id",
    "publication_number",
    "published_date",
    "created_at",
    "updated_at",
    "authors",
}


def public_view(journal: Journal) -> dict[str, Any]:
    data = journal.model_dump(mode="json", include=_PUBLIC_FIELDS)
    data["author_names"] = ", ".join(a.author_name for a in journal.authors)
    return data


class PublicationService:
    def __init__(self, repository: JournalRepository | None = None) -> None:
        self.repo = repository or JournalRepository()

    def list_published(self, filters: PublishedFilters) -> dict[str, Any]:
        journals, total = self.repo.list_published(filters)
        total_pages = math.ceil(total / filters.limit) if total else 0
        pagination = Pagination(
            total=total,
            per_page=filters.limit,
            current_page=filters.page,
            total_pages=total_pages,
            has_more=filters.page < total_pages,
        )
        return {
            "journals": [public_view(j) for j in journals],
            "pagination": pagination.model_dump(),
        }

    def _published(self, journal_id: int) -> Journal:
        journal = self.repo.get_journal(journal_id)
        if journal.status != JournalStatus.PUBLISHED:
            # unpublished journals are indistinguishable from missing ones on the public side
            raise JournalNotFound(f"Journal {journal_id} not found")
        return journal

    def get_published(self, journal_id: int) -> dict[str, Any]:
        return public_view(self._published(journal_id))

    def published_file(self, journal_id: int, *, bucket: str) -> dict[str, Any]:
        """
        Anonymous download link for a published manuscript (short-lived signed URL).
        """
        journal = self._published(journal_id)
        url = storage_service.download_url_for(journal.file_path, bucket=bucket)
        if not url:
            raise JournalNotFound(f"No downloadable file for journal {journal_id}")
        return {"journal_id": journal.id, "title": journal.title, "download_url": url}


def get_publication_service() -> PublicationService:
    return PublicationService()
