from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional, TypeVar

from postgrest.exceptions import APIError
from pydantic import ValidationError as PydanticValidationError

from app.lib.api_client import supabase_admin
from app.models.journal import JournalStatus, ReviewStatus, UserRole
from app.models.schemas import Journal, JournalAuthor, JournalReview, PublishedFilters, User
from app.services.workflow import JournalNotFound, RemoteFailure, WorkflowError

logger = logging.getLogger("journalportal.repository")

T = TypeVar("T")

_USER_COLUMNS = "id, email, username, first_name, last_name, role, department, created_at"
_SEARCH_UNSAFE = re.compile(r"[,()%*\\]")


def _iso(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()
    if isinstance(value, (JournalStatus, ReviewStatus, UserRole)):
        return value.value
    return value


def _rows(resp: Any) -> list[dict[str, Any]]:
    data = getattr(resp, "data", None)
    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    return list(data)


class JournalRepository:
    """
    Persistence adapter over the Supabase (PostgREST) tables.

    中文注释:
    - 远端 API 是唯一的数据源（system of record），这里只做读写与错误归一化。
    - 所有客户端/网络异常统一转换为 RemoteFailure，不在此吞掉异常。
    - 写操作都带 `.eq("status", expected_status)` 的乐观校验：并发写入方导致 0 行更新时，
      以可重试的 RemoteFailure 返回，调用方重新读取后再试。
    """

    def __init__(self, client: Any = None) -> None:
        self.client = client if client is not None else supabase_admin

    def _call(self, op: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except WorkflowError:
            raise
        except APIError as e:
            # PostgREST answered: constraint (23xxx) and schema (42xxx) errors fail the same way on retry
            code = str(getattr(e, "code", "") or "")
            retryable = not code.startswith(("23", "42"))
            logger.error("[Repository] %s rejected by PostgREST (code=%s): %s", op, code or "-", e)
            raise RemoteFailure(f"Persistence API rejected {op}", retryable=retryable) from e
        except Exception as e:
            # transport level: timeouts, resets, DNS
            logger.error("[Repository] %s failed: %s", op, e)
            raise RemoteFailure(f"Persistence API call failed: {op}") from e

    # === reads ===

    def get_journal(self, journal_id: int) -> Journal:
        resp = self._call(
            "get_journal",
            lambda: self.client.table("journals").select("*").eq("id", journal_id).limit(1).execute(),
        )
        rows = _rows(resp)
        if not rows:
            raise JournalNotFound(f"Journal {journal_id} not found")
        authors = self.list_authors(journal_id)
        reviews = self.list_reviews(journal_id)
        return self._to_journal(rows[0], authors=authors, reviews=reviews)

    def list_authors(self, journal_id: int) -> list[JournalAuthor]:
        resp = self._call(
            "list_authors",
            lambda: self.client.table("journal_authors")
            .select("*")
            .eq("journal_id", journal_id)
            .order("id")
            .execute(),
        )
        return [JournalAuthor.model_validate(r) for r in _rows(resp)]

    def list_reviews(self, journal_id: int) -> list[JournalReview]:
        resp = self._call(
            "list_reviews",
            lambda: self.client.table("journal_reviews")
            .select("*, reviewer:users(first_name, last_name)")
            .eq("journal_id", journal_id)
            .order("reviewed_at")
            .execute(),
        )
        out: list[JournalReview] = []
        for row in _rows(resp):
            row = dict(row)
            reviewer = row.pop("reviewer", None) or {}
            row.setdefault("first_name", reviewer.get("first_name"))
            row.setdefault("last_name", reviewer.get("last_name"))
            try:
                out.append(JournalReview.model_validate(row))
            except PydanticValidationError as e:
                raise RemoteFailure(f"Malformed review record {row.get('id')}", retryable=False) from e
        return out

    def get_user(self, user_id: int) -> Optional[User]:
        resp = self._call(
            "get_user",
            lambda: self.client.table("users").select(_USER_COLUMNS).eq("id", user_id).limit(1).execute(),
        )
        rows = _rows(resp)
        if not rows:
            return None
        return User.model_validate(rows[0])

    def list_reviewers(self) -> list[User]:
        resp = self._call(
            "list_reviewers",
            lambda: self.client.table("users")
            .select(_USER_COLUMNS)
            .eq("role", UserRole.REVIEWER.value)
            .order("last_name")
            .execute(),
        )
        return [User.model_validate(r) for r in _rows(resp)]

    def list_journals(
        self,
        *,
        publisher_id: int | None = None,
        reviewer_id: int | None = None,
        status: JournalStatus | None = None,
    ) -> list[Journal]:
        def _query():
            q = self.client.table("journals").select("*")
            if publisher_id is not None:
                q = q.eq("publisher_id", publisher_id)
            if reviewer_id is not None:
                q = q.eq("reviewer_id", reviewer_id)
            if status is not None:
                q = q.eq("status", status.value)
            return q.order("created_at", desc=True).execute()

        resp = self._call("list_journals", _query)
        return [self._to_journal(r) for r in _rows(resp)]

    def list_published(self, filters: PublishedFilters) -> tuple[list[Journal], int]:
        offset = (filters.page - 1) * filters.limit
        search = _SEARCH_UNSAFE.sub(" ", filters.search or "").strip()

        def _query():
            q = (
                self.client.table("journals")
                .select("*", count="exact")
                .eq("status", JournalStatus.PUBLISHED.value)
            )
            if search:
                q = q.or_(f"title.ilike.%{search}%,abstract.ilike.%{search}%")
            return (
                q.order(filters.sort_by, desc=filters.sort_order == "DESC")
                .range(offset, offset + filters.limit - 1)
                .execute()
            )

        resp = self._call("list_published", _query)
        rows = _rows(resp)
        total = getattr(resp, "count", None)
        if not isinstance(total, int):
            total = offset + len(rows)
        return [self._to_journal(r) for r in rows], total

    # === writes ===

    def create_journal(self, submission: dict[str, Any], authors: Iterable[JournalAuthor] = ()) -> Journal:
        """
        Insert the journal row and its authors.

        The result is built from the insert responses instead of a second read, so once this
        returns nothing else can fail. Any failure after the journal insert deletes the rows
        again; the caller sees one RemoteFailure and an unchanged database.
        """
        values = {k: _iso(v) for k, v in submission.items()}
        resp = self._call("create_journal", lambda: self.client.table("journals").insert(values).execute())
        rows = _rows(resp)
        if not rows:
            raise RemoteFailure("Persistence API returned no journal row on insert")
        journal_id = int(rows[0]["id"])

        author_rows = [
            {
                "journal_id": journal_id,
                "author_name": a.author_name,
                "author_email": a.author_email,
                "author_department": a.author_department,
                "is_primary": a.is_primary,
            }
            for a in authors
        ]
        try:
            inserted_authors: list[dict[str, Any]] = []
            if author_rows:
                author_resp = self._call(
                    "create_journal_authors",
                    lambda: self.client.table("journal_authors").insert(author_rows).execute(),
                )
                inserted_authors = _rows(author_resp)
            try:
                created_authors = [JournalAuthor.model_validate(r) for r in inserted_authors or author_rows]
            except PydanticValidationError as e:
                raise RemoteFailure(f"Malformed author rows for journal {journal_id}", retryable=False) from e
            # PostgREST may return only some columns; the submitted values fill the rest
            return self._to_journal({**values, **rows[0]}, authors=created_authors)
        except RemoteFailure:
            if author_rows:
                self._discard("journal_authors", "journal_id", journal_id)
            self._discard("journals", "id", journal_id)
            raise

    def _update_journal(self, op: str, journal_id: int, expected_status: str, values: dict[str, Any]) -> dict:
        payload = {k: _iso(v) for k, v in values.items()}
        resp = self._call(
            op,
            lambda: self.client.table("journals")
            .update(payload)
            .eq("id", journal_id)
            .eq("status", expected_status)
            .execute(),
        )
        rows = _rows(resp)
        if not rows:
            raise RemoteFailure(f"Journal {journal_id} was modified or removed concurrently; reload and retry")
        return rows[0]

    def assign_reviewer(
        self, journal_id: int, reviewer_id: int, *, expected_status: str, updated_at: datetime
    ) -> dict:
        return self._update_journal(
            "assign_reviewer",
            journal_id,
            expected_status,
            {"reviewer_id": reviewer_id, "status": JournalStatus.ASSIGNED, "updated_at": updated_at},
        )

    def set_status(
        self, journal_id: int, status: JournalStatus, *, expected_status: str, updated_at: datetime
    ) -> dict:
        return self._update_journal(
            "set_status", journal_id, expected_status, {"status": status, "updated_at": updated_at}
        )

    def submit_review(
        self,
        journal_id: int,
        reviewer_id: int,
        status: ReviewStatus,
        comments: str,
        *,
        expected_status: str,
        reviewed_at: datetime,
    ) -> dict:
        """
        Insert the review row, then move the journal to the verdict status.

        PostgREST has no multi-statement transaction, so a failed status update deletes the
        review row again; the caller sees one RemoteFailure and no partial transition.
        """
        review_row = {
            "journal_id": journal_id,
            "reviewer_id": reviewer_id,
            "status": _iso(status),
            "comments": comments,
            "reviewed_at": _iso(reviewed_at),
            "created_at": _iso(reviewed_at),
        }
        resp = self._call(
            "submit_review", lambda: self.client.table("journal_reviews").insert(review_row).execute()
        )
        inserted = _rows(resp)
        review_id = inserted[0].get("id") if inserted else None

        target = JournalStatus.APPROVED if status == ReviewStatus.APPROVED else JournalStatus.REJECTED
        try:
            return self._update_journal(
                "submit_review_status",
                journal_id,
                expected_status,
                {"status": target, "updated_at": reviewed_at},
            )
        except RemoteFailure:
            if review_id is not None:
                self._discard("journal_reviews", "id", review_id)
            raise

    def publish(
        self, journal_id: int, publication_number: str, *, expected_status: str, published_date: datetime
    ) -> dict:
        return self._update_journal(
            "publish",
            journal_id,
            expected_status,
            {
                "status": JournalStatus.PUBLISHED,
                "publication_number": publication_number,
                "published_date": published_date,
                "updated_at": published_date,
            },
        )

    def unpublish(self, journal_id: int, *, expected_status: str, updated_at: datetime) -> dict:
        # publication_number / published_date stay on the row for re-publish
        return self._update_journal(
            "unpublish",
            journal_id,
            expected_status,
            {"status": JournalStatus.APPROVED, "updated_at": updated_at},
        )

    def delete_journal(self, journal_id: int) -> None:
        self.get_journal(journal_id)
        self._call(
            "delete_journal_reviews",
            lambda: self.client.table("journal_reviews").delete().eq("journal_id", journal_id).execute(),
        )
        self._call(
            "delete_journal_authors",
            lambda: self.client.table("journal_authors").delete().eq("journal_id", journal_id).execute(),
        )
        self._call(
            "delete_journal",
            lambda: self.client.table("journals").delete().eq("id", journal_id).execute(),
        )

    def log_transition(
        self,
        *,
        journal_id: int,
        from_status: str | None,
        to_status: str | None,
        event: str,
        changed_by: int,
        created_at: datetime,
    ) -> None:
        """
        Audit row in journal_status_logs; failures are logged and ignored.
        """
        try:
            self.client.table("journal_status_logs").insert(
                {
                    "journal_id": journal_id,
                    "from_status": from_status,
                    "to_status": to_status,
                    "event": event,
                    "changed_by": changed_by,
                    "created_at": _iso(created_at),
                }
            ).execute()
        except Exception as e:
            # 中文注释: 审计日志不是数据源，迁移未跑/表缺失时不阻断主流程。
            logger.warning("[Workflow] transition log insert failed (ignored): %s", e)

    # === helpers ===

    def _discard(self, table: str, column: str, value: Any) -> None:
        try:
            self.client.table(table).delete().eq(column, value).execute()
        except Exception as e:
            logger.error("[Repository] compensating delete on %s.%s=%s failed: %s", table, column, value, e)

    @staticmethod
    def _to_journal(
        row: dict[str, Any],
        *,
        authors: list[JournalAuthor] | None = None,
        reviews: list[JournalReview] | None = None,
    ) -> Journal:
        data = dict(row)
        data["authors"] = authors or []
        data["reviews"] = reviews or []
        try:
            return Journal.model_validate(data)
        except PydanticValidationError as e:
            raise RemoteFailure(f"Malformed journal record {row.get('id')}", retryable=False) from e
