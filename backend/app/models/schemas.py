from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.models.journal import (
    REVIEWER_BOUND_STATUSES,
    JournalStatus,
    ReviewStatus,
    UserRole,
)

# === Core records (mirrors of backend rows) ===


class User(BaseModel):
    """Row of public.users (one role per user)."""

    id: int
    email: Optional[str] = None
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: UserRole
    department: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, use_enum_values=False)


class JournalAuthor(BaseModel):
    id: Optional[int] = None
    journal_id: Optional[int] = None
    author_name: str
    author_email: Optional[str] = None
    author_department: Optional[str] = None
    is_primary: bool = False


class JournalReview(BaseModel):
    """A single reviewer verdict on a journal."""

    id: Optional[int] = None
    journal_id: int
    reviewer_id: int
    status: ReviewStatus
    comments: str = ""
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class Journal(BaseModel):
    """
    Journal snapshot as read from the persistence API.

    Constructing one enforces the record invariants, so a malformed row can never reach
    the workflow engine:
    - status belongs to the closed JournalStatus set
    - publication_number / published_date are both present or both absent
    - reviewer_id is set iff the journal has been assigned
    """

    id: int
    title: str
    abstract: str = ""
    file_path: Optional[str] = None
    status: JournalStatus
    publisher_id: int
    reviewer_id: Optional[int] = None
    publication_number: Optional[str] = None
    published_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    authors: List[JournalAuthor] = Field(default_factory=list)
    reviews: List[JournalReview] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("publication_number", mode="before")
    @classmethod
    def blank_number_is_absent(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def check_invariants(self) -> "Journal":
        if (self.publication_number is None) != (self.published_date is None):
            raise ValueError("publication_number and published_date must be set together")
        bound = self.status in REVIEWER_BOUND_STATUSES
        if bound and self.reviewer_id is None:
            raise ValueError(f"reviewer_id is required when status is {self.status.value}")
        if not bound and self.reviewer_id is not None:
            raise ValueError(f"reviewer_id must be empty when status is {self.status.value}")
        return self


# === Request payloads ===


class AuthorInput(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = Field(None, max_length=320)
    department: Optional[str] = Field(None, max_length=200)
    is_primary: bool = Field(False, alias="isPrimary")

    model_config = ConfigDict(populate_by_name=True)


class JournalCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    abstract: str = Field(..., min_length=1, max_length=10000)
    authors: List[AuthorInput] = Field(default_factory=list)

    @field_validator("title", "abstract")
    @classmethod
    def strip_text(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("must not be blank")
        return trimmed


class AssignReviewerPayload(BaseModel):
    reviewer_id: int


class ReviewPayload(BaseModel):
    status: Literal["approved", "rejected"]
    comments: str = ""


class PublishPayload(BaseModel):
    publication_number: str = ""


class StatusUpdatePayload(BaseModel):
    status: str
    comments: str = ""
    publication_number: str = ""


class UserCreate(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    role: UserRole
    department: Optional[str] = Field(None, max_length=200)


class UserUpdate(BaseModel):
    """Profile fields only; roles are not editable."""

    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    department: Optional[str] = Field(None, max_length=200)


class PasswordReset(BaseModel):
    new_password: str = Field(..., min_length=8, max_length=128, alias="newPassword")

    model_config = ConfigDict(populate_by_name=True)


# === Listing ===


class PublishedFilters(BaseModel):
    sort_by: Literal["title", "published_date", "created_at"] = "published_date"
    sort_order: Literal["ASC", "DESC"] = "DESC"
    search: str = ""
    limit: int = Field(20, ge=1, le=100)
    page: int = Field(1, ge=1)


class Pagination(BaseModel):
    total: int
    per_page: int
    current_page: int
    total_pages: int
    has_more: bool
