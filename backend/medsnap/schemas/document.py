"""
MedSnap Backend — Document Request/Response Schemas
=====================================================

What:  Pydantic models for the guideline catalog API.
Why:   Input validation at the boundary, explicit response contracts, and
       OpenAPI docs generated from the same definitions.

Validation errors from these models are re-raised as the application's
ValidationError (HTTP 400) by `parse_metadata` / `parse_update`, because
upload fields arrive as multipart form values rather than a JSON body.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, HttpUrl, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError

from medsnap.exceptions import ValidationError
from medsnap.models.document import (
    CATEGORY_MAX_LENGTH,
    DEFAULT_CATEGORY,
    NOTES_MAX_LENGTH,
    TAG_MAX_LENGTH,
    TITLE_MAX_LENGTH,
)

SORT_OPTIONS = ("created_at_desc", "created_at_asc", "title_asc", "title_desc")


def split_tags(raw: Optional[str]) -> List[str]:
    """
    Turns the upload form's comma-separated tag field into a tag list.

    Blank entries are dropped and duplicates removed (first spelling wins,
    compared case-insensitively).
    """
    if not raw:
        return []
    seen = set()
    tags: List[str] = []
    for part in raw.split(","):
        tag = part.strip()
        if tag and tag.lower() not in seen:
            seen.add(tag.lower())
            tags.append(tag)
    return tags


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


_url_adapter = TypeAdapter(HttpUrl)


def _check_url(value: Optional[str]) -> Optional[str]:
    """
    Requires an http(s) URL but returns the caller's spelling untouched.
    HttpUrl would normalize "https://who.int" to "https://who.int/".
    """
    if value is None:
        return None
    try:
        _url_adapter.validate_python(value)
    except PydanticValidationError:
        raise ValueError("source_url must be a valid http(s) URL")
    return value


def _validate_tags(tags: List[str]) -> List[str]:
    for tag in tags:
        if len(tag) > TAG_MAX_LENGTH:
            raise ValueError(f"Tags must be at most {TAG_MAX_LENGTH} characters")
    return tags


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class DocumentMetadata(BaseModel):
    """Metadata submitted with a new upload."""

    title: str = Field(min_length=1, max_length=TITLE_MAX_LENGTH)
    category: str = Field(default=DEFAULT_CATEGORY, max_length=CATEGORY_MAX_LENGTH)
    tags: List[str] = Field(default_factory=list)
    notes: Optional[str] = Field(default=None, max_length=NOTES_MAX_LENGTH)
    source_url: Optional[str] = None

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("category", mode="before")
    @classmethod
    def default_category(cls, v):
        # Absent or blank category is stored as "General"
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_CATEGORY
        return v.strip() if isinstance(v, str) else v

    @field_validator("notes", "source_url", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        return _clean_optional(v) if isinstance(v, str) else v

    @field_validator("source_url")
    @classmethod
    def check_source_url(cls, v: Optional[str]) -> Optional[str]:
        return _check_url(v)

    @field_validator("tags")
    @classmethod
    def check_tags(cls, v: List[str]) -> List[str]:
        return _validate_tags(v)

    def row_values(self) -> dict:
        """Column values for the guidelines table."""
        return {
            "title": self.title,
            "category": self.category,
            "tags": list(self.tags),
            "notes": self.notes,
            "source_url": self.source_url,
        }


class DocumentUpdate(BaseModel):
    """
    Partial edit of a document's metadata.

    Fields left as None are not touched. Sending an empty string for notes or
    source_url clears them; an empty category resets it to "General".
    """

    title: Optional[str] = Field(default=None, min_length=1, max_length=TITLE_MAX_LENGTH)
    category: Optional[str] = Field(default=None, max_length=CATEGORY_MAX_LENGTH)
    tags: Optional[List[str]] = None
    notes: Optional[str] = Field(default=None, max_length=NOTES_MAX_LENGTH)
    source_url: Optional[str] = None

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("category", mode="before")
    @classmethod
    def default_category(cls, v):
        if isinstance(v, str):
            return v.strip() or DEFAULT_CATEGORY
        return v

    @field_validator("source_url")
    @classmethod
    def check_source_url(cls, v: Optional[str]) -> Optional[str]:
        # "" is a deliberate clear; anything else must parse as a URL
        if v is None or not v.strip():
            return v
        return _check_url(v.strip())

    @field_validator("tags")
    @classmethod
    def check_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _validate_tags(v) if v is not None else v

    def row_values(self) -> dict:
        """Only the columns the caller actually supplied."""
        values = {}
        if self.title is not None:
            values["title"] = self.title
        if self.category is not None:
            values["category"] = self.category
        if self.tags is not None:
            values["tags"] = list(self.tags)
        if self.notes is not None:
            values["notes"] = _clean_optional(self.notes)
        if self.source_url is not None:
            values["source_url"] = _clean_optional(self.source_url)
        return values


class CategoryUpdate(BaseModel):
    """Body of PATCH /api/documents/{id}/category."""

    category: str = Field(description="New category label")


class CategoryRename(BaseModel):
    """Body of POST /api/documents/categories/rename."""

    old_category: str
    new_category: str


def _to_validation_error(exc: PydanticValidationError) -> ValidationError:
    first = exc.errors()[0]
    field = ".".join(str(part) for part in first.get("loc", ())) or None
    return ValidationError(
        message=f"Invalid {field or 'input'}: {first.get('msg', 'invalid value')}",
        field=field,
        context={"errors": len(exc.errors())},
    )


def parse_metadata(**values) -> DocumentMetadata:
    """Builds DocumentMetadata, reporting failures as a 400 ValidationError."""
    try:
        return DocumentMetadata(**values)
    except PydanticValidationError as e:
        raise _to_validation_error(e) from e


def parse_update(**values) -> DocumentUpdate:
    """Builds DocumentUpdate, reporting failures as a 400 ValidationError."""
    try:
        return DocumentUpdate(**values)
    except PydanticValidationError as e:
        raise _to_validation_error(e) from e


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class DocumentResponse(BaseModel):
    """
    One guideline as the dashboard renders it.

    file_path is the stable storage path; file_url is a short-lived signed
    URL minted for this response only.
    """

    id: uuid.UUID
    title: str
    category: str
    tags: List[str]
    notes: Optional[str] = None
    source_url: Optional[str] = None
    file_path: str
    file_url: str = Field(description="Signed URL, valid for SIGNED_URL_TTL seconds")
    file_type: str
    created_at: datetime


class DocumentListResponse(BaseModel):
    documents: List[DocumentResponse]
    total_count: int = Field(description="Documents after filtering")
    categories: List[str] = Field(description="All categories the user has, sorted")


class DocumentCreatedResponse(BaseModel):
    message: str = "Document uploaded successfully"
    document: DocumentResponse
    upload_count: int


class DocumentUpdatedResponse(BaseModel):
    message: str = "Document updated successfully"
    document: DocumentResponse
    old_blob_removed: Optional[bool] = Field(
        default=None,
        description="Whether the replaced file was removed (null when no file was replaced)",
    )


class DocumentDeletedResponse(BaseModel):
    message: str = "Document deleted successfully"
    id: uuid.UUID
    blob_removed: bool
    upload_count: int


class CategoryRenameResponse(BaseModel):
    moved: int = Field(description="Documents moved to the new category")


class ReconcileResponse(BaseModel):
    message: str = "Upload count recomputed"
    upload_count: int


class UsageResponse(BaseModel):
    """Profile plus quota state, for the usage indicator."""

    user_id: str
    subscription_status: str
    subscription_plan: str
    upload_count: int = Field(description="Cached counter stored on the profile")
    document_count: int = Field(description="Authoritative number of documents")
    upload_limit: Optional[int] = Field(description="Null when unlimited")
    remaining_uploads: Optional[int] = Field(description="Null when unlimited")
    can_upload: bool
