"""
MedSnap Backend — Document Catalog (Business Logic Orchestrator)
==================================================================

What:  CRUD, search, filter, and sort over one user's guidelines, plus the
       blob lifecycle that goes with each row.
Why:   Every multi-step flow (blob + row + counter) lives here, so the
       partial-failure points are in one place and unit-testable.
How:   DocumentCatalog receives its collaborators (row repositories and a
       BlobStorage) from the caller; it holds no global state.
Who:   Called by routes/documents.py and routes/profile.py.

Upload Flow (POST /api/documents):
    ┌────────────┐   ┌──────────┐   ┌───────────┐   ┌───────────┐   ┌───────────┐
    │ Quota gate │──▶│ Classify │──▶│ Put blob  │──▶│ Insert row│──▶│ Counter+1 │
    │ (row COUNT)│   │ MIME     │   │           │   │           │   │           │
    └────────────┘   └──────────┘   └───────────┘   └─────┬─────┘   └───────────┘
                                                          │ fails
                                                          ▼
                                                  remove blob (best effort)

Partial failures:
    Best-effort steps never raise. Their outcome is returned in the result
    objects (UpdateResult.old_blob_removed, DeleteResult.blob_removed) and
    logged, so a leaked blob is visible to the caller instead of hidden.
    Hard failures (quota, validation, storage put, row write) raise the
    typed exceptions from medsnap.exceptions.

Blob paths:
    <owner>/<epoch ms>-<8 hex chars>-<sanitized filename>
    The random segment keeps two same-named uploads in the same millisecond
    from colliding.
"""

import asyncio
import logging
import re
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

import magic

from medsnap.config import settings
from medsnap.exceptions import (
    FileStorageError,
    MedSnapError,
    NotFoundError,
    UploadLimitError,
    ValidationError,
)
from medsnap.models.document import CATEGORY_MAX_LENGTH, DEFAULT_CATEGORY, FileKind, Guideline
from medsnap.schemas.document import SORT_OPTIONS, DocumentMetadata, DocumentUpdate
from medsnap.services import quota
from medsnap.services.data_store import DocumentRepository, ProfileRepository
from medsnap.services.storage_base import BlobStorage

logger = logging.getLogger(__name__)

WORD_MIME_TYPES = frozenset({
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
})

# What libmagic reports for .doc/.docx files whose inner layout it does not
# recognise; accepted only when the upload was declared as Word.
WORD_CONTAINER_MIME_TYPES = frozenset({
    "application/zip",
    "application/x-ole-storage",
    "application/vnd.ms-office",
    "application/cdfv2",
})

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9.-]")


# ══════════════════════════════════════════════════════════════════════════
# Result Types
# ══════════════════════════════════════════════════════════════════════════


@dataclass
class DocumentView:
    """A guideline row plus a signed URL minted for this read."""

    id: uuid.UUID
    title: str
    category: str
    tags: List[str]
    notes: Optional[str]
    source_url: Optional[str]
    file_path: str
    file_url: str
    file_type: str
    created_at: datetime

    @classmethod
    def from_row(cls, guideline: Guideline, file_url: str) -> "DocumentView":
        return cls(
            id=guideline.id,
            title=guideline.title,
            category=guideline.category or DEFAULT_CATEGORY,
            tags=list(guideline.tags or []),
            notes=guideline.notes,
            source_url=guideline.source_url,
            file_path=guideline.file_path,
            file_url=file_url,
            file_type=guideline.file_type,
            created_at=guideline.created_at,
        )


@dataclass
class CreateResult:
    document: DocumentView
    upload_count: int


@dataclass
class UpdateResult:
    document: DocumentView
    # None when no file was replaced; False means the old blob leaked
    old_blob_removed: Optional[bool] = None


@dataclass
class DeleteResult:
    document_id: uuid.UUID
    blob_removed: bool
    upload_count: int


# ══════════════════════════════════════════════════════════════════════════
# Upload Helpers (pure)
# ══════════════════════════════════════════════════════════════════════════


def classify_file_kind(content_type: Optional[str]) -> FileKind:
    """
    Map a declared MIME type to pdf / word / image.

    Raises:
        ValidationError: Any other type (text, archives, executables, ...).
    """
    mime = (content_type or "").split(";", 1)[0].strip().lower()
    if mime == "application/pdf":
        return FileKind.PDF
    if mime in WORD_MIME_TYPES:
        return FileKind.WORD
    if mime.startswith("image/"):
        return FileKind.IMAGE
    raise ValidationError(
        message=f"Unsupported file type '{mime or 'unknown'}'. Upload a PDF, image, or Word document.",
        field="file",
        context={"content_type": content_type},
    )


def detect_file_kind(content: bytes, declared: FileKind) -> FileKind:
    """
    Confirm the declared kind against the file's actual bytes.

    What:    libmagic reads the file signature (PDF starts with "%PDF-", PNG
             with 89 50 4E 47, ...) and reports the real MIME type.
    Why:     The Content-Type of a multipart part is whatever the client
             claims; an executable renamed to report.pdf must not be stored
             as a PDF.

    Raises:
        ValidationError: The content is not a PDF, image, or Word document,
                         or is a different kind from the one declared.
        FileStorageError: libmagic could not inspect the bytes.
    """
    try:
        detected = magic.from_buffer(content, mime=True)
    except magic.MagicException as e:
        logger.error("MIME type detection failed: %s", str(e))
        raise FileStorageError(
            message="Could not verify file type. Please try again.",
            context={"error": str(e)},
        ) from e

    mime = (detected or "").lower()
    if mime == "application/pdf":
        kind = FileKind.PDF
    elif mime.startswith("image/"):
        kind = FileKind.IMAGE
    elif mime in WORD_MIME_TYPES:
        kind = FileKind.WORD
    elif mime in WORD_CONTAINER_MIME_TYPES and declared == FileKind.WORD:
        kind = FileKind.WORD
    else:
        kind = None

    if kind != declared:
        raise ValidationError(
            message=(
                f"File content type '{mime or 'unknown'}' does not match the declared "
                f"{declared.value} file. Upload a PDF, image, or Word document."
            ),
            field="file",
            context={"detected_mime": mime, "declared_kind": declared.value},
        )
    return kind


def sanitize_filename(filename: Optional[str]) -> str:
    """Replace every character outside [A-Za-z0-9.-] with '_'."""
    # Browsers may send a full client path
    name = (filename or "").replace("\\", "/").rsplit("/", 1)[-1]
    return _UNSAFE_FILENAME_CHARS.sub("_", name) or "file"


def build_blob_path(owner: str, filename: Optional[str], now_ms: Optional[int] = None) -> str:
    timestamp = int(time.time() * 1000) if now_ms is None else now_ms
    return f"{owner}/{timestamp}-{uuid.uuid4().hex[:8]}-{sanitize_filename(filename)}"


def validate_file_content(content: bytes, max_size: Optional[int] = None) -> None:
    limit = settings.max_file_size if max_size is None else max_size
    if not content:
        raise ValidationError(message="Uploaded file is empty", field="file")
    if len(content) > limit:
        raise ValidationError(
            message=f"File too large. Maximum size is {limit // (1024 * 1024)}MB.",
            field="file",
            context={"size": len(content), "max_size": limit},
        )


def validate_category(category: Optional[str]) -> str:
    value = (category or "").strip()
    if not value:
        raise ValidationError(message="Category is required", field="category")
    if len(value) > CATEGORY_MAX_LENGTH:
        raise ValidationError(
            message=f"Category must be at most {CATEGORY_MAX_LENGTH} characters",
            field="category",
        )
    return value


# ══════════════════════════════════════════════════════════════════════════
# Query Helpers (pure)
# ══════════════════════════════════════════════════════════════════════════


def check_sort_option(sort: str) -> None:
    if sort not in SORT_OPTIONS:
        raise ValidationError(
            message=f"Invalid sort '{sort}'. Use one of: {', '.join(SORT_OPTIONS)}",
            field="sort",
        )


def sort_documents(documents: Iterable[DocumentView], sort: str = "created_at_desc") -> List[DocumentView]:
    """
    Stable sort; documents with equal keys keep their relative order.
    Titles compare case-insensitively.

    Raises:
        ValidationError: Unknown sort option.
    """
    check_sort_option(sort)
    field_name, direction = sort.rsplit("_", 1)
    reverse = direction == "desc"
    if field_name == "title":
        return sorted(documents, key=lambda doc: doc.title.casefold(), reverse=reverse)
    return sorted(documents, key=lambda doc: doc.created_at, reverse=reverse)


def filter_documents(
    documents: Sequence[DocumentView],
    category: Optional[str] = None,
    search_term: Optional[str] = None,
    match_tags: Optional[bool] = None,
) -> List[DocumentView]:
    """
    Keep documents matching the category AND the search term.

    category:    exact match; a document without one counts as "General".
                 None or "" disables the filter.
    search_term: case-insensitive substring of the title or notes (or any
                 tag when match_tags is on). None or "" disables the filter.
    """
    include_tags = settings.search_includes_tags if match_tags is None else match_tags
    term = (search_term or "").strip().casefold()

    def matches(doc: DocumentView) -> bool:
        if category and (doc.category or DEFAULT_CATEGORY) != category:
            return False
        if not term:
            return True
        if term in doc.title.casefold():
            return True
        if doc.notes and term in doc.notes.casefold():
            return True
        return include_tags and any(term in tag.casefold() for tag in doc.tags)

    return [doc for doc in documents if matches(doc)]


def categories(documents: Iterable[DocumentView]) -> List[str]:
    """Sorted distinct categories, always including "General"."""
    names = {doc.category or DEFAULT_CATEGORY for doc in documents}
    names.add(DEFAULT_CATEGORY)
    return sorted(names)


# ══════════════════════════════════════════════════════════════════════════
# Catalog
# ══════════════════════════════════════════════════════════════════════════


class DocumentCatalog:
    """
    One user's guideline library.

    Responsibilities:
        - list_documents():        rows + fresh signed URLs, sorted
        - create_document():       quota → classify → blob → row → counter
        - update_document():       metadata and optional file replacement
        - delete_document():       blob (best effort) → row → counter
        - reassign_category():     single-field category change
        - rename_category():       move every document in one category
        - reconcile_upload_count(): rewrite the cached counter from COUNT(*)
        - usage():                 profile + quota state
    """

    def __init__(
        self,
        documents: DocumentRepository,
        profiles: ProfileRepository,
        storage: BlobStorage,
        free_limit: Optional[int] = None,
        signed_url_ttl: Optional[int] = None,
    ):
        self.documents = documents
        self.profiles = profiles
        self.storage = storage
        self.free_limit = settings.free_upload_limit if free_limit is None else free_limit
        self.signed_url_ttl = settings.signed_url_ttl if signed_url_ttl is None else signed_url_ttl

    # ── Internal Helpers ──────────────────────────────────────────────────

    async def _view(self, guideline: Guideline) -> DocumentView:
        try:
            url = await self.storage.signed_url(guideline.file_path, self.signed_url_ttl)
        except FileStorageError as e:
            # The document stays listed; the client shows it without a preview
            logger.warning("Could not sign %s: %s", guideline.file_path, e.message)
            url = ""
        return DocumentView.from_row(guideline, url)

    async def _remove_blob(self, path: str) -> bool:
        """Best-effort blob removal. Returns False instead of raising."""
        try:
            await self.storage.remove(path)
            return True
        except FileStorageError as e:
            logger.warning("Blob %s was not removed and is now orphaned: %s", path, e.message)
            return False

    async def _get_owned(self, owner: str, document_id: uuid.UUID) -> Guideline:
        guideline = await self.documents.get_owned(owner, document_id)
        if guideline is None:
            raise NotFoundError(resource="document", resource_id=str(document_id))
        return guideline

    # ── Reads ─────────────────────────────────────────────────────────────

    async def list_documents(self, owner: str, sort: str = "created_at_desc") -> List[DocumentView]:
        """
        All of the owner's documents with freshly signed URLs.

        Signed URLs are minted concurrently; a signing failure leaves that
        document's file_url empty rather than failing the listing.
        """
        check_sort_option(sort)
        rows = await self.documents.list_for_owner(owner)
        views = await asyncio.gather(*(self._view(row) for row in rows))
        return sort_documents(views, sort)

    async def get_document(self, owner: str, document_id: uuid.UUID) -> DocumentView:
        return await self._view(await self._get_owned(owner, document_id))

    async def usage(self, owner: str) -> dict:
        profile = await self.profiles.get_or_create(owner)
        document_count = await self.documents.count_for_owner(owner)
        unlimited = quota.has_unlimited_uploads(profile.subscription_status)
        return {
            "user_id": profile.user_id,
            "subscription_status": profile.subscription_status,
            "subscription_plan": profile.subscription_plan,
            "upload_count": profile.upload_count,
            "document_count": document_count,
            "upload_limit": None if unlimited else self.free_limit,
            "remaining_uploads": quota.remaining_uploads(
                document_count, profile.subscription_status, self.free_limit
            ),
            "can_upload": quota.can_upload(document_count, profile.subscription_status, self.free_limit),
        }

    # ── Create ────────────────────────────────────────────────────────────

    async def create_document(
        self,
        owner: str,
        filename: Optional[str],
        content_type: Optional[str],
        content: bytes,
        metadata: DocumentMetadata,
    ) -> CreateResult:
        """
        Upload a file and record it in the catalog.

        Steps (each can fail on its own):
            1. Quota gate against the authoritative document count
            2. Classify the declared type, check the size, confirm it from the bytes
            3. Write the blob
            4. Insert the row; on failure remove the blob (best effort), re-raise
            5. Increment profiles.upload_count

        Raises:
            UploadLimitError: Free plan and the limit is reached (nothing written)
            ValidationError: Disallowed type or bad size (nothing written)
            FileStorageError: Blob write failed (nothing written)
            DatabaseError: Row insert failed (blob removal attempted)
        """
        # ── Step 1: Quota gate ────────────────────────────────────────────
        profile = await self.profiles.get_or_create(owner)
        document_count = await self.documents.count_for_owner(owner)
        if not quota.can_upload(document_count, profile.subscription_status, self.free_limit):
            logger.info("Upload refused for %s: %d of %d used", owner, document_count, self.free_limit)
            raise UploadLimitError(document_count=document_count, limit=self.free_limit)

        # ── Step 2: Classify, size-check, sniff ──────────────────────────
        declared = classify_file_kind(content_type)
        validate_file_content(content)
        kind = detect_file_kind(content, declared)

        # ── Step 3: Write blob ────────────────────────────────────────────
        path = build_blob_path(owner, filename)
        await self.storage.put(path, content, content_type or "application/octet-stream")

        # ── Step 4: Insert row, compensating on failure ──────────────────
        try:
            guideline = await self.documents.insert(owner, path, kind.value, metadata.row_values())
        except MedSnapError:
            removed = await self._remove_blob(path)
            logger.error("Row insert failed for %s; blob cleanup %s", path, "done" if removed else "failed")
            raise

        # ── Step 5: Counter ──────────────────────────────────────────────
        upload_count = await self.profiles.adjust_upload_count(owner, 1)

        logger.info("Document %s created for %s (%s, %d bytes)", guideline.id, owner, kind.value, len(content))
        return CreateResult(document=await self._view(guideline), upload_count=upload_count)

    # ── Update ────────────────────────────────────────────────────────────

    async def update_document(
        self,
        owner: str,
        document_id: uuid.UUID,
        updates: DocumentUpdate,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
        content: Optional[bytes] = None,
    ) -> UpdateResult:
        """
        Edit metadata and optionally replace the file.

        With a replacement file: the new blob is written first, then the row
        is pointed at it and committed, and only then is the old blob removed
        (best effort).
        If the old blob cannot be removed the update still succeeds and
        old_blob_removed is False.

        Raises:
            NotFoundError: No such document for this owner.
            ValidationError: Bad metadata or replacement file.
            FileStorageError: The replacement blob could not be written.
            DatabaseError: The row update failed (new blob removal attempted).
        """
        guideline = await self._get_owned(owner, document_id)
        values = updates.row_values()

        if content is None:
            if values:
                await self.documents.update(guideline, values)
            return UpdateResult(document=await self._view(guideline))

        declared = classify_file_kind(content_type)
        validate_file_content(content)
        kind = detect_file_kind(content, declared)

        old_path = guideline.file_path
        new_path = build_blob_path(owner, filename)
        await self.storage.put(new_path, content, content_type or "application/octet-stream")

        values.update(file_path=new_path, file_type=kind.value)
        try:
            await self.documents.update(guideline, values)
            # The old blob goes only once no rollback can point the row back at it
            await self.documents.commit()
        except MedSnapError:
            await self._remove_blob(new_path)
            raise

        old_blob_removed = await self._remove_blob(old_path)
        logger.info("Document %s file replaced: %s -> %s", document_id, old_path, new_path)
        return UpdateResult(document=await self._view(guideline), old_blob_removed=old_blob_removed)

    async def reassign_category(self, owner: str, document_id: uuid.UUID, category: Optional[str]) -> DocumentView:
        """Move one document to another category (non-empty, bounded length)."""
        value = validate_category(category)
        guideline = await self._get_owned(owner, document_id)
        await self.documents.update(guideline, {"category": value})
        return await self._view(guideline)

    async def rename_category(self, owner: str, old: str, new: Optional[str]) -> int:
        """
        Rename a category across all of the owner's documents.

        Returns:
            Number of documents moved.
        """
        value = validate_category(new)
        moved = await self.documents.rename_category(owner, old, value)
        logger.info("Category '%s' renamed to '%s' for %s (%d documents)", old, value, owner, moved)
        return moved

    # ── Delete ────────────────────────────────────────────────────────────

    async def delete_document(self, owner: str, document_id: uuid.UUID) -> DeleteResult:
        """
        Remove a document.

        The blob removal is attempted first and may fail (logged, reported
        as blob_removed=False); the row is deleted regardless, then the
        cached counter is decremented (never below zero).
        """
        guideline = await self._get_owned(owner, document_id)
        blob_removed = await self._remove_blob(guideline.file_path)
        await self.documents.delete(guideline)
        upload_count = await self.profiles.adjust_upload_count(owner, -1)
        logger.info("Document %s deleted for %s (blob removed: %s)", document_id, owner, blob_removed)
        return DeleteResult(document_id=document_id, blob_removed=blob_removed, upload_count=upload_count)

    # ── Maintenance ───────────────────────────────────────────────────────

    async def reconcile_upload_count(self, owner: str) -> int:
        """Rewrite profiles.upload_count from the authoritative row count."""
        actual = await self.documents.count_for_owner(owner)
        profile = await self.profiles.get_or_create(owner)
        if profile.upload_count != actual:
            logger.warning(
                "upload_count drift for %s: cached %d, actual %d",
                owner, profile.upload_count, actual,
            )
        return await self.profiles.set_upload_count(owner, actual)
