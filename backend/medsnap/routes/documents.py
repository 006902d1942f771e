"""
MedSnap Backend — Document Route Handlers
===========================================

What:  The guideline library API: list/search, upload, edit, recategorize,
       delete.
Why:   Entry point for everything the dashboard does with documents.
How:   Extracts form/query/path values, delegates to DocumentCatalog, shapes
       the JSON. Business rules (quota, MIME, blob ordering) live in the
       catalog, not here.
Who:   The dashboard, upload dialog, edit dialog, and category sidebar.

Endpoints:
    GET    /api/documents                   list (sort, category, search)
    GET    /api/documents/categories        distinct categories
    POST   /api/documents/categories/rename move a whole category
    POST   /api/documents                   upload (multipart)
    PATCH  /api/documents/{id}              edit metadata, optionally replace file
    PATCH  /api/documents/{id}/category     reassign one document's category
    DELETE /api/documents/{id}              delete document and blob

Uploads are multipart/form-data: `file` plus title, category, tags (comma
separated), notes, source_url.
"""

import dataclasses
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, Request, Response, UploadFile

from medsnap.dependencies import get_current_user_id, get_document_catalog
from medsnap.schemas.common import ErrorResponse
from medsnap.schemas.document import (
    CategoryRename,
    CategoryRenameResponse,
    CategoryUpdate,
    DocumentCreatedResponse,
    DocumentDeletedResponse,
    DocumentListResponse,
    DocumentResponse,
    DocumentUpdatedResponse,
    parse_metadata,
    parse_update,
    split_tags,
)
from medsnap.services.document_service import (
    DocumentCatalog,
    DocumentView,
    categories,
    filter_documents,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/documents", tags=["Documents"])


def _to_response(view: DocumentView) -> DocumentResponse:
    return DocumentResponse(**dataclasses.asdict(view))


# ══════════════════════════════════════════════════════════════════════════
# Reads
# ══════════════════════════════════════════════════════════════════════════


@router.get(
    "",
    response_model=DocumentListResponse,
    responses={400: {"description": "Invalid sort option", "model": ErrorResponse}},
    summary="List the caller's documents",
)
async def list_documents(
    response: Response,
    sort: str = Query(
        default="created_at_desc",
        description="created_at_desc, created_at_asc, title_asc, or title_desc",
    ),
    category: Optional[str] = Query(default=None, description="Exact category to show"),
    search: Optional[str] = Query(default=None, description="Case-insensitive text search"),
    user_id: str = Depends(get_current_user_id),
    catalog: DocumentCatalog = Depends(get_document_catalog),
) -> DocumentListResponse:
    """
    Every document carries a freshly signed file_url; file_path is the
    stable storage reference. `categories` is computed over the unfiltered
    library so the sidebar does not shrink while searching.
    """
    documents = await catalog.list_documents(user_id, sort=sort)
    visible = filter_documents(documents, category=category, search_term=search)

    response.headers["X-Total-Count"] = str(len(visible))
    response.headers["Cache-Control"] = "private, no-store"

    return DocumentListResponse(
        documents=[_to_response(doc) for doc in visible],
        total_count=len(visible),
        categories=categories(documents),
    )


@router.get(
    "/categories",
    response_model=list[str],
    summary="Distinct categories in the caller's library",
)
async def list_categories(
    user_id: str = Depends(get_current_user_id),
    catalog: DocumentCatalog = Depends(get_document_catalog),
) -> list[str]:
    return categories(await catalog.list_documents(user_id))


@router.post(
    "/categories/rename",
    response_model=CategoryRenameResponse,
    responses={400: {"description": "Invalid category", "model": ErrorResponse}},
    summary="Move every document in one category to another",
)
async def rename_category(
    body: CategoryRename,
    user_id: str = Depends(get_current_user_id),
    catalog: DocumentCatalog = Depends(get_document_catalog),
) -> CategoryRenameResponse:
    moved = await catalog.rename_category(user_id, body.old_category, body.new_category)
    return CategoryRenameResponse(moved=moved)


@router.get(
    "/{document_id}",
    response_model=DocumentResponse,
    responses={404: {"description": "Document not found", "model": ErrorResponse}},
    summary="Get one document with a fresh signed URL",
)
async def get_document(
    document_id: UUID,
    user_id: str = Depends(get_current_user_id),
    catalog: DocumentCatalog = Depends(get_document_catalog),
) -> DocumentResponse:
    return _to_response(await catalog.get_document(user_id, document_id))


# ══════════════════════════════════════════════════════════════════════════
# Writes
# ══════════════════════════════════════════════════════════════════════════


@router.post(
    "",
    status_code=201,
    response_model=DocumentCreatedResponse,
    responses={
        400: {"description": "Invalid metadata or file type", "model": ErrorResponse},
        401: {"description": "No caller identity", "model": ErrorResponse},
        403: {"description": "Free upload limit reached", "model": ErrorResponse},
        500: {"description": "Storage or database failure", "model": ErrorResponse},
    },
    summary="Upload a document",
)
async def create_document(
    file: UploadFile = File(..., description="PDF, image, or Word document"),
    title: str = Form(...),
    category: Optional[str] = Form(default=None),
    tags: Optional[str] = Form(default=None, description="Comma-separated tags"),
    notes: Optional[str] = Form(default=None),
    source_url: Optional[str] = Form(default=None),
    user_id: str = Depends(get_current_user_id),
    catalog: DocumentCatalog = Depends(get_document_catalog),
) -> DocumentCreatedResponse:
    metadata = parse_metadata(
        title=title,
        category=category,
        tags=split_tags(tags),
        notes=notes,
        source_url=source_url,
    )
    try:
        content = await file.read()
        logger.info(
            "Upload from %s: filename=%s, type=%s, size=%d bytes",
            user_id, file.filename or "unknown", file.content_type, len(content),
        )
        result = await catalog.create_document(
            owner=user_id,
            filename=file.filename,
            content_type=file.content_type,
            content=content,
            metadata=metadata,
        )
    finally:
        await file.close()

    return DocumentCreatedResponse(
        document=_to_response(result.document),
        upload_count=result.upload_count,
    )


@router.patch(
    "/{document_id}",
    response_model=DocumentUpdatedResponse,
    responses={
        400: {"description": "Invalid metadata or file type", "model": ErrorResponse},
        404: {"description": "Document not found", "model": ErrorResponse},
    },
    summary="Edit a document, optionally replacing its file",
)
async def update_document(
    document_id: UUID,
    request: Request,
    file: Optional[UploadFile] = File(default=None),
    title: Optional[str] = Form(default=None),
    category: Optional[str] = Form(default=None),
    tags: Optional[str] = Form(default=None, description="Comma-separated tags; empty clears"),
    notes: Optional[str] = Form(default=None, description="Empty clears"),
    source_url: Optional[str] = Form(default=None, description="Empty clears"),
    user_id: str = Depends(get_current_user_id),
    catalog: DocumentCatalog = Depends(get_document_catalog),
) -> DocumentUpdatedResponse:
    # FastAPI hands empty form values over as None; the raw form tells a
    # field sent empty (clear it) apart from one not sent at all (keep it).
    form = await request.form()

    def supplied(name: str, value: Optional[str]) -> Optional[str]:
        if value is None and name in form:
            return ""
        return value

    tags = supplied("tags", tags)
    updates = parse_update(
        title=supplied("title", title),
        category=supplied("category", category),
        tags=split_tags(tags) if tags is not None else None,
        notes=supplied("notes", notes),
        source_url=supplied("source_url", source_url),
    )

    if file is None:
        result = await catalog.update_document(user_id, document_id, updates)
    else:
        try:
            content = await file.read()
            result = await catalog.update_document(
                user_id,
                document_id,
                updates,
                filename=file.filename,
                content_type=file.content_type,
                content=content,
            )
        finally:
            await file.close()

    return DocumentUpdatedResponse(
        document=_to_response(result.document),
        old_blob_removed=result.old_blob_removed,
    )


@router.patch(
    "/{document_id}/category",
    response_model=DocumentResponse,
    responses={
        400: {"description": "Empty or too long category", "model": ErrorResponse},
        404: {"description": "Document not found", "model": ErrorResponse},
    },
    summary="Move one document to another category",
)
async def reassign_category(
    document_id: UUID,
    body: CategoryUpdate,
    user_id: str = Depends(get_current_user_id),
    catalog: DocumentCatalog = Depends(get_document_catalog),
) -> DocumentResponse:
    return _to_response(await catalog.reassign_category(user_id, document_id, body.category))


@router.delete(
    "/{document_id}",
    response_model=DocumentDeletedResponse,
    responses={404: {"description": "Document not found", "model": ErrorResponse}},
    summary="Delete a document and its file",
)
async def delete_document(
    document_id: UUID,
    user_id: str = Depends(get_current_user_id),
    catalog: DocumentCatalog = Depends(get_document_catalog),
) -> DocumentDeletedResponse:
    """
    The row is removed even if the file could not be; blob_removed=false
    tells the client the file is still in storage.
    """
    result = await catalog.delete_document(user_id, document_id)
    return DocumentDeletedResponse(
        id=result.document_id,
        blob_removed=result.blob_removed,
        upload_count=result.upload_count,
    )
