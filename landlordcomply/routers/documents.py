"""
Documents API
Generated PDFs, evidence uploads and the proof packet export for a case.
"""

from pathlib import Path
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from landlordcomply.core.config import Settings, get_settings
from landlordcomply.core.database import get_db
from landlordcomply.core.security import require_user
from landlordcomply.models.models import DocumentType, User
from landlordcomply.services.cases import attachment_to_dict, document_to_dict, get_owned_case
from landlordcomply.services.documents import (
    add_attachment,
    delete_attachment,
    generate_document,
    get_case_attachment,
    get_case_document,
    read_stored_file,
)
from landlordcomply.services.proof_packet import build_proof_packet
from landlordcomply.services.storage import get_file_store

router = APIRouter(prefix="/api/cases/{case_id}", tags=["Documents"])


class GenerateRequest(BaseModel):
    type: DocumentType


# =============================================================================
# Generated documents
# =============================================================================

@router.get("/documents")
async def get_documents(
    case_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await get_owned_case(db, case_id, user.id)
    documents = sorted(case.documents, key=lambda d: d.generated_at, reverse=True)
    return {"documents": [document_to_dict(d) for d in documents]}


@router.post("/documents/generate", status_code=status.HTTP_201_CREATED)
async def generate(
    case_id: str,
    body: GenerateRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await get_owned_case(db, case_id, user.id)
    document = await generate_document(db, case, user, body.type.value)
    return {"success": True, "document": document_to_dict(document)}


@router.get("/documents/{document_id}/download")
async def download_document(
    case_id: str,
    document_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await get_owned_case(db, case_id, user.id)
    document = get_case_document(case, document_id)
    return Response(
        content=read_stored_file(document.file_path),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{document.file_name}"'},
    )


# =============================================================================
# Evidence
# =============================================================================

@router.get("/attachments")
async def get_attachments(
    case_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await get_owned_case(db, case_id, user.id)
    return {"attachments": [attachment_to_dict(a) for a in case.attachments]}


@router.post("/attachments", status_code=status.HTTP_201_CREATED)
async def upload_attachment(
    case_id: str,
    file: UploadFile = File(...),
    type: str = Form("OTHER"),
    tags: Optional[str] = Form(None, description="Comma-separated"),
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    case = await get_owned_case(db, case_id, user.id)

    extension = Path(file.filename or "").suffix.lstrip(".").lower()
    if extension not in settings.allowed_extensions_set:
        raise HTTPException(status_code=400, detail=f"File type .{extension or '?'} is not allowed")

    content = await file.read()
    if len(content) > settings.max_upload_size_mb * 1024 * 1024:
        raise HTTPException(status_code=413, detail=f"File exceeds {settings.max_upload_size_mb} MB")

    attachment = await add_attachment(
        db,
        case,
        user.id,
        file.filename or "upload",
        content,
        mime_type=file.content_type,
        attachment_type=type,
        tags=tags.split(",") if tags else None,
    )
    return attachment_to_dict(attachment)


@router.get("/attachments/{attachment_id}/download")
async def download_attachment(
    case_id: str,
    attachment_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await get_owned_case(db, case_id, user.id)
    attachment = get_case_attachment(case, attachment_id)
    return Response(
        content=read_stored_file(attachment.file_path),
        media_type=attachment.mime_type or "application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{attachment.name}"'},
    )


@router.delete("/attachments/{attachment_id}")
async def remove_attachment(
    case_id: str,
    attachment_id: str,
    background_tasks: BackgroundTasks,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await get_owned_case(db, case_id, user.id)
    attachment = get_case_attachment(case, attachment_id)
    file_path = await delete_attachment(db, case, attachment, user.id)
    if file_path:
        # runs after the response, once get_db has committed
        background_tasks.add_task(get_file_store().delete, file_path)
    return {"success": True}


# =============================================================================
# Proof packet
# =============================================================================

@router.get("/proof-packet")
async def proof_packet(
    case_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """ZIP export; 400 with `missing` until both documents exist."""
    case = await get_owned_case(db, case_id, user.id)
    filename, data = await build_proof_packet(db, case, user.id)
    return Response(
        content=data,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
