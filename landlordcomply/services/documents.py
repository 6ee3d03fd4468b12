"""
Document Service

Generated PDFs (notice letter, itemized statement) and uploaded evidence
for a case. Both end up in the local file store with a SHA-256 on the row,
and every write leaves an audit event.
"""

import json
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from landlordcomply.core.errors import NotFoundError
from landlordcomply.core.utc import to_utc, utc_now
from landlordcomply.models.models import Attachment, Case, Document, DocumentType, User
from landlordcomply.services.audit import record_audit_event
from landlordcomply.services.calculations import calculate_refund_amount, sum_deductions
from landlordcomply.services.cases import complete_checklist_label
from landlordcomply.services.pdf import (
    DOCUMENT_CSS,
    DispositionData,
    LineItem,
    html_to_pdf,
    render_itemized_statement_html,
    render_notice_letter_html,
)
from landlordcomply.services.storage import get_file_store, safe_filename, sha256_hex

logger = logging.getLogger(__name__)


DOCUMENT_LABELS = {
    DocumentType.NOTICE_LETTER.value: ("notice-letter", "notice letter", "Generate notice letter"),
    DocumentType.ITEMIZED_STATEMENT.value: (
        "itemized-statement",
        "itemized statement",
        "Generate itemized statement",
    ),
}

ATTACHMENT_TYPES = {"PHOTO", "RECEIPT", "INVOICE", "DELIVERY_PROOF", "OTHER"}


def disposition_data(case: Case, user: User, now: Optional[datetime] = None) -> DispositionData:
    """Collect what either document prints from a fully loaded case."""
    now = now or utc_now()
    prop = case.rental_property
    rule_set = case.rule_set
    tenant = case.primary_tenant
    interest = case.deposit_interest or 0.0
    total = sum_deductions(case.deductions)

    return DispositionData(
        case_id=case.id,
        landlord_name=user.name or "Property Owner",
        tenant_name=tenant.name if tenant else "Tenant",
        property_address=prop.full_address,
        jurisdiction_name=prop.jurisdiction.display_name,
        return_deadline_days=rule_set.return_deadline_days,
        lease_start_date=to_utc(case.lease_start_date),
        lease_end_date=to_utc(case.lease_end_date),
        move_out_date=to_utc(case.move_out_date),
        due_date=to_utc(case.due_date),
        deposit_amount=case.deposit_amount,
        deposit_interest=interest,
        total_deductions=total,
        refund_amount=calculate_refund_amount(case.deposit_amount, interest, total),
        issued_on=now,
        forwarding_address=tenant.forwarding_address if tenant else None,
        deductions=[
            LineItem(description=d.description, category=d.category, amount=d.amount, notes=d.notes)
            for d in case.deductions
        ],
        citations=[(c.code, c.title) for c in rule_set.citations],
        itemization_requirements=rule_set.itemization_requirements,
    )


def render_document(doc_type: str, data: DispositionData) -> bytes:
    if doc_type == DocumentType.NOTICE_LETTER.value:
        html = render_notice_letter_html(data)
    elif doc_type == DocumentType.ITEMIZED_STATEMENT.value:
        html = render_itemized_statement_html(data)
    else:
        raise ValueError(f"Unknown document type: {doc_type}")
    return html_to_pdf(html, DOCUMENT_CSS)


# =============================================================================
# Generated documents
# =============================================================================

async def generate_document(
    session: AsyncSession,
    case: Case,
    user: User,
    doc_type: str,
    now: Optional[datetime] = None,
) -> Document:
    """
    Render, store and record a new version of a case document.

    Versions count up per type starting at 1. The matching checklist item
    is ticked as part of the same write.
    """
    doc_type = DocumentType(doc_type).value
    now = now or utc_now()
    slug, noun, checklist_label = DOCUMENT_LABELS[doc_type]

    pdf_bytes = render_document(doc_type, disposition_data(case, user, now))
    version = max((d.version for d in case.documents if d.type == doc_type), default=0) + 1
    file_name = f"{slug}-{case.id[:8]}-{int(now.timestamp() * 1000)}.pdf"
    file_path = f"{case.user_id}/{case.id}/documents/{file_name}"

    document = Document(
        type=doc_type,
        version=version,
        file_name=file_name,
        file_path=file_path,
        sha256_hash=sha256_hex(pdf_bytes),
        generated_at=now,
        generated_by=user.id,
    )
    case.documents.append(document)
    complete_checklist_label(case, checklist_label)
    await session.flush()

    await record_audit_event(
        session,
        case.id,
        "document_generated",
        f"Generated {noun} (v{version})",
        user_id=user.id,
        metadata={"document_id": document.id, "type": doc_type, "version": version},
    )
    # only after the row and its audit event are flushed
    get_file_store().save(file_path, pdf_bytes)
    logger.info("Generated %s v%d for case %s (%d bytes)", doc_type, version, case.id, len(pdf_bytes))
    return document


def get_case_document(case: Case, document_id: str) -> Document:
    document = next((d for d in case.documents if d.id == document_id), None)
    if document is None:
        raise NotFoundError("Document not found")
    return document


def latest_documents(case: Case) -> dict[str, Document]:
    """Newest version of each document type present on the case."""
    latest: dict[str, Document] = {}
    for document in case.documents:
        current = latest.get(document.type)
        if current is None or document.version > current.version:
            latest[document.type] = document
    return latest


def read_stored_file(file_path: str) -> bytes:
    try:
        return get_file_store().read(file_path)
    except FileNotFoundError as e:
        raise NotFoundError("File not found in storage") from e


# =============================================================================
# Evidence attachments
# =============================================================================

async def add_attachment(
    session: AsyncSession,
    case: Case,
    user_id: str,
    file_name: str,
    content: bytes,
    mime_type: Optional[str] = None,
    attachment_type: str = "OTHER",
    tags: Optional[list[str]] = None,
) -> Attachment:
    attachment_type = attachment_type.upper() if attachment_type.upper() in ATTACHMENT_TYPES else "OTHER"
    name = safe_filename(file_name)
    attachment = Attachment(
        name=file_name or name,
        type=attachment_type,
        file_path="",
        file_size=len(content),
        mime_type=mime_type,
        sha256_hash=sha256_hex(content),
        tags=",".join(t.strip() for t in (tags or []) if t.strip()) or None,
    )
    case.attachments.append(attachment)
    await session.flush()

    attachment.file_path = f"{case.user_id}/{case.id}/attachments/{attachment.id}_{name}"
    await record_audit_event(
        session,
        case.id,
        "attachment_uploaded",
        f"Uploaded {attachment_type.lower().replace('_', ' ')}: {attachment.name}",
        user_id=user_id,
        metadata={"attachment_id": attachment.id, "sha256": attachment.sha256_hash, "size": len(content)},
    )
    get_file_store().save(attachment.file_path, content)
    return attachment


def get_case_attachment(case: Case, attachment_id: str) -> Attachment:
    attachment = next((a for a in case.attachments if a.id == attachment_id), None)
    if attachment is None:
        raise NotFoundError("Attachment not found")
    return attachment


async def delete_attachment(
    session: AsyncSession,
    case: Case,
    attachment: Attachment,
    user_id: str,
) -> Optional[str]:
    """
    Remove the row and unlink it from the case's deductions.

    A deduction that loses its last linked file no longer counts as having
    evidence. Returns the stored path; the caller deletes the file once the
    transaction has committed.
    """
    unlinked = []
    for deduction in case.deductions:
        ids = deduction.attachment_ids_list
        if attachment.id in ids:
            ids.remove(attachment.id)
            deduction.attachment_ids = json.dumps(ids)
            deduction.has_evidence = bool(ids)
            unlinked.append(deduction.id)

    case.attachments.remove(attachment)
    await session.flush()
    await record_audit_event(
        session,
        case.id,
        "attachment_deleted",
        f"Deleted attachment: {attachment.name}",
        user_id=user_id,
        metadata={"attachment_id": attachment.id, "unlinked_deductions": unlinked},
    )
    return attachment.file_path or None
