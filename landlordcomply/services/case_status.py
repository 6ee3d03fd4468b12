"""
Case Status State Machine

    ACTIVE -> PENDING_SEND -> SENT -> CLOSED
      |  ^________|  |                 ^
      |______________|_________________|

CLOSED is terminal. Moving into PENDING_SEND or SENT is gated on the
export-blocking checklist items; SENT additionally needs a delivery method.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from landlordcomply.core.errors import (
    BlockedError,
    InvalidTransitionError,
    MissingPreconditionError,
)
from landlordcomply.core.utc import utc_now
from landlordcomply.models.models import Case, CaseStatus, ChecklistItem, DocumentType
from landlordcomply.services.audit import record_audit_event

logger = logging.getLogger(__name__)


VALID_TRANSITIONS: dict[CaseStatus, frozenset[CaseStatus]] = {
    CaseStatus.ACTIVE: frozenset({CaseStatus.PENDING_SEND, CaseStatus.SENT, CaseStatus.CLOSED}),
    CaseStatus.PENDING_SEND: frozenset({CaseStatus.ACTIVE, CaseStatus.SENT, CaseStatus.CLOSED}),
    CaseStatus.SENT: frozenset({CaseStatus.CLOSED}),
    CaseStatus.CLOSED: frozenset(),
}

# Checklist labels completed by the send itself; never blockers for SENT.
SEND_COMPLETED_LABELS = ("send to tenant", "record proof of delivery", "delivery method")

GATED_STATUSES = frozenset({CaseStatus.PENDING_SEND, CaseStatus.SENT})


@dataclass
class StatusChangeRequest:
    status: str
    delivery_method: Optional[str] = None
    sent_date: Optional[datetime] = None
    tracking_number: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_proof_ids: list[str] = field(default_factory=list)
    closed_reason: Optional[str] = None


def _coerce_status(value) -> Optional[CaseStatus]:
    try:
        return CaseStatus(value)
    except ValueError:
        return None


def is_send_completed_label(label: str) -> bool:
    lowered = label.lower()
    return any(token in lowered for token in SEND_COMPLETED_LABELS)


def open_blockers(items: Iterable[ChecklistItem]) -> list[ChecklistItem]:
    """Checklist items that block export and are not yet done."""
    return [item for item in items if item.blocks_export and not item.completed]


def validate_transition(
    current: str,
    requested: str,
    blocker_labels: Iterable[str] = (),
    delivery_method: Optional[str] = None,
) -> CaseStatus:
    """
    Check a status move against the transition table and its preconditions.

    Returns the requested status as a CaseStatus. Raises
    InvalidTransitionError, BlockedError or MissingPreconditionError,
    checked in that order.
    """
    current_status = _coerce_status(current)
    requested_status = _coerce_status(requested)

    if (
        current_status is None
        or requested_status is None
        or requested_status not in VALID_TRANSITIONS[current_status]
    ):
        raise InvalidTransitionError(str(current), str(requested))

    if requested_status in GATED_STATUSES:
        labels = list(blocker_labels)
        if requested_status == CaseStatus.SENT:
            labels = [label for label in labels if not is_send_completed_label(label)]
        if labels:
            raise BlockedError(labels)

    if requested_status == CaseStatus.SENT and not (delivery_method and delivery_method.strip()):
        raise MissingPreconditionError("Delivery method is required when marking as sent")

    return requested_status


def _audit_description(new_status: CaseStatus, request: StatusChangeRequest) -> str:
    if new_status == CaseStatus.PENDING_SEND:
        return "Case marked as ready to send"
    if new_status == CaseStatus.SENT:
        description = f"Notice sent via {request.delivery_method}"
        if request.tracking_number:
            description += f" (Tracking: {request.tracking_number})"
        if request.delivery_address:
            description += f" to {request.delivery_address}"
        return description
    if new_status == CaseStatus.CLOSED:
        return f"Case closed: {request.closed_reason}" if request.closed_reason else "Case closed"
    return f"Status changed to {new_status.value}"


async def transition_case_status(
    session: AsyncSession,
    case: Case,
    user_id: Optional[str],
    request: StatusChangeRequest,
) -> Case:
    """
    Apply a validated status change to a loaded case.

    Stamps delivery / closure fields, completes the send-related checklist
    items on SENT and appends one audit event. The caller's session commits
    everything together.
    """
    previous = case.status
    blockers = [item.label for item in open_blockers(case.checklist_items)]
    new_status = validate_transition(previous, request.status, blockers, request.delivery_method)
    now = utc_now()

    case.status = new_status.value

    if new_status == CaseStatus.SENT:
        case.delivery_method = request.delivery_method
        case.sent_date = request.sent_date or now
        if request.tracking_number:
            case.tracking_number = request.tracking_number
        if request.delivery_address:
            case.delivery_address = request.delivery_address
        if request.delivery_proof_ids:
            case.delivery_proof_ids = json.dumps(request.delivery_proof_ids)

        for item in case.checklist_items:
            if is_send_completed_label(item.label) and not item.completed:
                item.completed = True
                item.completed_at = now

    if new_status == CaseStatus.CLOSED:
        case.closed_at = now
        if request.closed_reason:
            case.closed_reason = request.closed_reason

    await record_audit_event(
        session,
        case.id,
        action=f"status_{new_status.value.lower()}",
        description=_audit_description(new_status, request),
        user_id=user_id,
        metadata={
            "previous_status": previous,
            "new_status": new_status.value,
            "delivery_method": request.delivery_method,
            "tracking_number": request.tracking_number,
            "delivery_address": request.delivery_address,
            "delivery_proof_ids": request.delivery_proof_ids or None,
            "closed_reason": request.closed_reason,
        },
    )
    logger.info("Case %s: %s -> %s", case.id, previous, new_status.value)
    return case


def readiness_issues(case: Case) -> list[str]:
    """What stands between a case and PENDING_SEND."""
    doc_types = {doc.type for doc in case.documents}
    issues = []
    if DocumentType.NOTICE_LETTER.value not in doc_types:
        issues.append("Notice letter has not been generated")
    if DocumentType.ITEMIZED_STATEMENT.value not in doc_types:
        issues.append("Itemized statement has not been generated")
    blockers = open_blockers(case.checklist_items)
    if blockers:
        issues.append(f"{len(blockers)} required checklist item(s) incomplete")
    return issues


async def mark_ready_to_send(
    session: AsyncSession,
    case: Case,
    user_id: Optional[str],
) -> tuple[bool, list[str]]:
    """
    Move ACTIVE -> PENDING_SEND if nothing is outstanding.

    Returns (ready, issues); when issues remain the case is left untouched.
    """
    issues = readiness_issues(case)
    if issues:
        return False, issues

    await transition_case_status(
        session, case, user_id, StatusChangeRequest(status=CaseStatus.PENDING_SEND.value)
    )
    return True, []
