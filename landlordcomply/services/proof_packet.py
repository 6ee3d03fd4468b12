"""
Proof Packet Export

Bundles everything a landlord needs to show compliance into one ZIP:

    00_CASE_SUMMARY.txt
    01_LEGAL_CITATIONS.txt
    02_AUDIT_LOG.txt
    03_Notice_Letter_v<N>.pdf / 04_Itemized_Statement_v<N>.pdf
    evidence/<NN>_<type>_<name>
    05_DEDUCTIONS_SUMMARY.txt

Both document types must have been generated first.
"""

import io
import logging
import re
import zipfile
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from landlordcomply.core.errors import MissingPreconditionError
from landlordcomply.core.utc import to_utc, utc_now
from landlordcomply.models.models import AuditEvent, Case, DocumentType
from landlordcomply.services.audit import list_audit_events, record_audit_event
from landlordcomply.services.calculations import calculate_refund_amount, sum_deductions
from landlordcomply.services.storage import get_file_store, safe_filename

logger = logging.getLogger(__name__)

RULE = "=" * 80
THIN_RULE = "-" * 80

DOCUMENT_FILE_PREFIX = {
    DocumentType.NOTICE_LETTER.value: "03_Notice_Letter",
    DocumentType.ITEMIZED_STATEMENT.value: "04_Itemized_Statement",
}


def _d(dt: Optional[datetime]) -> str:
    return f"{to_utc(dt):%m/%d/%Y}" if dt else "Unknown"


def _ts(dt: datetime) -> str:
    return f"{to_utc(dt):%m/%d/%Y %H:%M:%S} UTC"


def _header(title: str) -> list[str]:
    return [RULE, title.center(80).rstrip(), RULE, ""]


def _section(title: str) -> list[str]:
    return ["", THIN_RULE, title, THIN_RULE]


def _address(case: Case) -> str:
    prop = case.rental_property
    return f"{prop.address}, Unit {prop.unit}" if prop.unit else prop.address


def case_summary_text(case: Case, now: datetime) -> str:
    prop = case.rental_property
    primary = case.primary_tenant
    interest = case.deposit_interest or 0.0
    total = sum_deductions(case.deductions)
    refund = calculate_refund_amount(case.deposit_amount, interest, total)

    lines = _header("SECURITY DEPOSIT PROOF PACKET")
    lines += [f"Generated: {_ts(now)}", f"Case ID: {case.id}"]

    lines += _section("PROPERTY INFORMATION")
    lines += [
        f"Address: {_address(case)}",
        f"City: {prop.city}, {prop.state} {prop.zip_code}",
        f"Jurisdiction: {prop.jurisdiction.display_name}",
    ]

    lines += _section("TENANT INFORMATION")
    lines += [
        f"Tenant(s): {', '.join(t.name for t in case.tenants)}",
        f"Primary Contact: {primary.name if primary else 'N/A'}",
        f"Email: {(primary.email if primary else None) or 'N/A'}",
        f"Phone: {(primary.phone if primary else None) or 'N/A'}",
        f"Forwarding Address: {(primary.forwarding_address if primary else None) or 'Not provided'}",
    ]

    lines += _section("LEASE & DEPOSIT DETAILS")
    lines += [
        f"Lease Start Date: {_d(case.lease_start_date)}",
        f"Lease End Date: {_d(case.lease_end_date)}",
        f"Move-Out Date: {_d(case.move_out_date)}",
        f"Return Deadline: {_d(case.due_date)}",
        "",
        f"Security Deposit: ${case.deposit_amount:.2f}",
        f"Interest Accrued: ${interest:.2f}",
        f"Total Deductions: ${total:.2f}",
        f"{'Refund Due' if refund >= 0 else 'Amount Owed'}: ${abs(refund):.2f}",
    ]

    lines += _section("DELIVERY INFORMATION")
    lines.append(f"Status: {case.status}")
    lines.append(f"Sent Date: {_d(case.sent_date)}" if case.sent_date else "Not yet sent")
    if case.delivery_method:
        lines.append(f"Delivery Method: {case.delivery_method.replace('_', ' ')}")
    if case.tracking_number:
        lines.append(f"Tracking Number: {case.tracking_number}")
    if case.delivery_address:
        lines.append(f"Delivery Address: {case.delivery_address}")

    lines += _section("CASE STATUS")
    lines.append(f"Current Status: {case.status}")
    if case.closed_at:
        lines.append(f"Closed: {_d(case.closed_at)}")
    if case.closed_reason:
        lines.append(f"Reason: {case.closed_reason}")

    lines += ["", RULE, "This proof packet was generated by LandlordComply.", RULE]
    return "\n".join(lines)


def citations_text(case: Case) -> str:
    rule_set = case.rule_set
    lines = _header("LEGAL CITATIONS & REFERENCES")
    lines += [
        f"Jurisdiction: {case.rental_property.jurisdiction.display_name}",
        f"Rule Set Version: {rule_set.version}",
        f"Effective Date: {_d(rule_set.effective_date)}",
        f"Last Verified: {_d(rule_set.verified_at)}",
    ]

    lines += _section("APPLICABLE RULES")
    lines.append(f"Return Deadline: {rule_set.return_deadline_days} days")
    if rule_set.return_deadline_description:
        lines.append(rule_set.return_deadline_description)
    lines += ["", f"Interest Required: {'Yes' if rule_set.interest_required else 'No'}"]
    if rule_set.interest_rate:
        lines.append(f"Interest Rate: {rule_set.interest_rate * 100:g}%")
    lines += ["", f"Itemization Required: {'Yes' if rule_set.itemization_required else 'No'}"]
    if rule_set.itemization_requirements:
        lines.append(rule_set.itemization_requirements)
    lines += ["", "Allowed Delivery Methods:"]
    lines += [f"  - {m.replace('_', ' ')}" for m in rule_set.allowed_delivery_methods_list]

    lines += _section("STATUTORY CITATIONS")
    for citation in rule_set.citations:
        lines += ["", citation.code]
        if citation.title:
            lines.append(citation.title)
        if citation.url:
            lines.append(f"Source: {citation.url}")
        if citation.excerpt:
            lines += ["", "Relevant excerpt:", f'"{citation.excerpt}"']
        lines.append("---")

    if rule_set.penalties:
        lines += _section("PENALTY PROVISIONS")
        for penalty in rule_set.penalties:
            lines += ["", f"Condition: {penalty.condition}", f"Penalty: {penalty.penalty}"]
            if penalty.description:
                lines.append(penalty.description)
            lines.append("---")

    lines += [
        "",
        RULE,
        "DISCLAIMER: This document is for informational purposes only and does not",
        "constitute legal advice. Consult an attorney for specific legal questions.",
        RULE,
    ]
    return "\n".join(lines)


def audit_log_text(case: Case, events: list[AuditEvent], now: datetime) -> str:
    lines = _header("AUDIT LOG")
    lines += [
        f"Case ID: {case.id}",
        f"Generated: {_ts(now)}",
        "",
        "This log records all significant actions taken on this case.",
    ]

    lines += _section("EVENT HISTORY")
    for event in events:
        lines += ["", f"[{_ts(event.timestamp)}] {event.action.upper()}", event.description]
    if not events:
        lines += ["", "No audit events recorded."]

    lines += _section("CHECKLIST STATUS")
    for item in case.checklist_items:
        mark = "[X]" if item.completed else "[ ]"
        done = f" (completed {_d(item.completed_at)})" if item.completed_at else ""
        lines.append(f"{mark} {item.label}{done}")

    lines += ["", RULE, "End of Audit Log", RULE]
    return "\n".join(lines)


def deductions_summary_text(case: Case) -> str:
    interest = case.deposit_interest or 0.0
    subtotal = case.deposit_amount + interest
    total = sum_deductions(case.deductions)
    refund = calculate_refund_amount(case.deposit_amount, interest, total)

    lines = _header("ITEMIZED DEDUCTIONS SUMMARY")
    lines += [f"Case ID: {case.id}", f"Property: {_address(case)}"]

    lines += _section("DEDUCTIONS")
    if not case.deductions:
        lines += ["", "No deductions claimed. Full deposit being returned."]
    for index, d in enumerate(case.deductions, start=1):
        lines += ["", f"{index}. {d.description}", f"   Category: {d.category}", f"   Amount: ${d.amount:.2f}"]
        if d.damage_type:
            lines.append(f"   Damage Type: {d.damage_type.replace('_', ' ')}")
        if d.item_age:
            lines.append(f"   Item Age: {d.item_age} months")
        if d.risk_level:
            lines.append(f"   Risk Assessment: {d.risk_level}")
        lines.append("   Evidence: Attached" if d.has_evidence else "   Evidence: None attached")
        if d.ai_generated:
            lines.append("   (Description improved with AI assistance)")

    lines += _section("SUMMARY")
    lines += [
        f"Security Deposit:     ${case.deposit_amount:.2f}",
        f"Interest:             ${interest:.2f}",
        f"Subtotal:             ${subtotal:.2f}",
        f"Less Deductions:     -${total:.2f}",
        f"{'REFUND DUE' if refund >= 0 else 'AMOUNT OWED'}:           ${abs(refund):.2f}",
        "",
        RULE,
    ]
    return "\n".join(lines)


def packet_filename(case: Case, now: datetime) -> str:
    address = re.sub(r"[^a-zA-Z0-9]", "_", case.rental_property.address)[:30]
    return f"ProofPacket_{address}_{now:%Y-%m-%d}.zip"


async def build_proof_packet(
    session: AsyncSession,
    case: Case,
    user_id: str,
    now: Optional[datetime] = None,
) -> tuple[str, bytes]:
    """
    Build the ZIP for a case and record the export.

    Raises MissingPreconditionError (with the missing types) unless both a
    notice letter and an itemized statement exist. Stored files that have
    gone missing are logged and left out rather than failing the export.

    Returns (filename, zip bytes).
    """
    now = now or utc_now()
    types = {d.type for d in case.documents}
    missing = {
        "notice_letter": DocumentType.NOTICE_LETTER.value not in types,
        "itemized_statement": DocumentType.ITEMIZED_STATEMENT.value not in types,
    }
    if any(missing.values()):
        raise MissingPreconditionError(
            "Cannot generate proof packet - missing required documents", missing=missing
        )

    events = await list_audit_events(session, case.id)
    store = get_file_store()

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as archive:
        archive.writestr("00_CASE_SUMMARY.txt", case_summary_text(case, now))
        archive.writestr("01_LEGAL_CITATIONS.txt", citations_text(case))
        archive.writestr("02_AUDIT_LOG.txt", audit_log_text(case, events, now))

        for document in sorted(case.documents, key=lambda d: (DOCUMENT_FILE_PREFIX[d.type], d.version)):
            try:
                data = store.read(document.file_path)
            except FileNotFoundError:
                logger.error("Document %s missing from storage at %s", document.id, document.file_path)
                continue
            archive.writestr(f"{DOCUMENT_FILE_PREFIX[document.type]}_v{document.version}.pdf", data)

        for index, attachment in enumerate(case.attachments, start=1):
            try:
                data = store.read(attachment.file_path)
            except FileNotFoundError:
                logger.error("Attachment %s missing from storage at %s", attachment.id, attachment.file_path)
                continue
            kind = attachment.type.lower().replace("_", "-")
            archive.writestr(f"evidence/{index:02d}_{kind}_{safe_filename(attachment.name)}", data)

        archive.writestr("05_DEDUCTIONS_SUMMARY.txt", deductions_summary_text(case))

    await record_audit_event(
        session,
        case.id,
        "proof_packet_exported",
        "Proof packet ZIP exported",
        user_id=user_id,
        metadata={"document_count": len(case.documents), "attachment_count": len(case.attachments)},
    )
    logger.info("Exported proof packet for case %s", case.id)
    return packet_filename(case, now), buffer.getvalue()
