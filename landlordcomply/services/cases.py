"""
Case Service

Properties, cases, tenants and checklist items: creation, ownership-scoped
lookup and serialization. Every lookup filters on the requesting user and
reports someone else's records as not found.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from landlordcomply.core.errors import NotFoundError, UnsupportedJurisdictionError
from landlordcomply.core.utc import format_date, to_utc, utc_now
from landlordcomply.models.models import (
    Attachment,
    AuditEvent,
    Case,
    CaseStatus,
    ChecklistItem,
    Deduction,
    Document,
    ForwardingAddressStatus,
    Property,
    RuleSet,
    Tenant,
    User,
)
from landlordcomply.services.audit import audit_event_to_dict, list_audit_events, record_audit_event
from landlordcomply.services.calculations import (
    calculate_days_until_deadline,
    calculate_deadline,
    calculate_interest,
    calculate_refund_amount,
    format_days_remaining,
    get_deadline_urgency,
    sum_deductions,
)
from landlordcomply.services.jurisdictions import (
    find_jurisdiction,
    jurisdiction_to_dict,
    rule_set_to_dict,
    select_effective_rule_set,
)

logger = logging.getLogger(__name__)


TENANT_INFO_LABEL = "Add tenant information"

# (label, blocks_export)
DEFAULT_CHECKLIST: list[tuple[str, bool]] = [
    ("Review jurisdiction rules", False),
    (TENANT_INFO_LABEL, True),
    ("Calculate deductions", False),
    ("Upload evidence for deductions", False),
    ("Generate itemized statement", True),
    ("Generate notice letter", True),
    ("Send to tenant(s)", False),
    ("Record proof of delivery", False),
]

CASE_UPDATABLE_FIELDS = (
    "deposit_amount",
    "deposit_interest",
    "delivery_method",
    "sent_date",
    "tracking_number",
    "delivery_address",
)


@dataclass
class TenantInput:
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    forwarding_address: Optional[str] = None


@dataclass
class CaseInput:
    property_id: str
    lease_start_date: datetime
    lease_end_date: datetime
    move_out_date: datetime
    deposit_amount: float
    tenants: list[TenantInput] = field(default_factory=list)
    deposit_interest: Optional[float] = None  # overrides the lease-period calculation


def build_default_checklist(tenant_named: bool = False, now: Optional[datetime] = None) -> list[ChecklistItem]:
    """Fresh checklist rows; the tenant item starts completed when a name was given."""
    now = now or utc_now()
    items = []
    for order, (label, blocks) in enumerate(DEFAULT_CHECKLIST, start=1):
        done = tenant_named and label == TENANT_INFO_LABEL
        items.append(ChecklistItem(
            label=label,
            required=True,
            blocks_export=blocks,
            sort_order=order,
            completed=done,
            completed_at=now if done else None,
        ))
    return items


def build_tenants(tenants: list[TenantInput]) -> list[Tenant]:
    """Tenant rows; the first one is primary. A placeholder is used when none are given."""
    if not tenants:
        tenants = [TenantInput(name="Tenant")]
    rows = []
    for index, t in enumerate(tenants):
        status = (
            ForwardingAddressStatus.PROVIDED.value
            if t.forwarding_address
            else ForwardingAddressStatus.NOT_REQUESTED.value
        )
        rows.append(Tenant(
            name=t.name.strip(),
            email=t.email,
            phone=t.phone,
            forwarding_address=t.forwarding_address,
            forwarding_address_status=status,
            is_primary=index == 0,
        ))
    return rows


# =============================================================================
# Properties
# =============================================================================

async def create_property(
    session: AsyncSession,
    user: User,
    address: str,
    city: str,
    state: str,
    zip_code: str = "",
    unit: Optional[str] = None,
) -> Property:
    """Create a property under the jurisdiction that governs it."""
    jurisdiction = await find_jurisdiction(session, state, city)
    if jurisdiction is None:
        raise UnsupportedJurisdictionError(
            f"We don't have coverage for {state.upper()} yet. You can request it.",
        )

    prop = Property(
        user_id=user.id,
        address=address.strip(),
        unit=unit,
        city=city.strip(),
        state=state.strip().upper(),
        zip_code=zip_code.strip(),
        jurisdiction_id=jurisdiction.id,
        jurisdiction=jurisdiction,
    )
    session.add(prop)
    await session.flush()
    logger.info("Created property %s in %s", prop.id, jurisdiction.display_name)
    return prop


async def get_owned_property(session: AsyncSession, property_id: str, user_id: str) -> Property:
    result = await session.execute(
        select(Property).where(Property.id == property_id, Property.user_id == user_id)
    )
    prop = result.scalars().first()
    if prop is None:
        raise NotFoundError("Property not found")
    return prop


async def list_properties(session: AsyncSession, user_id: str) -> list[tuple[Property, int]]:
    """Properties with their case counts, newest first."""
    case_counts = (
        select(Case.property_id, func.count(Case.id).label("case_count"))
        .group_by(Case.property_id)
        .subquery()
    )
    result = await session.execute(
        select(Property, func.coalesce(case_counts.c.case_count, 0))
        .outerjoin(case_counts, case_counts.c.property_id == Property.id)
        .where(Property.user_id == user_id)
        .order_by(Property.created_at.desc())
    )
    return [(row[0], row[1]) for row in result.all()]


def property_to_dict(prop: Property, case_count: Optional[int] = None) -> dict:
    data = {
        "id": prop.id,
        "address": prop.address,
        "unit": prop.unit,
        "city": prop.city,
        "state": prop.state,
        "zip_code": prop.zip_code,
        "full_address": prop.full_address,
        "jurisdiction": jurisdiction_to_dict(prop.jurisdiction),
        "created_at": format_date(prop.created_at),
    }
    if case_count is not None:
        data["case_count"] = case_count
    return data


# =============================================================================
# Cases
# =============================================================================

async def get_owned_case(session: AsyncSession, case_id: str, user_id: str) -> Case:
    """
    Load a case with all of its children, scoped to its owner.

    Pending changes are flushed first so the reload reflects them.
    """
    await session.flush()
    result = await session.execute(
        select(Case)
        .where(Case.id == case_id, Case.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    case = result.scalars().first()
    if case is None:
        raise NotFoundError("Case not found")
    return case


async def create_case(
    session: AsyncSession,
    user: User,
    data: CaseInput,
    now: Optional[datetime] = None,
    rule_set: Optional[RuleSet] = None,
    audit_action: str = "case_created",
    audit_description: str = "Case created",
    audit_metadata: Optional[dict[str, Any]] = None,
) -> Case:
    """
    Open a case on one of the user's properties.

    Uses the jurisdiction's effective rule set unless one is given; the due
    date and (when the rules require it) the deposit interest are computed
    here. Tenants, the default checklist and the creation audit event are
    written in the same session.
    """
    now = now or utc_now()
    prop = await get_owned_property(session, data.property_id, user.id)

    if rule_set is None:
        rule_set = select_effective_rule_set(prop.jurisdiction.rule_sets, now)
    if rule_set is None:
        raise NotFoundError("No rules found for this jurisdiction")

    interest = 0.0
    if data.deposit_interest is not None:
        interest = data.deposit_interest
    elif rule_set.interest_required:
        interest = calculate_interest(
            data.deposit_amount, rule_set.interest_rate, data.lease_start_date, data.lease_end_date
        )

    tenants = build_tenants(data.tenants)
    tenant_named = bool(data.tenants and data.tenants[0].name.strip())

    case = Case(
        user_id=user.id,
        property_id=prop.id,
        rule_set_id=rule_set.id,
        lease_start_date=to_utc(data.lease_start_date),
        lease_end_date=to_utc(data.lease_end_date),
        move_out_date=to_utc(data.move_out_date),
        due_date=calculate_deadline(data.move_out_date, rule_set.return_deadline_days),
        deposit_amount=data.deposit_amount,
        deposit_interest=interest,
        status=CaseStatus.ACTIVE.value,
        tenants=tenants,
        checklist_items=build_default_checklist(tenant_named, now),
    )
    session.add(case)
    await session.flush()

    await record_audit_event(
        session, case.id, audit_action, audit_description, user_id=user.id, metadata=audit_metadata
    )
    logger.info("Created case %s (due %s)", case.id, format_date(case.due_date))
    return await get_owned_case(session, case.id, user.id)


async def list_cases(
    session: AsyncSession,
    user_id: str,
    status: Optional[str] = None,
    limit: int = 50,
) -> list[Case]:
    query = select(Case).where(Case.user_id == user_id)
    if status:
        query = query.where(Case.status == status)
    result = await session.execute(query.order_by(Case.due_date.asc()).limit(limit))
    return list(result.scalars().all())


async def update_case(
    session: AsyncSession,
    case: Case,
    user_id: str,
    changes: dict[str, Any],
) -> Case:
    """Apply plain field edits (never status) and audit which fields changed."""
    applied = {}
    for key in CASE_UPDATABLE_FIELDS:
        if key in changes:
            value = changes[key]
            if key == "sent_date" and value is not None:
                value = to_utc(value)
            setattr(case, key, value)
            applied[key] = value

    if applied:
        await record_audit_event(
            session,
            case.id,
            "case_updated",
            f"Case updated: {', '.join(applied)}",
            user_id=user_id,
            metadata=applied,
        )
    return case


async def delete_case(session: AsyncSession, case: Case) -> None:
    """Remove a case with its children and its audit trail."""
    await session.execute(delete(AuditEvent).where(AuditEvent.case_id == case.id))
    await session.delete(case)
    await session.flush()
    logger.info("Deleted case %s", case.id)


# =============================================================================
# Tenants
# =============================================================================

def get_case_tenant(case: Case, tenant_id: str) -> Tenant:
    tenant = next((t for t in case.tenants if t.id == tenant_id), None)
    if tenant is None:
        raise NotFoundError("Tenant not found")
    return tenant


async def update_tenant(
    session: AsyncSession,
    case: Case,
    tenant: Tenant,
    user_id: str,
    changes: dict[str, Any],
) -> Tenant:
    """Edit tenant contact details; naming the primary tenant ticks the tenant checklist item."""
    for key in ("name", "email", "phone"):
        if key in changes and changes[key] is not None:
            setattr(tenant, key, changes[key].strip() if key == "name" else changes[key])

    if tenant.is_primary and tenant.name.strip():
        for item in case.checklist_items:
            if item.label == TENANT_INFO_LABEL and not item.completed:
                item.completed = True
                item.completed_at = utc_now()

    await record_audit_event(
        session,
        case.id,
        "tenant_updated",
        f"Updated tenant: {tenant.name}",
        user_id=user_id,
        metadata={"tenant_id": tenant.id, "updated_fields": sorted(changes)},
    )
    return tenant


# =============================================================================
# Checklist
# =============================================================================

def get_checklist_item(case: Case, item_id: str) -> ChecklistItem:
    item = next((i for i in case.checklist_items if i.id == item_id), None)
    if item is None:
        raise NotFoundError("Checklist item not found")
    return item


async def add_checklist_item(
    session: AsyncSession,
    case: Case,
    user_id: str,
    label: str,
    blocks_export: bool = False,
) -> ChecklistItem:
    next_order = max((i.sort_order for i in case.checklist_items), default=0) + 1
    item = ChecklistItem(label=label, blocks_export=blocks_export, sort_order=next_order, completed=False)
    case.checklist_items.append(item)
    await session.flush()
    await record_audit_event(
        session, case.id, "checklist_item_added", f"Added checklist item: {label}", user_id=user_id
    )
    return item


async def set_checklist_item_completed(
    session: AsyncSession,
    case: Case,
    item: ChecklistItem,
    user_id: str,
    completed: bool,
) -> ChecklistItem:
    item.completed = completed
    item.completed_at = utc_now() if completed else None
    await record_audit_event(
        session,
        case.id,
        "checklist_item_completed" if completed else "checklist_item_uncompleted",
        f"{'Completed' if completed else 'Uncompleted'}: {item.label}",
        user_id=user_id,
        metadata={"item_id": item.id, "label": item.label},
    )
    return item


async def delete_checklist_item(
    session: AsyncSession,
    case: Case,
    item: ChecklistItem,
    user_id: str,
) -> None:
    case.checklist_items.remove(item)
    await session.flush()
    await record_audit_event(
        session, case.id, "checklist_item_deleted", f"Deleted checklist item: {item.label}", user_id=user_id
    )


def complete_checklist_label(case: Case, label: str) -> bool:
    """Tick the checklist item with this exact label (case-insensitive). True if one changed."""
    for item in case.checklist_items:
        if item.label.lower() == label.lower() and not item.completed:
            item.completed = True
            item.completed_at = utc_now()
            return True
    return False


# =============================================================================
# Serialization
# =============================================================================

def tenant_to_dict(tenant: Tenant) -> dict:
    return {
        "id": tenant.id,
        "name": tenant.name,
        "email": tenant.email,
        "phone": tenant.phone,
        "is_primary": tenant.is_primary,
        "forwarding_address": tenant.forwarding_address,
        "forwarding_address_status": tenant.forwarding_address_status,
        "forwarding_address_requested_at": format_date(tenant.forwarding_address_requested_at),
        "forwarding_address_request_method": tenant.forwarding_address_request_method,
    }


def deduction_to_dict(deduction: Deduction) -> dict:
    return {
        "id": deduction.id,
        "description": deduction.description,
        "category": deduction.category,
        "amount": deduction.amount,
        "notes": deduction.notes,
        "attachment_ids": deduction.attachment_ids_list,
        "risk_level": deduction.risk_level,
        "item_age": deduction.item_age,
        "damage_type": deduction.damage_type,
        "has_evidence": deduction.has_evidence,
        "ai_generated": deduction.ai_generated,
        "original_description": deduction.original_description,
        "created_at": format_date(deduction.created_at),
    }


def document_to_dict(document: Document) -> dict:
    return {
        "id": document.id,
        "type": document.type,
        "version": document.version,
        "file_name": document.file_name,
        "sha256_hash": document.sha256_hash,
        "generated_at": format_date(document.generated_at),
        "generated_by": document.generated_by,
    }


def attachment_to_dict(attachment: Attachment) -> dict:
    return {
        "id": attachment.id,
        "name": attachment.name,
        "type": attachment.type,
        "file_size": attachment.file_size,
        "mime_type": attachment.mime_type,
        "sha256_hash": attachment.sha256_hash,
        "tags": [t for t in (attachment.tags or "").split(",") if t],
        "uploaded_at": format_date(attachment.uploaded_at),
    }


def checklist_item_to_dict(item: ChecklistItem) -> dict:
    return {
        "id": item.id,
        "label": item.label,
        "required": item.required,
        "completed": item.completed,
        "completed_at": format_date(item.completed_at),
        "blocks_export": item.blocks_export,
        "sort_order": item.sort_order,
    }


def case_financials(case: Case, now: Optional[datetime] = None) -> dict:
    """Derived numbers shown with every case."""
    total = sum_deductions(case.deductions)
    days_left = calculate_days_until_deadline(case.due_date, now)
    return {
        "total_deductions": total,
        "refund_amount": calculate_refund_amount(case.deposit_amount, case.deposit_interest or 0.0, total),
        "days_until_deadline": days_left,
        "is_overdue": days_left < 0,
        "urgency": get_deadline_urgency(days_left),
        "days_remaining_label": format_days_remaining(days_left),
    }


def case_to_summary(case: Case, now: Optional[datetime] = None) -> dict:
    primary = case.primary_tenant
    return {
        "id": case.id,
        "status": case.status,
        "property": property_to_dict(case.rental_property),
        "primary_tenant": primary.name if primary else None,
        "move_out_date": format_date(case.move_out_date),
        "due_date": format_date(case.due_date),
        "deposit_amount": case.deposit_amount,
        "deposit_interest": case.deposit_interest,
        "deduction_count": len(case.deductions),
        "document_count": len(case.documents),
        "attachment_count": len(case.attachments),
        **case_financials(case, now),
        "created_at": format_date(case.created_at),
    }


async def case_to_detail(session: AsyncSession, case: Case, now: Optional[datetime] = None) -> dict:
    events = await list_audit_events(session, case.id)
    return {
        **case_to_summary(case, now),
        "lease_start_date": format_date(case.lease_start_date),
        "lease_end_date": format_date(case.lease_end_date),
        "delivery_method": case.delivery_method,
        "sent_date": format_date(case.sent_date),
        "tracking_number": case.tracking_number,
        "delivery_address": case.delivery_address,
        "delivery_proof_ids": case.delivery_proof_ids_list,
        "closed_at": format_date(case.closed_at),
        "closed_reason": case.closed_reason,
        "rule_set": rule_set_to_dict(case.rule_set),
        "tenants": [tenant_to_dict(t) for t in case.tenants],
        "deductions": [deduction_to_dict(d) for d in case.deductions],
        "documents": [document_to_dict(d) for d in case.documents],
        "attachments": [attachment_to_dict(a) for a in case.attachments],
        "checklist": [checklist_item_to_dict(i) for i in case.checklist_items],
        "audit_events": [audit_event_to_dict(e) for e in reversed(events)],
        "updated_at": format_date(case.updated_at),
    }

