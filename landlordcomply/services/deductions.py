"""
Deduction Service

Charged items against the deposit. Every change is audited; the evidence
flag follows the attached files, and a rule-based risk level is filled in
when the landlord does not pick one.
"""

import json
import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from landlordcomply.core.errors import NotFoundError
from landlordcomply.models.models import Case, Deduction, DeductionCategory
from landlordcomply.services.ai_assist import (
    DeductionContext,
    GeminiAssistant,
    ImprovedDeduction,
    assess_deduction_risk_rule_based,
)
from landlordcomply.services.audit import record_audit_event
from landlordcomply.services.calculations import (
    DEFAULT_USEFUL_LIFE_MONTHS,
    apply_proration,
    calculate_proration,
)

logger = logging.getLogger(__name__)

DEDUCTION_FIELDS = (
    "description",
    "category",
    "amount",
    "notes",
    "risk_level",
    "item_age",
    "damage_type",
    "has_evidence",
)


def deduction_context(deduction: Deduction, extra: Optional[dict[str, Any]] = None) -> DeductionContext:
    extra = extra or {}
    return DeductionContext(
        description=deduction.description,
        category=deduction.category,
        amount=deduction.amount,
        item_age=deduction.item_age,
        damage_type=deduction.damage_type,
        has_evidence=deduction.has_evidence,
        what_happened=extra.get("what_happened"),
        where_located=extra.get("where_located"),
        why_beyond_wear=extra.get("why_beyond_wear"),
        invoice_info=extra.get("invoice_info"),
    )


def proration_preview(
    amount: float,
    item_age: Optional[int],
    useful_life_months: Optional[int] = None,
) -> Optional[dict]:
    """Chargeable share after depreciation, or None without an item age."""
    if item_age is None:
        return None
    life = useful_life_months or DEFAULT_USEFUL_LIFE_MONTHS
    return {
        "item_age": item_age,
        "useful_life_months": life,
        "factor": calculate_proration(item_age, life),
        "prorated_amount": apply_proration(amount, item_age, life),
    }


def get_case_deduction(case: Case, deduction_id: str) -> Deduction:
    deduction = next((d for d in case.deductions if d.id == deduction_id), None)
    if deduction is None:
        raise NotFoundError("Deduction not found")
    return deduction


async def add_deduction(
    session: AsyncSession,
    case: Case,
    user_id: str,
    data: dict[str, Any],
) -> Deduction:
    attachment_ids = list(data.get("attachment_ids") or [])
    deduction = Deduction(
        description=data["description"].strip(),
        category=data.get("category") or DeductionCategory.OTHER.value,
        amount=data["amount"],
        notes=data.get("notes"),
        attachment_ids=json.dumps(attachment_ids),
        item_age=data.get("item_age"),
        damage_type=data.get("damage_type"),
        has_evidence=bool(data.get("has_evidence")) or bool(attachment_ids),
        risk_level=data.get("risk_level"),
    )
    if not deduction.risk_level:
        deduction.risk_level = assess_deduction_risk_rule_based(deduction_context(deduction)).risk_level.value

    case.deductions.append(deduction)
    await session.flush()

    await record_audit_event(
        session,
        case.id,
        "deduction_added",
        f"Added deduction: {deduction.description} (${deduction.amount:.2f})",
        user_id=user_id,
        metadata={"deduction_id": deduction.id, "amount": deduction.amount, "category": deduction.category},
    )
    return deduction


async def update_deduction(
    session: AsyncSession,
    case: Case,
    deduction: Deduction,
    user_id: str,
    changes: dict[str, Any],
) -> Deduction:
    """Partial update; replacing attachment ids recomputes the evidence flag."""
    updated = []
    for key in DEDUCTION_FIELDS:
        if key in changes:
            setattr(deduction, key, changes[key])
            updated.append(key)

    if "attachment_ids" in changes:
        attachment_ids = list(changes["attachment_ids"] or [])
        deduction.attachment_ids = json.dumps(attachment_ids)
        if "has_evidence" not in changes:
            deduction.has_evidence = bool(attachment_ids)
        updated.append("attachment_ids")

    await record_audit_event(
        session,
        case.id,
        "deduction_updated",
        f"Updated deduction: {deduction.description}",
        user_id=user_id,
        metadata={"deduction_id": deduction.id, "updated_fields": updated},
    )
    return deduction


async def delete_deduction(
    session: AsyncSession,
    case: Case,
    deduction: Deduction,
    user_id: str,
) -> None:
    case.deductions.remove(deduction)
    await session.flush()
    await record_audit_event(
        session,
        case.id,
        "deduction_deleted",
        f"Deleted deduction: {deduction.description}",
        user_id=user_id,
        metadata={"deduction_id": deduction.id, "amount": deduction.amount},
    )


async def get_owned_deduction(session: AsyncSession, deduction_id: str, user_id: str) -> Deduction:
    result = await session.execute(
        select(Deduction)
        .join(Case, Case.id == Deduction.case_id)
        .where(Deduction.id == deduction_id, Case.user_id == user_id)
    )
    deduction = result.scalars().first()
    if deduction is None:
        raise NotFoundError("Deduction not found")
    return deduction


async def improve_deduction(
    session: AsyncSession,
    deduction: Deduction,
    user_id: str,
    assistant: GeminiAssistant,
    extra: Optional[dict[str, Any]] = None,
) -> ImprovedDeduction:
    """
    Replace the description with the assistant's rewrite.

    The landlord's own wording is kept in original_description the first
    time; later rewrites do not overwrite it.
    """
    previous = deduction.description
    improved = await assistant.improve_deduction_description(deduction_context(deduction, extra))

    if not deduction.ai_generated:
        deduction.original_description = previous
    deduction.description = improved.description
    deduction.ai_generated = True

    await record_audit_event(
        session,
        deduction.case_id,
        "deduction_ai_improved",
        f"AI improved description for: {deduction.category}",
        user_id=user_id,
        metadata={
            "deduction_id": deduction.id,
            "original_description": previous,
            "improved_description": improved.description,
            "reasoning": improved.reasoning,
        },
    )
    logger.info("Deduction %s description rewritten", deduction.id)
    return improved
