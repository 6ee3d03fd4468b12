"""
Start Flow (pre-signup preview)

Anonymous visitors enter an address, state and move-out date and get an
instant deadline preview. The preview is kept as a DraftCase for a week;
an emailed access link brings the visitor back signed in, and completing
the draft turns it into a real Property + Case.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from landlordcomply.core.config import get_settings
from landlordcomply.core.errors import InvalidRequestError, NotFoundError, RateLimitedError
from landlordcomply.core.security import RateLimiter, hash_email, is_valid_email, mask_email
from landlordcomply.core.utc import format_date, to_utc, utc_now
from landlordcomply.models.models import DraftCase, DraftStatus, Jurisdiction, Property, RuleSet, User
from landlordcomply.services.calculations import (
    calculate_days_until_deadline,
    calculate_deadline,
    round_money,
)
from landlordcomply.services.cases import CaseInput, create_case
from landlordcomply.services.jurisdictions import resolve_jurisdiction
from landlordcomply.services.mailer import ResendMailer, access_link_email

logger = logging.getLogger(__name__)


@dataclass
class DraftInput:
    address_raw: str
    state: str
    move_out_date: datetime
    city: Optional[str] = None
    deposit_amount: Optional[float] = None
    utm_source: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_medium: Optional[str] = None


def build_preview_checklist(rule_set: RuleSet) -> list[dict[str, Any]]:
    """Steps shown before signup; conditional ones follow the rule set."""
    checklist = [
        {
            "label": "Complete move-out inspection",
            "required": True,
            "description": "Document property condition with photos/video",
        },
        {
            "label": "Calculate all deductions",
            "required": True,
            "description": "Itemize repairs, cleaning, and damages with costs",
        },
    ]
    if rule_set.itemization_required:
        checklist.append({
            "label": "Prepare itemized statement",
            "required": True,
            "description": rule_set.itemization_requirements or "List each deduction with amount and reason",
        })
    if rule_set.interest_required and rule_set.interest_rate:
        checklist.append({
            "label": "Calculate deposit interest",
            "required": True,
            "description": f"Interest at {rule_set.interest_rate * 100:g}% annually is required",
        })
    if rule_set.receipt_requirement_threshold:
        checklist.append({
            "label": "Gather receipts/invoices",
            "required": True,
            "description": f"Receipts required for repairs over ${rule_set.receipt_requirement_threshold:g}",
        })
    checklist += [
        {
            "label": "Generate notice letter",
            "required": True,
            "description": "Create compliant disposition notice with required language",
        },
        {
            "label": "Send via approved delivery method",
            "required": True,
            "description": f"Allowed: {', '.join(rule_set.allowed_delivery_methods_list)}",
        },
        {
            "label": "Document proof of delivery",
            "required": True,
            "description": "Keep tracking number, certified mail receipt, or delivery confirmation",
        },
    ]
    return checklist


def build_preview(
    jurisdiction: Jurisdiction,
    rule_set: RuleSet,
    move_out_date: datetime,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    due_date = calculate_deadline(move_out_date, rule_set.return_deadline_days)
    return {
        "deadline": {
            "date": format_date(due_date),
            "days_remaining": calculate_days_until_deadline(due_date, now),
            "deadline_days": rule_set.return_deadline_days,
            "description": rule_set.return_deadline_description,
        },
        "jurisdiction": {
            "state": jurisdiction.state,
            "state_code": jurisdiction.state_code,
            "city": jurisdiction.city,
            "coverage_level": jurisdiction.coverage_level,
        },
        "rules": {
            "interest_required": rule_set.interest_required,
            "interest_rate": rule_set.interest_rate,
            "itemization_required": rule_set.itemization_required,
            "max_deposit_months": rule_set.max_deposit_months,
            "allowed_delivery_methods": rule_set.allowed_delivery_methods_list,
        },
        "checklist": build_preview_checklist(rule_set),
        "citations": [{"code": c.code, "title": c.title, "url": c.url} for c in rule_set.citations],
        "penalties": [
            {"condition": p.condition, "penalty": p.penalty, "description": p.description}
            for p in rule_set.penalties
        ],
        "rule_set_version": rule_set.version,
        "last_verified": format_date(rule_set.verified_at),
    }


async def create_draft(
    session: AsyncSession,
    data: DraftInput,
    now: Optional[datetime] = None,
) -> DraftCase:
    """Resolve the jurisdiction, build the preview and store it as a draft. NotFoundError if uncovered."""
    now = now or utc_now()
    jurisdiction, rule_set = await resolve_jurisdiction(session, data.state, data.city, now)
    preview = build_preview(jurisdiction, rule_set, data.move_out_date, now)

    draft = DraftCase(
        address_raw=data.address_raw.strip(),
        city=data.city,
        state=data.state.strip().upper(),
        move_out_date=to_utc(data.move_out_date),
        deposit_amount=data.deposit_amount,
        jurisdiction_id=jurisdiction.id,
        rule_set_id=rule_set.id,
        preview_json=json.dumps(preview),
        status=DraftStatus.PREVIEW_GENERATED.value,
        expires_at=now + timedelta(days=get_settings().draft_expiry_days),
        utm_source=data.utm_source,
        utm_campaign=data.utm_campaign,
        utm_medium=data.utm_medium,
        created_at=now,
    )
    session.add(draft)
    await session.flush()
    logger.info("Draft %s created for %s", draft.id, jurisdiction.display_name)
    return draft


async def get_draft(session: AsyncSession, draft_id: str) -> DraftCase:
    draft = await session.get(DraftCase, draft_id)
    if draft is None:
        raise NotFoundError("Draft not found")
    return draft


def is_expired(draft: DraftCase, now: datetime) -> bool:
    return draft.status == DraftStatus.EXPIRED.value or to_utc(draft.expires_at) < now


async def send_access_email(
    session: AsyncSession,
    draft_id: str,
    email: str,
    limiter: RateLimiter,
    mailer: ResendMailer,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Email the access link for a draft.

    Both rate limits are charged before the draft is looked up: three
    requests per email address and two per draft in each window.
    """
    now = now or utc_now()
    settings = get_settings()
    email = email.strip()

    if not is_valid_email(email):
        raise InvalidRequestError("Invalid email address")

    email_hash = hash_email(email)
    allowed, retry_after = limiter.check(
        f"email:{email_hash}", settings.email_rate_limit_max, settings.email_rate_limit_window
    )
    if not allowed:
        raise RateLimitedError("Too many requests. Please try again later.", retry_after)

    allowed, retry_after = limiter.check(
        f"draft:{draft_id}", settings.draft_rate_limit_max, settings.draft_rate_limit_window
    )
    if not allowed:
        raise RateLimitedError("Maximum resends reached for this session.", retry_after)

    draft = await get_draft(session, draft_id)
    if draft.status == DraftStatus.CLAIMED.value:
        raise InvalidRequestError("This case has already been claimed")
    if is_expired(draft, now):
        raise InvalidRequestError("This draft has expired. Please start a new session.")

    link = f"{settings.app_url.rstrip('/')}/start/complete?draftId={draft.id}"
    jurisdiction_name = draft.preview.get("jurisdiction", {}).get("city") or draft.state
    subject, html, text = access_link_email(link, jurisdiction_name)
    await mailer.send(email.lower(), subject, html, text)

    draft.email = email.lower()
    draft.email_hash = email_hash
    draft.email_sent_at = now
    draft.status = DraftStatus.EMAIL_SENT.value

    logger.info("Access link sent for draft %s", draft.id)
    return {
        "success": True,
        "message": "Check your email for your secure access link",
        "email": mask_email(email),
    }


async def complete_draft(
    session: AsyncSession,
    draft_id: str,
    user: User,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """
    Claim a draft into a Property and an ACTIVE Case for the signed-in user.

    Claiming twice returns the case created the first time. The lease is
    assumed to have started on the first of the month one year before
    move-out and to end on the move-out date; one year of interest is
    charged when the rules require it.
    """
    now = now or utc_now()
    draft = await get_draft(session, draft_id)

    if draft.status == DraftStatus.CLAIMED.value and draft.claimed_case_id:
        return {"success": True, "case_id": draft.claimed_case_id, "already_claimed": True}
    if is_expired(draft, now):
        raise InvalidRequestError("This draft has expired. Please start a new session.")
    if not draft.jurisdiction_id or not draft.rule_set_id:
        raise InvalidRequestError("Draft is missing jurisdiction data")

    rule_set = await session.get(RuleSet, draft.rule_set_id)
    if rule_set is None:
        raise InvalidRequestError("Rule set not found")

    prop = Property(
        user_id=user.id,
        address=draft.address_raw,
        city=draft.city or "",
        state=draft.state,
        zip_code="",
        jurisdiction_id=draft.jurisdiction_id,
        jurisdiction=await session.get(Jurisdiction, draft.jurisdiction_id),
    )
    session.add(prop)
    await session.flush()

    move_out = to_utc(draft.move_out_date)
    deposit = draft.deposit_amount or 0.0
    interest = 0.0
    if rule_set.interest_required and rule_set.interest_rate and deposit:
        interest = round_money(deposit * rule_set.interest_rate)

    case = await create_case(
        session,
        user,
        CaseInput(
            property_id=prop.id,
            lease_start_date=move_out.replace(year=move_out.year - 1, day=1),
            lease_end_date=move_out,
            move_out_date=move_out,
            deposit_amount=deposit,
            deposit_interest=interest,
        ),
        now=now,
        rule_set=rule_set,
        audit_action="beta_case_created_from_draft",
        audit_description="Case created from beta entry flow",
        audit_metadata={
            "draft_id": draft.id,
            "utm_source": draft.utm_source,
            "utm_campaign": draft.utm_campaign,
            "utm_medium": draft.utm_medium,
        },
    )

    draft.status = DraftStatus.CLAIMED.value
    draft.claimed_by_user_id = user.id
    draft.claimed_at = now
    draft.claimed_case_id = case.id

    logger.info("Draft %s claimed as case %s", draft.id, case.id)
    return {"success": True, "case_id": case.id}
