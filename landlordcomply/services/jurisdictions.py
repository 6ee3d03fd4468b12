"""
Jurisdiction Rule Resolver

Finds the jurisdiction that governs an address and the rule set in force
for it. A city-level jurisdiction overrides its state; rule sets are
versioned by effective date and only the latest one at or before "now"
is live.

Read-only: nothing here writes to the database.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from landlordcomply.core.errors import NotFoundError
from landlordcomply.core.utc import format_date, to_utc, utc_now
from landlordcomply.models.models import Jurisdiction, RuleSet

logger = logging.getLogger(__name__)


def select_effective_rule_set(
    rule_sets: Iterable[RuleSet],
    now: Optional[datetime] = None,
) -> Optional[RuleSet]:
    """Latest rule set whose effective_date is at or before now, else None."""
    now = to_utc(now or utc_now())
    effective = [rs for rs in rule_sets if to_utc(rs.effective_date) <= now]
    if not effective:
        return None
    return max(effective, key=lambda rs: to_utc(rs.effective_date))


async def find_jurisdiction(
    session: AsyncSession,
    state_code: str,
    city: Optional[str] = None,
) -> Optional[Jurisdiction]:
    """
    Best active jurisdiction for a state/city pair.

    Exact city match (case-insensitive) within the state first, then the
    state-level record (city IS NULL).
    """
    state_code = state_code.strip().upper()

    if city and city.strip():
        result = await session.execute(
            select(Jurisdiction).where(
                Jurisdiction.state_code == state_code,
                func.lower(Jurisdiction.city) == city.strip().lower(),
                Jurisdiction.is_active.is_(True),
            )
        )
        jurisdiction = result.scalars().first()
        if jurisdiction:
            return jurisdiction

    result = await session.execute(
        select(Jurisdiction).where(
            Jurisdiction.state_code == state_code,
            Jurisdiction.city.is_(None),
            Jurisdiction.is_active.is_(True),
        )
    )
    return result.scalars().first()


async def resolve_jurisdiction(
    session: AsyncSession,
    state_code: str,
    city: Optional[str] = None,
    now: Optional[datetime] = None,
) -> tuple[Jurisdiction, RuleSet]:
    """
    Jurisdiction plus its currently effective rule set.

    Raises NotFoundError when no jurisdiction matches, or when the match has
    no rule set in effect yet.
    """
    jurisdiction = await find_jurisdiction(session, state_code, city)
    location = f"{state_code.upper()}{f' / {city}' if city else ''}"

    if jurisdiction is None:
        logger.info("No jurisdiction for %s", location)
        raise NotFoundError(f"We don't have coverage for {location} yet.")

    rule_set = select_effective_rule_set(jurisdiction.rule_sets, now)
    if rule_set is None:
        logger.warning("Jurisdiction %s has no effective rule set", jurisdiction.id)
        raise NotFoundError(f"No rules are in effect for {jurisdiction.display_name} yet.")

    return jurisdiction, rule_set


async def list_jurisdictions(
    session: AsyncSession,
    state_code: Optional[str] = None,
    city: Optional[str] = None,
) -> list[Jurisdiction]:
    """Coverage listing ordered by state, then city (state-level first)."""
    query = select(Jurisdiction)
    if state_code:
        query = query.where(Jurisdiction.state_code == state_code.upper())
    if city:
        query = query.where(func.lower(Jurisdiction.city).contains(city.lower()))
    query = query.order_by(Jurisdiction.state, Jurisdiction.city.is_not(None), Jurisdiction.city)

    result = await session.execute(query)
    return list(result.scalars().all())


# =============================================================================
# Serialization
# =============================================================================

def jurisdiction_to_dict(jurisdiction: Jurisdiction) -> dict:
    return {
        "id": jurisdiction.id,
        "state": jurisdiction.state,
        "state_code": jurisdiction.state_code,
        "city": jurisdiction.city,
        "coverage_level": jurisdiction.coverage_level,
        "is_active": jurisdiction.is_active,
        "display_name": jurisdiction.display_name,
    }


def rule_set_to_dict(rule_set: RuleSet) -> dict:
    return {
        "id": rule_set.id,
        "version": rule_set.version,
        "effective_date": format_date(rule_set.effective_date),
        "verified_at": format_date(rule_set.verified_at),
        "return_deadline_days": rule_set.return_deadline_days,
        "return_deadline_description": rule_set.return_deadline_description,
        "interest_required": rule_set.interest_required,
        "interest_rate": rule_set.interest_rate,
        "interest_rate_source": rule_set.interest_rate_source,
        "itemization_required": rule_set.itemization_required,
        "itemization_requirements": rule_set.itemization_requirements,
        "receipt_requirement_threshold": rule_set.receipt_requirement_threshold,
        "max_deposit_months": rule_set.max_deposit_months,
        "allowed_delivery_methods": rule_set.allowed_delivery_methods_list,
        "citations": [
            {"id": c.id, "code": c.code, "title": c.title, "url": c.url, "excerpt": c.excerpt}
            for c in rule_set.citations
        ],
        "penalties": [
            {"id": p.id, "condition": p.condition, "penalty": p.penalty, "description": p.description}
            for p in rule_set.penalties
        ],
    }
