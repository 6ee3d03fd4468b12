"""
Dashboard stats and the deadline radar (overdue cases plus those due in
the next 30 days, for cases still open).
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from landlordcomply.core.utc import format_date, utc_now
from landlordcomply.models.models import Case, CaseStatus, Document, Jurisdiction, Property
from landlordcomply.services.calculations import calculate_days_until_deadline, get_deadline_urgency

OPEN_STATUSES = (CaseStatus.ACTIVE.value, CaseStatus.PENDING_SEND.value)
RADAR_WINDOW_DAYS = 30
RADAR_LIMIT = 10


def radar_entry(case: Case, now: datetime) -> dict:
    days_left = calculate_days_until_deadline(case.due_date, now)
    primary = case.primary_tenant
    prop = case.rental_property
    return {
        "id": case.id,
        "status": case.status,
        "address": prop.full_address,
        "jurisdiction": prop.jurisdiction.display_name,
        "primary_tenant": primary.name if primary else None,
        "due_date": format_date(case.due_date),
        "days_until_due": days_left,
        "is_overdue": days_left < 0,
        "urgency": get_deadline_urgency(days_left),
    }


async def _count(session: AsyncSession, query) -> int:
    return (await session.execute(query)).scalar_one()


async def get_dashboard(session: AsyncSession, user_id: str, now: Optional[datetime] = None) -> dict:
    now = now or utc_now()
    horizon = now + timedelta(days=RADAR_WINDOW_DAYS)
    open_cases = select(Case).where(Case.user_id == user_id, Case.status.in_(OPEN_STATUSES))

    active_cases = await _count(
        session,
        select(func.count(Case.id)).where(Case.user_id == user_id, Case.status.in_(OPEN_STATUSES)),
    )
    total_documents = await _count(
        session,
        select(func.count(Document.id)).join(Case, Case.id == Document.case_id).where(Case.user_id == user_id),
    )
    total_properties = await _count(session, select(func.count(Property.id)).where(Property.user_id == user_id))
    jurisdictions_covered = await _count(
        session, select(func.count(Jurisdiction.id)).where(Jurisdiction.is_active.is_(True))
    )

    overdue = (
        await session.execute(open_cases.where(Case.due_date < now).order_by(Case.due_date.asc()))
    ).scalars().all()
    upcoming = (
        await session.execute(
            open_cases.where(Case.due_date >= now, Case.due_date <= horizon)
            .order_by(Case.due_date.asc())
            .limit(RADAR_LIMIT)
        )
    ).scalars().all()

    return {
        "stats": {
            "active_cases": active_cases,
            "total_documents": total_documents,
            "total_properties": total_properties,
            "upcoming_deadlines": len(upcoming),
            "overdue_count": len(overdue),
            "jurisdictions_covered": jurisdictions_covered,
        },
        "deadline_radar": [radar_entry(c, now) for c in [*overdue, *upcoming]][:RADAR_LIMIT],
    }
