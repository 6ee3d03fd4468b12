"""
Jurisdiction coverage API.
Public: no landlord identity needed to see what is covered.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from landlordcomply.core.database import get_db
from landlordcomply.services.jurisdictions import (
    jurisdiction_to_dict,
    list_jurisdictions,
    resolve_jurisdiction,
    rule_set_to_dict,
    select_effective_rule_set,
)

router = APIRouter(prefix="/api/jurisdictions", tags=["Jurisdictions"])


@router.get("")
async def get_jurisdictions(
    state: Optional[str] = Query(None, min_length=2, max_length=2),
    city: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """Covered jurisdictions with the rule set currently in force (if any)."""
    results = []
    for jurisdiction in await list_jurisdictions(db, state, city):
        rule_set = select_effective_rule_set(jurisdiction.rule_sets)
        results.append({
            **jurisdiction_to_dict(jurisdiction),
            "rule_set": rule_set_to_dict(rule_set) if rule_set else None,
        })
    return {"jurisdictions": results, "count": len(results)}


@router.get("/lookup")
async def lookup_jurisdiction(
    state: str = Query(..., min_length=2, max_length=2),
    city: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """Resolve a state/city pair; a covered city wins over its state."""
    jurisdiction, rule_set = await resolve_jurisdiction(db, state, city)
    return {
        "jurisdiction": jurisdiction_to_dict(jurisdiction),
        "rule_set": rule_set_to_dict(rule_set),
    }
