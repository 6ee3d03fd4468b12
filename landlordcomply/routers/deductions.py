"""
Deductions API
Itemized charges against a deposit, plus the AI writing assistant and the
risk assessment for a single deduction.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from landlordcomply.core.database import get_db
from landlordcomply.core.security import require_user
from landlordcomply.models.models import DeductionCategory, RiskLevel, User
from landlordcomply.services.ai_assist import GeminiAssistant, get_ai_assistant
from landlordcomply.services.cases import deduction_to_dict, get_owned_case
from landlordcomply.services.calculations import sum_deductions
from landlordcomply.services.deductions import (
    add_deduction,
    deduction_context,
    delete_deduction,
    get_case_deduction,
    get_owned_deduction,
    improve_deduction,
    proration_preview,
    update_deduction,
)

router = APIRouter(tags=["Deductions"])


class DeductionCreate(BaseModel):
    description: str = Field(..., min_length=1)
    category: DeductionCategory = DeductionCategory.OTHER
    amount: float = Field(..., ge=0)
    notes: Optional[str] = None
    attachment_ids: list[str] = []
    risk_level: Optional[RiskLevel] = None
    item_age: Optional[int] = Field(None, ge=0, description="Months")
    damage_type: Optional[str] = None
    has_evidence: bool = False


class DeductionUpdate(BaseModel):
    description: Optional[str] = Field(None, min_length=1)
    category: Optional[DeductionCategory] = None
    amount: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None
    attachment_ids: Optional[list[str]] = None
    risk_level: Optional[RiskLevel] = None
    item_age: Optional[int] = Field(None, ge=0)
    damage_type: Optional[str] = None
    has_evidence: Optional[bool] = None


class ImproveRequest(BaseModel):
    """Optional context the landlord adds for the rewrite."""
    what_happened: Optional[str] = None
    where_located: Optional[str] = None
    why_beyond_wear: Optional[str] = None
    invoice_info: Optional[str] = None


class ProrationRequest(BaseModel):
    amount: float = Field(..., ge=0)
    item_age: int = Field(..., ge=0)
    useful_life_months: Optional[int] = Field(None, gt=0)


def _plain(data: dict) -> dict:
    """Enum members to their values for the service layer."""
    return {k: (v.value if isinstance(v, (DeductionCategory, RiskLevel)) else v) for k, v in data.items()}


def _with_proration(deduction, useful_life_months: Optional[int] = None) -> dict:
    data = deduction_to_dict(deduction)
    data["proration"] = proration_preview(deduction.amount, deduction.item_age, useful_life_months)
    return data


@router.get("/api/cases/{case_id}/deductions")
async def get_deductions(
    case_id: str,
    useful_life_months: Optional[int] = Query(None, gt=0),
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await get_owned_case(db, case_id, user.id)
    return {
        "deductions": [_with_proration(d, useful_life_months) for d in case.deductions],
        "total": sum_deductions(case.deductions),
    }


@router.post("/api/cases/{case_id}/deductions", status_code=status.HTTP_201_CREATED)
async def create_deduction(
    case_id: str,
    body: DeductionCreate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await get_owned_case(db, case_id, user.id)
    deduction = await add_deduction(db, case, user.id, _plain(body.model_dump()))
    return _with_proration(deduction)


@router.patch("/api/cases/{case_id}/deductions/{deduction_id}")
async def patch_deduction(
    case_id: str,
    deduction_id: str,
    body: DeductionUpdate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await get_owned_case(db, case_id, user.id)
    deduction = get_case_deduction(case, deduction_id)
    await update_deduction(db, case, deduction, user.id, _plain(body.model_dump(exclude_unset=True)))
    return _with_proration(deduction)


@router.delete("/api/cases/{case_id}/deductions/{deduction_id}")
async def remove_deduction(
    case_id: str,
    deduction_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await get_owned_case(db, case_id, user.id)
    deduction = get_case_deduction(case, deduction_id)
    await delete_deduction(db, case, deduction, user.id)
    return {"success": True}


@router.post("/api/deductions/proration")
async def preview_proration(body: ProrationRequest):
    """Depreciated share of a charge for an item of a given age."""
    return proration_preview(body.amount, body.item_age, body.useful_life_months)


@router.post("/api/deductions/{deduction_id}/improve")
async def improve(
    deduction_id: str,
    body: Optional[ImproveRequest] = None,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    assistant: GeminiAssistant = Depends(get_ai_assistant),
):
    """503 when the AI provider is not configured or fails."""
    deduction = await get_owned_deduction(db, deduction_id, user.id)
    extra = body.model_dump() if body else None
    improved = await improve_deduction(db, deduction, user.id, assistant, extra)
    return {
        "success": True,
        "improved_description": improved.description,
        "reasoning": improved.reasoning,
        "deduction": deduction_to_dict(deduction),
    }


@router.get("/api/deductions/{deduction_id}/risk")
async def risk(
    deduction_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    assistant: GeminiAssistant = Depends(get_ai_assistant),
):
    """AI assessment when configured, rule-based otherwise."""
    deduction = await get_owned_deduction(db, deduction_id, user.id)
    assessment = await assistant.assess_deduction_risk(deduction_context(deduction))
    return assessment.to_dict()
