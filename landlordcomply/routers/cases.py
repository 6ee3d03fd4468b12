"""
Case API - core of LandlordComply.
Everything a landlord does happens inside one deposit case.
"""

from datetime import date, datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from landlordcomply.core.database import get_db
from landlordcomply.core.security import require_user
from landlordcomply.core.utc import to_utc
from landlordcomply.models.models import CaseStatus, ForwardingAddressStatus, User
from landlordcomply.services.case_status import (
    StatusChangeRequest,
    mark_ready_to_send,
    transition_case_status,
)
from landlordcomply.services.cases import (
    CaseInput,
    TenantInput,
    case_to_detail,
    case_to_summary,
    create_case,
    delete_case,
    get_case_tenant,
    get_owned_case,
    list_cases,
    tenant_to_dict,
    update_case,
    update_tenant,
)
from landlordcomply.services.exposure import estimate_exposure
from landlordcomply.services.forwarding import forwarding_request_template, update_forwarding_address
from landlordcomply.services.quality_check import run_quality_checks, snapshot_from_case

router = APIRouter(prefix="/api/cases", tags=["Cases"])


# =============================================================================
# Pydantic Models
# =============================================================================

class TenantCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = None
    phone: Optional[str] = None
    forwarding_address: Optional[str] = None


class CaseCreate(BaseModel):
    property_id: str
    lease_start_date: date
    lease_end_date: date
    move_out_date: date
    deposit_amount: float = Field(..., ge=0)
    tenants: list[TenantCreate] = []

    @model_validator(mode="after")
    def check_lease_dates(self):
        if self.lease_end_date < self.lease_start_date:
            raise ValueError("lease_end_date must not be before lease_start_date")
        return self


class CaseUpdate(BaseModel):
    """Plain field edits. Status only changes through /status."""
    deposit_amount: Optional[float] = Field(None, ge=0)
    deposit_interest: Optional[float] = Field(None, ge=0)
    delivery_method: Optional[str] = None
    sent_date: Optional[datetime] = None
    tracking_number: Optional[str] = None
    delivery_address: Optional[str] = None


class StatusUpdate(BaseModel):
    status: CaseStatus
    delivery_method: Optional[str] = None
    sent_date: Optional[datetime] = None
    tracking_number: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_proof_ids: list[str] = []
    closed_reason: Optional[str] = None


class TenantUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    email: Optional[str] = None
    phone: Optional[str] = None


class ForwardingAddressUpdate(BaseModel):
    forwarding_address: Optional[str] = None
    status: Optional[ForwardingAddressStatus] = None
    request_method: Optional[str] = None


# =============================================================================
# Cases
# =============================================================================

@router.get("")
async def get_cases(
    status_filter: Optional[CaseStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    cases = await list_cases(db, user.id, status_filter.value if status_filter else None, limit)
    return {"cases": [case_to_summary(c) for c in cases]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_case(
    body: CaseCreate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await create_case(
        db,
        user,
        CaseInput(
            property_id=body.property_id,
            lease_start_date=to_utc(body.lease_start_date),
            lease_end_date=to_utc(body.lease_end_date),
            move_out_date=to_utc(body.move_out_date),
            deposit_amount=body.deposit_amount,
            tenants=[TenantInput(**t.model_dump()) for t in body.tenants],
        ),
    )
    return await case_to_detail(db, case)


@router.get("/{case_id}")
async def get_case(
    case_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await get_owned_case(db, case_id, user.id)
    return await case_to_detail(db, case)


@router.patch("/{case_id}")
async def patch_case(
    case_id: str,
    body: CaseUpdate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await get_owned_case(db, case_id, user.id)
    await update_case(db, case, user.id, body.model_dump(exclude_unset=True))
    case = await get_owned_case(db, case_id, user.id)
    return await case_to_detail(db, case)


@router.delete("/{case_id}")
async def remove_case(
    case_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await get_owned_case(db, case_id, user.id)
    await delete_case(db, case)
    return {"success": True}


# =============================================================================
# Status workflow
# =============================================================================

@router.patch("/{case_id}/status")
async def change_status(
    case_id: str,
    body: StatusUpdate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Move the case through ACTIVE -> PENDING_SEND -> SENT -> CLOSED.

    400 with `blockers` when export-blocking checklist items are open,
    400 `missing_precondition` when SENT has no delivery method.
    """
    case = await get_owned_case(db, case_id, user.id)
    request = StatusChangeRequest(
        status=body.status.value,
        delivery_method=body.delivery_method,
        sent_date=to_utc(body.sent_date) if body.sent_date else None,
        tracking_number=body.tracking_number,
        delivery_address=body.delivery_address,
        delivery_proof_ids=body.delivery_proof_ids,
        closed_reason=body.closed_reason,
    )
    await transition_case_status(db, case, user.id, request)
    case = await get_owned_case(db, case_id, user.id)
    return {"success": True, "case": await case_to_detail(db, case)}


@router.post("/{case_id}/mark-ready")
async def mark_ready(
    case_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await get_owned_case(db, case_id, user.id)
    ready, issues = await mark_ready_to_send(db, case, user.id)
    return {"ready": ready, "issues": issues, "status": case.status}


@router.get("/{case_id}/quality-check")
async def quality_check(
    case_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await get_owned_case(db, case_id, user.id)
    return run_quality_checks(snapshot_from_case(case)).to_dict()


@router.get("/{case_id}/exposure")
async def exposure(
    case_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await get_owned_case(db, case_id, user.id)
    report = estimate_exposure(snapshot_from_case(case), case.rule_set.penalties, case.rule_set.citations)
    return report.to_dict()


# =============================================================================
# Tenants
# =============================================================================

@router.patch("/{case_id}/tenants/{tenant_id}")
async def patch_tenant(
    case_id: str,
    tenant_id: str,
    body: TenantUpdate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await get_owned_case(db, case_id, user.id)
    tenant = get_case_tenant(case, tenant_id)
    await update_tenant(db, case, tenant, user.id, body.model_dump(exclude_unset=True))
    return tenant_to_dict(tenant)


@router.patch("/{case_id}/tenants/{tenant_id}/forwarding-address")
async def patch_forwarding_address(
    case_id: str,
    tenant_id: str,
    body: ForwardingAddressUpdate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await get_owned_case(db, case_id, user.id)
    tenant = get_case_tenant(case, tenant_id)
    fields = body.model_fields_set
    await update_forwarding_address(
        db,
        case,
        tenant,
        user.id,
        forwarding_address=body.forwarding_address,
        address_given="forwarding_address" in fields,
        status=body.status.value if body.status else None,
        request_method=body.request_method,
    )
    return {"success": True, "tenant": tenant_to_dict(tenant)}


@router.get("/{case_id}/tenants/{tenant_id}/forwarding-address/template")
async def forwarding_address_template(
    case_id: str,
    tenant_id: str,
    format: Literal["email", "letter"] = "email",
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await get_owned_case(db, case_id, user.id)
    tenant = get_case_tenant(case, tenant_id)
    return forwarding_request_template(case, tenant, user, format)
