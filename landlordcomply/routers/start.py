"""
Start flow API (pre-signup).

preview and email are anonymous; complete requires the landlord the
access link signed in.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from landlordcomply.core.database import get_db
from landlordcomply.core.security import RateLimiter, get_rate_limiter, require_user
from landlordcomply.core.utc import to_utc
from landlordcomply.models.models import User
from landlordcomply.services.drafts import DraftInput, complete_draft, create_draft, send_access_email
from landlordcomply.services.mailer import ResendMailer, get_mailer

router = APIRouter(prefix="/api/start", tags=["Start"])


class PreviewRequest(BaseModel):
    address_raw: str = Field(..., min_length=1, max_length=255)
    city: Optional[str] = None
    state: str = Field(..., min_length=2, max_length=2)
    move_out_date: date
    deposit_amount: Optional[float] = Field(None, ge=0)
    utm_source: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_medium: Optional[str] = None


class EmailRequest(BaseModel):
    draft_id: str
    email: str = Field(..., min_length=3, max_length=255)


class CompleteRequest(BaseModel):
    draft_id: str


@router.post("/preview")
async def preview(body: PreviewRequest, db: AsyncSession = Depends(get_db)):
    """Instant deadline preview; 404 when the state/city is not covered."""
    data = body.model_dump()
    data["move_out_date"] = to_utc(body.move_out_date)
    draft = await create_draft(db, DraftInput(**data))
    return {"draft_id": draft.id, "preview": draft.preview, "expires_at": draft.expires_at.isoformat()}


@router.post("/email")
async def email_access_link(
    body: EmailRequest,
    db: AsyncSession = Depends(get_db),
    limiter: RateLimiter = Depends(get_rate_limiter),
    mailer: ResendMailer = Depends(get_mailer),
):
    return await send_access_email(db, body.draft_id, body.email, limiter, mailer)


@router.post("/complete")
async def complete(
    body: CompleteRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return await complete_draft(db, body.draft_id, user)
