"""In-app feedback and the public contact form."""

from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from landlordcomply.core.database import get_db
from landlordcomply.core.security import get_request_user_id, require_user
from landlordcomply.models.models import FeedbackCategory, FeedbackType, User
from landlordcomply.services.feedback import (
    feedback_to_dict,
    list_feedback,
    submit_contact,
    submit_feedback,
)

router = APIRouter(prefix="/api", tags=["Feedback"])


class FeedbackCreate(BaseModel):
    type: FeedbackType
    message: str = Field(..., min_length=1)
    category: Optional[FeedbackCategory] = None
    rating: Optional[int] = Field(None, ge=1, le=5)
    page_url: Optional[str] = Field(None, max_length=500)
    trigger: Optional[str] = Field(None, max_length=50)
    case_id: Optional[str] = Field(None, max_length=36)
    metadata: Optional[dict[str, Any]] = None
    email: Optional[str] = Field(None, max_length=255)


class ContactCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    reason: Optional[str] = Field(None, max_length=20)


@router.post("/feedback", status_code=status.HTTP_201_CREATED)
async def create_feedback(
    body: FeedbackCreate,
    user_id: Optional[str] = Depends(get_request_user_id),
    user_agent: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
):
    """Anyone may send feedback; a signed-in landlord's id is attached when present."""
    feedback = await submit_feedback(
        db,
        body.type.value,
        body.message,
        category=body.category.value if body.category else None,
        rating=body.rating,
        page_url=body.page_url,
        trigger=body.trigger,
        case_id=body.case_id,
        metadata=body.metadata,
        user_id=user_id,
        user_email=body.email,
        user_agent=user_agent,
    )
    return {"success": True, "id": feedback.id}


@router.get("/feedback")
async def get_my_feedback(
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    rows = await list_feedback(db, user.id)
    return {"feedback": [feedback_to_dict(row) for row in rows]}


@router.post("/contact", status_code=status.HTTP_201_CREATED)
async def create_contact(
    body: ContactCreate,
    user_agent: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
):
    feedback = await submit_contact(
        db, body.name, body.email, body.message, reason=body.reason, user_agent=user_agent
    )
    return {"success": True, "id": feedback.id}
