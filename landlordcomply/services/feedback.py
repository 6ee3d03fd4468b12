"""
Product feedback and the public contact form.

Both land in the feedback table; contact messages are stored with type
CONTACT and the sender's details folded into the message and metadata.
"""

import json
import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from landlordcomply.core.errors import InvalidRequestError
from landlordcomply.core.security import is_valid_email
from landlordcomply.core.utc import format_date, utc_now
from landlordcomply.models.models import Feedback, FeedbackCategory, FeedbackType

logger = logging.getLogger(__name__)

MAX_CONTACT_MESSAGE_LENGTH = 2000

# contact-form reason -> stored category
CONTACT_REASON_CATEGORIES: dict[str, Optional[str]] = {
    "general": None,
    "bug": FeedbackCategory.UI_UX.value,
    "feature": FeedbackCategory.OTHER.value,
    "support": FeedbackCategory.WORKFLOW.value,
    "partnership": FeedbackCategory.OTHER.value,
}


async def submit_feedback(
    session: AsyncSession,
    feedback_type: str,
    message: str,
    category: Optional[str] = None,
    rating: Optional[int] = None,
    page_url: Optional[str] = None,
    trigger: Optional[str] = None,
    case_id: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
    user_id: Optional[str] = None,
    user_email: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Feedback:
    feedback = Feedback(
        type=feedback_type,
        category=category,
        message=message,
        rating=rating,
        page_url=page_url,
        trigger=trigger,
        case_id=case_id,
        user_id=user_id,
        user_email=user_email,
        user_agent=user_agent,
        feedback_metadata=json.dumps(metadata, default=str) if metadata else None,
    )
    session.add(feedback)
    await session.flush()
    logger.info("Feedback %s received (%s, user=%s)", feedback.id, feedback_type, user_id or "anonymous")
    return feedback


async def submit_contact(
    session: AsyncSession,
    name: str,
    email: str,
    message: str,
    reason: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Feedback:
    """Store a contact-form message. Raises InvalidRequestError on a bad email or an overlong message."""
    email = email.strip()
    if not is_valid_email(email):
        raise InvalidRequestError("Invalid email address")
    if len(message) > MAX_CONTACT_MESSAGE_LENGTH:
        raise InvalidRequestError(f"Message must be {MAX_CONTACT_MESSAGE_LENGTH} characters or less")

    reason = reason or "general"
    return await submit_feedback(
        session,
        FeedbackType.CONTACT.value,
        f"[Contact Form - {reason}]\n\nFrom: {name}\nEmail: {email}\n\n{message}",
        category=CONTACT_REASON_CATEGORIES.get(reason),
        trigger="contact_form",
        metadata={"name": name, "email": email, "reason": reason, "submitted_at": utc_now()},
        user_email=email,
        user_agent=user_agent,
    )


async def list_feedback(session: AsyncSession, user_id: str, limit: int = 50) -> list[Feedback]:
    """A user's own submissions, newest first."""
    result = await session.execute(
        select(Feedback)
        .where(Feedback.user_id == user_id)
        .order_by(Feedback.created_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


def feedback_to_dict(feedback: Feedback) -> dict:
    return {
        "id": feedback.id,
        "type": feedback.type,
        "category": feedback.category,
        "message": feedback.message,
        "rating": feedback.rating,
        "page_url": feedback.page_url,
        "trigger": feedback.trigger,
        "case_id": feedback.case_id,
        "metadata": feedback.metadata_dict,
        "created_at": format_date(feedback.created_at),
    }
