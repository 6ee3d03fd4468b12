"""
LandlordComply - Security Module

Request identity and abuse protection:
- Landlord identity from the landlordcomply_uid cookie or X-User-Id header
- Fixed-window in-memory rate limiter for the access-link email flow
"""

import hashlib
import logging
import re
import time
from typing import Optional

from fastapi import Cookie, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from landlordcomply.core.database import get_db
from landlordcomply.core.utc import utc_now
from landlordcomply.models.models import User

logger = logging.getLogger(__name__)

USER_COOKIE = "landlordcomply_uid"
USER_HEADER = "X-User-Id"

_UID_PATTERN = re.compile(r"^[A-Za-z0-9_\-]{6,36}$")
_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# =============================================================================
# Identity
# =============================================================================

def get_request_user_id(
    request: Request,
    landlordcomply_uid: Optional[str] = Cookie(None),
) -> Optional[str]:
    """User id from cookie, falling back to the X-User-Id header."""
    uid = landlordcomply_uid or request.headers.get(USER_HEADER)
    if uid and _UID_PATTERN.match(uid):
        return uid
    return None


async def require_user(
    user_id: Optional[str] = Depends(get_request_user_id),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Require an identified landlord.

    First sight of a well-formed id provisions the User row; the upstream
    auth provider owns credentials, this service only needs ownership.
    """
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Authentication required"},
        )

    user = await db.get(User, user_id)
    if user is None:
        user = User(id=user_id, created_at=utc_now())
        db.add(user)
        await db.flush()
        logger.info("Provisioned user %s", user_id)
    else:
        user.last_seen_at = utc_now()
    return user


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_PATTERN.match(email.strip()))


def hash_email(email: str) -> str:
    """SHA-256 of the lower-cased address; used as rate-limit key and stored hash."""
    return hashlib.sha256(email.strip().lower().encode("utf-8")).hexdigest()


def mask_email(email: str) -> str:
    """jo***@example.com"""
    return re.sub(r"^(.{2})(.*)(@.*)$", r"\1***\3", email)


# =============================================================================
# Rate Limiting
# =============================================================================

class RateLimiter:
    """
    In-memory fixed-window rate limiter.

    State lives in this process only; behind more than one instance each
    instance counts separately.
    """

    def __init__(self):
        self._windows: dict[str, tuple[int, float]] = {}

    def check(
        self,
        key: str,
        max_requests: int,
        window_seconds: int,
        now: Optional[float] = None,
    ) -> tuple[bool, Optional[int]]:
        """
        Count one request against key.
        Returns: (allowed: bool, retry_after: Optional[int])
        """
        now = time.time() if now is None else now
        count, reset_at = self._windows.get(key, (0, 0.0))

        if reset_at <= now:
            self._windows[key] = (1, now + window_seconds)
            return True, None

        if count >= max_requests:
            return False, int(reset_at - now) + 1

        self._windows[key] = (count + 1, reset_at)
        return True, None

    def reset(self) -> None:
        self._windows.clear()


_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get or create rate limiter singleton."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter()
    return _rate_limiter
