"""Dashboard: counts and the deadline radar."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from landlordcomply.core.database import get_db
from landlordcomply.core.security import require_user
from landlordcomply.models.models import User
from landlordcomply.services.dashboard import get_dashboard

router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])


@router.get("")
async def dashboard(
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return await get_dashboard(db, user.id)
