"""Rental properties owned by the signed-in landlord."""

from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from landlordcomply.core.database import get_db
from landlordcomply.core.security import require_user
from landlordcomply.models.models import User
from landlordcomply.services.cases import create_property, list_properties, property_to_dict

router = APIRouter(prefix="/api/properties", tags=["Properties"])


class PropertyCreate(BaseModel):
    address: str = Field(..., min_length=1, max_length=255)
    unit: Optional[str] = Field(None, max_length=50)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=2, max_length=2)
    zip_code: str = Field(..., min_length=1, max_length=20)


@router.get("")
async def get_properties(
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    rows = await list_properties(db, user.id)
    return {"properties": [property_to_dict(prop, count) for prop, count in rows]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_property(
    body: PropertyCreate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    prop = await create_property(
        db, user, body.address, body.city, body.state, zip_code=body.zip_code, unit=body.unit
    )
    return property_to_dict(prop, 0)
