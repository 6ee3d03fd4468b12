"""Per-case checklist."""

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from landlordcomply.core.database import get_db
from landlordcomply.core.security import require_user
from landlordcomply.models.models import User
from landlordcomply.services.case_status import open_blockers
from landlordcomply.services.cases import (
    add_checklist_item,
    checklist_item_to_dict,
    delete_checklist_item,
    get_checklist_item,
    get_owned_case,
    set_checklist_item_completed,
)

router = APIRouter(prefix="/api/cases/{case_id}/checklist", tags=["Checklist"])


class ChecklistItemCreate(BaseModel):
    label: str = Field(..., min_length=1, max_length=255)
    blocks_export: bool = False


class ChecklistItemToggle(BaseModel):
    completed: bool


@router.get("")
async def get_checklist(
    case_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await get_owned_case(db, case_id, user.id)
    items = case.checklist_items
    return {
        "items": [checklist_item_to_dict(i) for i in items],
        "completed": sum(1 for i in items if i.completed),
        "total": len(items),
        "blockers": [i.label for i in open_blockers(items)],
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_item(
    case_id: str,
    body: ChecklistItemCreate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await get_owned_case(db, case_id, user.id)
    item = await add_checklist_item(db, case, user.id, body.label.strip(), body.blocks_export)
    return checklist_item_to_dict(item)


@router.patch("/{item_id}")
async def toggle_item(
    case_id: str,
    item_id: str,
    body: ChecklistItemToggle,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await get_owned_case(db, case_id, user.id)
    item = get_checklist_item(case, item_id)
    await set_checklist_item_completed(db, case, item, user.id, body.completed)
    return checklist_item_to_dict(item)


@router.delete("/{item_id}")
async def remove_item(
    case_id: str,
    item_id: str,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    case = await get_owned_case(db, case_id, user.id)
    item = get_checklist_item(case, item_id)
    await delete_checklist_item(db, case, item, user.id)
    return {"success": True}
