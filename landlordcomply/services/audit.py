"""
Audit trail for cases.

Events are append-only: this module only ever inserts. There is no update
or delete path for AuditEvent anywhere in the application.
"""

import json
import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from landlordcomply.core.utc import format_date, utc_now
from landlordcomply.models.models import AuditEvent

logger = logging.getLogger(__name__)


async def record_audit_event(
    session: AsyncSession,
    case_id: str,
    action: str,
    description: str,
    user_id: Optional[str] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> AuditEvent:
    """Append one event to a case's audit log (flushed, committed with the request)."""
    event = AuditEvent(
        case_id=case_id,
        action=action,
        description=description,
        user_id=user_id,
        event_metadata=json.dumps(metadata, default=str) if metadata is not None else None,
        timestamp=utc_now(),
    )
    session.add(event)
    await session.flush()
    logger.debug("Audit %s on case %s: %s", action, case_id, description)
    return event


async def list_audit_events(session: AsyncSession, case_id: str) -> list[AuditEvent]:
    result = await session.execute(
        select(AuditEvent).where(AuditEvent.case_id == case_id).order_by(AuditEvent.timestamp)
    )
    return list(result.scalars().all())


def audit_event_to_dict(event: AuditEvent) -> dict:
    return {
        "id": event.id,
        "action": event.action,
        "description": event.description,
        "user_id": event.user_id,
        "metadata": event.metadata_dict,
        "timestamp": format_date(event.timestamp),
    }
