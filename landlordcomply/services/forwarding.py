"""
Forwarding address tracking for tenants, plus the request templates
(email or printable letter) a landlord sends to ask for one.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from landlordcomply.core.utc import utc_now
from landlordcomply.models.models import Case, ForwardingAddressStatus, Tenant, User
from landlordcomply.services.audit import record_audit_event

logger = logging.getLogger(__name__)


async def update_forwarding_address(
    session: AsyncSession,
    case: Case,
    tenant: Tenant,
    user_id: str,
    forwarding_address: Optional[str] = None,
    address_given: bool = False,
    status: Optional[str] = None,
    request_method: Optional[str] = None,
) -> Tenant:
    """
    Record a forwarding address or its request/refusal.

    A non-empty address marks the status PROVIDED unless an explicit status
    is also passed. REQUESTED stamps the request time and method.
    """
    if address_given:
        tenant.forwarding_address = forwarding_address or None
        if forwarding_address:
            tenant.forwarding_address_status = ForwardingAddressStatus.PROVIDED.value

    if status:
        tenant.forwarding_address_status = ForwardingAddressStatus(status).value
        if status == ForwardingAddressStatus.REQUESTED.value:
            tenant.forwarding_address_requested_at = utc_now()
            if request_method:
                tenant.forwarding_address_request_method = request_method

    if status == ForwardingAddressStatus.REQUESTED.value:
        description = (
            f"Forwarding address requested from {tenant.name} via {request_method or 'unspecified method'}"
        )
    elif address_given and forwarding_address:
        description = f"Forwarding address provided for {tenant.name}"
    else:
        description = f"Forwarding address status updated for {tenant.name}: {tenant.forwarding_address_status}"

    await record_audit_event(
        session,
        case.id,
        "forwarding_address_updated",
        description,
        user_id=user_id,
        metadata={
            "tenant_id": tenant.id,
            "status": tenant.forwarding_address_status,
            "request_method": request_method,
        },
    )
    return tenant


def forwarding_request_template(case: Case, tenant: Tenant, user: User, fmt: str = "email") -> dict:
    """Request wording addressed to the tenant; "email" gives subject/body, anything else a letter."""
    landlord = user.name or "Property Owner"
    prop = case.rental_property
    address = prop.full_address
    deadline = f"{case.due_date:%B %d, %Y}"

    if fmt == "email":
        return {
            "format": "email",
            "subject": f"Request for Forwarding Address - {prop.address}",
            "body": (
                f"Dear {tenant.name},\n\n"
                "This letter is to request your current forwarding address in connection with "
                f"your former tenancy at:\n\n{address}\n\n"
                "As your former landlord, I am required to provide you with an itemized statement of "
                "any security deposit deductions and/or a refund of your security deposit. "
                f"Under {prop.state} law, this must be completed by {deadline}.\n\n"
                "To ensure you receive this important correspondence, please provide your current "
                "mailing address by responding to this email or contacting me at your earliest "
                "convenience.\n\n"
                "If I do not receive a forwarding address, any correspondence will be sent to your "
                "last known address on file.\n\n"
                "Thank you for your prompt attention to this matter.\n\n"
                f"Sincerely,\n{landlord}"
            ),
        }

    return {
        "format": "letter",
        "content": (
            f"{utc_now():%B %d, %Y}\n\n"
            f"{tenant.name}\n[Last Known Address]\n\n"
            "RE: Request for Forwarding Address\n"
            f"Property: {address}\n\n"
            f"Dear {tenant.name}:\n\n"
            "This letter is to formally request your current forwarding address in connection with "
            "your former tenancy at the above-referenced property.\n\n"
            f"As your former landlord, I am required by {prop.state} law to provide you with:\n"
            "- An itemized statement of any security deposit deductions\n"
            "- A refund of your security deposit (if applicable)\n\n"
            f"This must be completed by {deadline}.\n\n"
            "Please provide your current mailing address by:\n"
            "- Email: [Your Email]\n- Phone: [Your Phone]\n- Mail: [Your Address]\n\n"
            "If I do not receive a forwarding address by [Date], any correspondence will be sent to "
            "your last known address.\n\n"
            f"Sincerely,\n\n\n_______________________\n{landlord}\n\n"
            "Date sent: _____________\n"
            "Method: [ ] Hand delivered  [ ] First class mail  [ ] Certified mail\n"
        ),
    }
