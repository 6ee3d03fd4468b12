"""
LandlordComply Database Models
SQLAlchemy ORM models for all entities.

All datetime columns use DateTime(timezone=True) for proper UTC handling.
Use utc_now() from landlordcomply.core.utc for all timestamp defaults.
List-valued fields are stored as JSON text; use the *_list properties to read them.
"""

import enum
import json
import uuid
from datetime import datetime
from typing import Any, Optional
from sqlalchemy import String, Text, Integer, DateTime, ForeignKey, Boolean, Float
from sqlalchemy.orm import Mapped, mapped_column, relationship

from landlordcomply.core.database import Base
from landlordcomply.core.utc import utc_now


# Type alias for timezone-aware DateTime columns
DateTimeTZ = DateTime(timezone=True)


def new_id() -> str:
    return str(uuid.uuid4())


def _load_json(value: Optional[str], default: Any) -> Any:
    if not value:
        return default
    try:
        return json.loads(value)
    except ValueError:
        return default


# =============================================================================
# Enums
# =============================================================================

class CaseStatus(str, enum.Enum):
    """Deposit-disposition lifecycle. CLOSED is terminal."""
    ACTIVE = "ACTIVE"
    PENDING_SEND = "PENDING_SEND"
    SENT = "SENT"
    CLOSED = "CLOSED"


class CoverageLevel(str, enum.Enum):
    FULL = "FULL"
    PARTIAL = "PARTIAL"
    STATE_ONLY = "STATE_ONLY"


class DocumentType(str, enum.Enum):
    NOTICE_LETTER = "NOTICE_LETTER"
    ITEMIZED_STATEMENT = "ITEMIZED_STATEMENT"


class DeductionCategory(str, enum.Enum):
    CLEANING = "CLEANING"
    REPAIRS = "REPAIRS"
    UNPAID_RENT = "UNPAID_RENT"
    UTILITIES = "UTILITIES"
    DAMAGES = "DAMAGES"
    OTHER = "OTHER"


class RiskLevel(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class ForwardingAddressStatus(str, enum.Enum):
    NOT_REQUESTED = "NOT_REQUESTED"
    REQUESTED = "REQUESTED"
    PROVIDED = "PROVIDED"
    REFUSED = "REFUSED"


class DraftStatus(str, enum.Enum):
    PREVIEW_GENERATED = "PREVIEW_GENERATED"
    EMAIL_SENT = "EMAIL_SENT"
    CLAIMED = "CLAIMED"
    EXPIRED = "EXPIRED"


class FeedbackType(str, enum.Enum):
    FEEDBACK = "FEEDBACK"
    SURVEY = "SURVEY"
    CONCIERGE = "CONCIERGE"
    CONTACT = "CONTACT"


class FeedbackCategory(str, enum.Enum):
    UI_UX = "UI_UX"
    WORKFLOW = "WORKFLOW"
    LEGAL_ACCURACY = "LEGAL_ACCURACY"
    OTHER = "OTHER"


# =============================================================================
# User
# =============================================================================

class User(Base):
    """
    Landlord account. Credentials live with the upstream auth provider;
    this row exists so cases and properties have an owner.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)
    last_seen_at: Mapped[Optional[datetime]] = mapped_column(DateTimeTZ, nullable=True)

    properties: Mapped[list["Property"]] = relationship(back_populates="user", cascade="all, delete-orphan")
    cases: Mapped[list["Case"]] = relationship(back_populates="user", cascade="all, delete-orphan")


# =============================================================================
# Jurisdictions & Rules
# =============================================================================

class Jurisdiction(Base):
    """
    A state, or a city within a state, with its own deposit-return rules.
    One state-level row (city NULL) can sit beside many city rows.
    """
    __tablename__ = "jurisdictions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    state: Mapped[str] = mapped_column(String(50))
    state_code: Mapped[str] = mapped_column(String(2), index=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    coverage_level: Mapped[str] = mapped_column(String(20), default=CoverageLevel.STATE_ONLY.value)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)

    rule_sets: Mapped[list["RuleSet"]] = relationship(
        back_populates="jurisdiction",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="RuleSet.effective_date.desc()",
    )

    @property
    def display_name(self) -> str:
        return f"{self.city}, {self.state}" if self.city else self.state


class RuleSet(Base):
    """
    Versioned, time-effective snapshot of a jurisdiction's deposit rules.
    The live one is the latest effective_date at or before now.
    """
    __tablename__ = "rule_sets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    jurisdiction_id: Mapped[str] = mapped_column(String(36), ForeignKey("jurisdictions.id"), index=True)
    version: Mapped[str] = mapped_column(String(20))
    effective_date: Mapped[datetime] = mapped_column(DateTimeTZ)
    verified_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)

    return_deadline_days: Mapped[int] = mapped_column(Integer)
    return_deadline_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    interest_required: Mapped[bool] = mapped_column(Boolean, default=False)
    interest_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)  # annual, 0.05 == 5%
    interest_rate_source: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    interest_calculation_method: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    itemization_required: Mapped[bool] = mapped_column(Boolean, default=True)
    itemization_requirements: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    receipt_requirement_threshold: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    max_deposit_months: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    allowed_delivery_methods: Mapped[str] = mapped_column(Text, default="[]")  # JSON array

    jurisdiction: Mapped["Jurisdiction"] = relationship(back_populates="rule_sets", lazy="selectin")
    citations: Mapped[list["Citation"]] = relationship(back_populates="rule_set", cascade="all, delete-orphan", lazy="selectin")
    penalties: Mapped[list["Penalty"]] = relationship(back_populates="rule_set", cascade="all, delete-orphan", lazy="selectin")

    @property
    def allowed_delivery_methods_list(self) -> list[str]:
        return _load_json(self.allowed_delivery_methods, [])


class Citation(Base):
    __tablename__ = "citations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    rule_set_id: Mapped[str] = mapped_column(String(36), ForeignKey("rule_sets.id"), index=True)
    code: Mapped[str] = mapped_column(String(100))
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    excerpt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    rule_set: Mapped["RuleSet"] = relationship(back_populates="citations")


class Penalty(Base):
    """Free-text penalty provision, e.g. condition "Bad faith retention", penalty "Up to 2x deposit"."""
    __tablename__ = "penalties"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    rule_set_id: Mapped[str] = mapped_column(String(36), ForeignKey("rule_sets.id"), index=True)
    condition: Mapped[str] = mapped_column(String(255))
    penalty: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    rule_set: Mapped["RuleSet"] = relationship(back_populates="penalties")


# =============================================================================
# Properties & Cases
# =============================================================================

class Property(Base):
    __tablename__ = "properties"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), index=True)
    jurisdiction_id: Mapped[str] = mapped_column(String(36), ForeignKey("jurisdictions.id"))

    address: Mapped[str] = mapped_column(String(255))
    unit: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    city: Mapped[str] = mapped_column(String(100), default="")
    state: Mapped[str] = mapped_column(String(2))
    zip_code: Mapped[str] = mapped_column(String(20), default="")

    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)

    user: Mapped["User"] = relationship(back_populates="properties")
    jurisdiction: Mapped["Jurisdiction"] = relationship(lazy="selectin")
    cases: Mapped[list["Case"]] = relationship(back_populates="rental_property", cascade="all, delete-orphan")

    @property
    def full_address(self) -> str:
        unit = f", Unit {self.unit}" if self.unit else ""
        return f"{self.address}{unit}, {self.city}, {self.state} {self.zip_code}".strip()


class Case(Base):
    """
    A tenancy's deposit-disposition record.

    due_date == move_out_date + rule_set.return_deadline_days (calendar days).
    """
    __tablename__ = "cases"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), index=True)
    property_id: Mapped[str] = mapped_column(String(36), ForeignKey("properties.id"), index=True)
    rule_set_id: Mapped[str] = mapped_column(String(36), ForeignKey("rule_sets.id"))

    lease_start_date: Mapped[datetime] = mapped_column(DateTimeTZ)
    lease_end_date: Mapped[datetime] = mapped_column(DateTimeTZ)
    move_out_date: Mapped[datetime] = mapped_column(DateTimeTZ)
    due_date: Mapped[datetime] = mapped_column(DateTimeTZ, index=True)

    deposit_amount: Mapped[float] = mapped_column(Float)
    deposit_interest: Mapped[float] = mapped_column(Float, default=0.0)

    status: Mapped[str] = mapped_column(String(20), default=CaseStatus.ACTIVE.value, index=True)

    # Delivery
    delivery_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    sent_date: Mapped[Optional[datetime]] = mapped_column(DateTimeTZ, nullable=True)
    tracking_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    delivery_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    delivery_proof_ids: Mapped[str] = mapped_column(Text, default="[]")  # JSON array of attachment ids

    # Closure
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTimeTZ, nullable=True)
    closed_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now, onupdate=utc_now)

    user: Mapped["User"] = relationship(back_populates="cases")
    rental_property: Mapped["Property"] = relationship(back_populates="cases", lazy="selectin")
    rule_set: Mapped["RuleSet"] = relationship(lazy="selectin")
    tenants: Mapped[list["Tenant"]] = relationship(
        back_populates="case", cascade="all, delete-orphan", lazy="selectin", order_by="Tenant.is_primary.desc()"
    )
    deductions: Mapped[list["Deduction"]] = relationship(
        back_populates="case", cascade="all, delete-orphan", lazy="selectin", order_by="Deduction.created_at"
    )
    documents: Mapped[list["Document"]] = relationship(back_populates="case", cascade="all, delete-orphan", lazy="selectin")
    attachments: Mapped[list["Attachment"]] = relationship(back_populates="case", cascade="all, delete-orphan", lazy="selectin")
    checklist_items: Mapped[list["ChecklistItem"]] = relationship(
        back_populates="case", cascade="all, delete-orphan", lazy="selectin", order_by="ChecklistItem.sort_order"
    )
    audit_events: Mapped[list["AuditEvent"]] = relationship(
        back_populates="case", cascade="all, delete-orphan", passive_deletes=True, order_by="AuditEvent.timestamp"
    )

    @property
    def delivery_proof_ids_list(self) -> list[str]:
        return _load_json(self.delivery_proof_ids, [])

    @property
    def primary_tenant(self) -> Optional["Tenant"]:
        return next((t for t in self.tenants if t.is_primary), None)


class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    case_id: Mapped[str] = mapped_column(String(36), ForeignKey("cases.id"), index=True)

    name: Mapped[str] = mapped_column(String(200))
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)

    forwarding_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    forwarding_address_status: Mapped[str] = mapped_column(
        String(20), default=ForwardingAddressStatus.NOT_REQUESTED.value
    )
    forwarding_address_requested_at: Mapped[Optional[datetime]] = mapped_column(DateTimeTZ, nullable=True)
    forwarding_address_request_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    case: Mapped["Case"] = relationship(back_populates="tenants")


class Deduction(Base):
    """A single charged item against the deposit."""
    __tablename__ = "deductions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    case_id: Mapped[str] = mapped_column(String(36), ForeignKey("cases.id"), index=True)

    description: Mapped[str] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(20), default=DeductionCategory.OTHER.value)
    amount: Mapped[float] = mapped_column(Float)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    attachment_ids: Mapped[str] = mapped_column(Text, default="[]")  # JSON array

    # Risk assessment
    risk_level: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    item_age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # months
    damage_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    has_evidence: Mapped[bool] = mapped_column(Boolean, default=False)

    # AI assistance
    ai_generated: Mapped[bool] = mapped_column(Boolean, default=False)
    original_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)

    case: Mapped["Case"] = relationship(back_populates="deductions")

    @property
    def attachment_ids_list(self) -> list[str]:
        return _load_json(self.attachment_ids, [])


class Document(Base):
    """Generated PDF (notice letter / itemized statement), versioned per type."""
    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    case_id: Mapped[str] = mapped_column(String(36), ForeignKey("cases.id"), index=True)

    type: Mapped[str] = mapped_column(String(30))
    version: Mapped[int] = mapped_column(Integer, default=1)
    file_name: Mapped[str] = mapped_column(String(255))
    file_path: Mapped[str] = mapped_column(String(500))
    sha256_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    generated_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)
    generated_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    case: Mapped["Case"] = relationship(back_populates="documents")


class Attachment(Base):
    """Uploaded evidence: photos, receipts, invoices, delivery proof."""
    __tablename__ = "attachments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    case_id: Mapped[str] = mapped_column(String(36), ForeignKey("cases.id"), index=True)

    name: Mapped[str] = mapped_column(String(255))
    type: Mapped[str] = mapped_column(String(20), default="OTHER")  # PHOTO, RECEIPT, INVOICE, DELIVERY_PROOF, OTHER
    file_path: Mapped[str] = mapped_column(String(500))
    file_size: Mapped[int] = mapped_column(Integer, default=0)
    mime_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    sha256_hash: Mapped[str] = mapped_column(String(64))
    tags: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)  # comma-separated

    uploaded_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)

    case: Mapped["Case"] = relationship(back_populates="attachments")


class ChecklistItem(Base):
    """Labeled task; blocks_export items gate PENDING_SEND / SENT."""
    __tablename__ = "checklist_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    case_id: Mapped[str] = mapped_column(String(36), ForeignKey("cases.id"), index=True)

    label: Mapped[str] = mapped_column(String(255))
    required: Mapped[bool] = mapped_column(Boolean, default=True)
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTimeTZ, nullable=True)
    blocks_export: Mapped[bool] = mapped_column(Boolean, default=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)

    case: Mapped["Case"] = relationship(back_populates="checklist_items")


class AuditEvent(Base):
    """
    Append-only record of an action taken on a case.
    Never updated; rows are only removed together with their case.
    """
    __tablename__ = "audit_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    case_id: Mapped[str] = mapped_column(String(36), ForeignKey("cases.id", ondelete="CASCADE"), index=True)

    action: Mapped[str] = mapped_column(String(50), index=True)
    description: Mapped[str] = mapped_column(Text)
    user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    event_metadata: Mapped[Optional[str]] = mapped_column("metadata", Text, nullable=True)  # JSON object

    timestamp: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)

    case: Mapped["Case"] = relationship(back_populates="audit_events")

    @property
    def metadata_dict(self) -> dict:
        return _load_json(self.event_metadata, {})


# =============================================================================
# Draft Cases (pre-signup preview flow)
# =============================================================================

class DraftCase(Base):
    """Anonymous preview that is claimed into a real Case after sign-in."""
    __tablename__ = "draft_cases"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    address_raw: Mapped[str] = mapped_column(String(255))
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[str] = mapped_column(String(2))
    move_out_date: Mapped[datetime] = mapped_column(DateTimeTZ)
    deposit_amount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    jurisdiction_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("jurisdictions.id"), nullable=True)
    rule_set_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("rule_sets.id"), nullable=True)
    preview_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(20), default=DraftStatus.PREVIEW_GENERATED.value)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email_hash: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    email_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTimeTZ, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTimeTZ)

    claimed_by_user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTimeTZ, nullable=True)
    claimed_case_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    utm_source: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    utm_campaign: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    utm_medium: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)

    @property
    def preview(self) -> dict:
        return _load_json(self.preview_json, {})


# =============================================================================
# Feedback
# =============================================================================

class Feedback(Base):
    """In-app feedback, surveys and contact-form messages. Identity is optional."""
    __tablename__ = "feedback"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    type: Mapped[str] = mapped_column(String(20), index=True)
    category: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    message: Mapped[str] = mapped_column(Text)
    rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    page_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    trigger: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    case_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    user_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    user_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    feedback_metadata: Mapped[Optional[str]] = mapped_column("metadata", Text, nullable=True)  # JSON object

    created_at: Mapped[datetime] = mapped_column(DateTimeTZ, default=utc_now)

    @property
    def metadata_dict(self) -> dict:
        return _load_json(self.feedback_metadata, {})
