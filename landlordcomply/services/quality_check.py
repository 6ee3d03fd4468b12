"""
Quality / Readiness Checker

Runs a fixed, ordered list of independent checks over a case snapshot and
rolls them up into a ready flag and a 0-100 score. Pure: the snapshot is
built from already-loaded ORM rows and nothing is written back.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from landlordcomply.core.utc import to_utc, utc_now
from landlordcomply.models.models import (
    Case,
    DocumentType,
    ForwardingAddressStatus,
    RiskLevel,
)
from landlordcomply.services.calculations import (
    calculate_days_until_deadline,
    calculate_refund_amount,
    sum_deductions,
)


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


# =============================================================================
# Snapshot
# =============================================================================

@dataclass
class DeductionSnapshot:
    amount: float
    risk_level: Optional[str] = None
    has_evidence: bool = False
    attachment_count: int = 0


@dataclass
class ChecklistSnapshot:
    label: str
    completed: bool = False
    blocks_export: bool = False


@dataclass
class TenantSnapshot:
    name: str = ""
    is_primary: bool = False
    forwarding_address: Optional[str] = None
    forwarding_address_status: str = ForwardingAddressStatus.NOT_REQUESTED.value


@dataclass
class CaseSnapshot:
    """Everything the readiness and exposure rules look at, detached from the ORM."""
    deposit_amount: float
    due_date: datetime
    move_out_date: Optional[datetime] = None
    deposit_interest: float = 0.0
    itemization_required: bool = True
    delivery_method: Optional[str] = None
    document_types: set[str] = field(default_factory=set)
    deductions: list[DeductionSnapshot] = field(default_factory=list)
    checklist: list[ChecklistSnapshot] = field(default_factory=list)
    tenants: list[TenantSnapshot] = field(default_factory=list)

    @property
    def primary_tenant(self) -> Optional[TenantSnapshot]:
        return next((t for t in self.tenants if t.is_primary), None)

    @property
    def total_deductions(self) -> float:
        return sum_deductions(d.__dict__ for d in self.deductions)

    def has_document(self, doc_type: DocumentType) -> bool:
        return doc_type.value in self.document_types


def snapshot_from_case(case: Case) -> CaseSnapshot:
    """Detach a fully loaded Case into a CaseSnapshot."""
    return CaseSnapshot(
        deposit_amount=case.deposit_amount,
        deposit_interest=case.deposit_interest or 0.0,
        due_date=to_utc(case.due_date),
        move_out_date=to_utc(case.move_out_date) if case.move_out_date else None,
        itemization_required=case.rule_set.itemization_required,
        delivery_method=case.delivery_method,
        document_types={doc.type for doc in case.documents},
        deductions=[
            DeductionSnapshot(
                amount=d.amount,
                risk_level=d.risk_level,
                has_evidence=d.has_evidence,
                attachment_count=len(d.attachment_ids_list),
            )
            for d in case.deductions
        ],
        checklist=[
            ChecklistSnapshot(label=i.label, completed=i.completed, blocks_export=i.blocks_export)
            for i in case.checklist_items
        ],
        tenants=[
            TenantSnapshot(
                name=t.name or "",
                is_primary=t.is_primary,
                forwarding_address=t.forwarding_address,
                forwarding_address_status=t.forwarding_address_status,
            )
            for t in case.tenants
        ],
    )


# =============================================================================
# Results
# =============================================================================

@dataclass
class QualityCheck:
    id: str
    label: str
    description: str
    passed: bool
    severity: Severity
    details: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "description": self.description,
            "passed": self.passed,
            "severity": self.severity.value,
            "details": self.details,
        }


@dataclass
class QualityCheckResult:
    ready: bool
    score: int
    checks: list[QualityCheck]

    @property
    def blockers(self) -> list[QualityCheck]:
        return [c for c in self.checks if not c.passed and c.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[QualityCheck]:
        return [c for c in self.checks if not c.passed and c.severity == Severity.WARNING]

    def to_dict(self) -> dict[str, Any]:
        return {
            "ready": self.ready,
            "score": self.score,
            "checks": [c.to_dict() for c in self.checks],
            "blockers": [c.to_dict() for c in self.blockers],
            "warnings": [c.to_dict() for c in self.warnings],
        }


# =============================================================================
# Checks
# =============================================================================

def _money(value: float) -> str:
    return f"${value:,.2f}"


def _check_move_out(snapshot: CaseSnapshot) -> QualityCheck:
    present = snapshot.move_out_date is not None
    return QualityCheck(
        id="move_out_date",
        label="Move-out date",
        description="Case has a valid move-out date",
        passed=present,
        severity=Severity.ERROR,
        details=f"Move-out: {snapshot.move_out_date:%Y-%m-%d}" if present else "No move-out date set",
    )


def _check_deadline(snapshot: CaseSnapshot, now: datetime) -> QualityCheck:
    days_left = calculate_days_until_deadline(snapshot.due_date, now)
    overdue = days_left < 0
    return QualityCheck(
        id="deadline_not_missed",
        label="Deadline status",
        description="Return deadline has not passed",
        passed=not overdue,
        severity=Severity.ERROR if overdue else Severity.INFO,
        details=f"OVERDUE by {abs(days_left)} days!" if overdue else f"{days_left} days remaining",
    )


def _check_totals(snapshot: CaseSnapshot) -> QualityCheck:
    total = snapshot.total_deductions
    refund = calculate_refund_amount(snapshot.deposit_amount, snapshot.deposit_interest, total)
    valid = refund >= 0
    if valid:
        details = (
            f"Deposit: {_money(snapshot.deposit_amount)} | Deductions: {_money(total)} | "
            f"Refund: {_money(refund)}"
        )
    else:
        details = (
            f"Deductions ({_money(total)}) exceed deposit plus interest "
            f"({_money(snapshot.deposit_amount + snapshot.deposit_interest)})"
        )
    return QualityCheck(
        id="totals_reconcile",
        label="Totals reconcile",
        description="Deductions do not exceed deposit plus interest",
        passed=valid,
        severity=Severity.ERROR,
        details=details,
    )


def _check_notice_letter(snapshot: CaseSnapshot) -> QualityCheck:
    return QualityCheck(
        id="notice_letter",
        label="Notice letter",
        description="Notice letter has been generated",
        passed=snapshot.has_document(DocumentType.NOTICE_LETTER),
        severity=Severity.ERROR,
    )


def _check_itemized_statement(snapshot: CaseSnapshot) -> Optional[QualityCheck]:
    # Nothing to itemize without deductions.
    if not (snapshot.itemization_required and snapshot.deductions):
        return None
    return QualityCheck(
        id="itemized_statement",
        label="Itemized statement",
        description="Itemized statement generated (required by jurisdiction)",
        passed=snapshot.has_document(DocumentType.ITEMIZED_STATEMENT),
        severity=Severity.ERROR,
    )


def _check_delivery_method(snapshot: CaseSnapshot) -> QualityCheck:
    method = (snapshot.delivery_method or "").strip()
    return QualityCheck(
        id="delivery_method",
        label="Delivery method",
        description="A delivery method has been selected",
        passed=bool(method),
        severity=Severity.ERROR,
        details=f"Method: {method}" if method else None,
    )


def _check_forwarding_address(snapshot: CaseSnapshot) -> QualityCheck:
    tenant = snapshot.primary_tenant
    has_address = bool(tenant and tenant.forwarding_address and tenant.forwarding_address.strip())
    status = tenant.forwarding_address_status if tenant else None

    if has_address or status == ForwardingAddressStatus.PROVIDED.value:
        details = "Address on file"
    elif status == ForwardingAddressStatus.REQUESTED.value:
        details = "Requested but not provided (documented)"
    elif status == ForwardingAddressStatus.REFUSED.value:
        details = "Tenant refused (documented)"
    else:
        details = "Not requested - consider documenting"

    documented = has_address or status in (
        ForwardingAddressStatus.PROVIDED.value,
        ForwardingAddressStatus.REQUESTED.value,
        ForwardingAddressStatus.REFUSED.value,
    )
    return QualityCheck(
        id="forwarding_address",
        label="Forwarding address",
        description="Tenant forwarding address status is documented",
        passed=documented,
        severity=Severity.WARNING,
        details=details,
    )


def _check_checklist(snapshot: CaseSnapshot) -> QualityCheck:
    incomplete = [i.label for i in snapshot.checklist if i.blocks_export and not i.completed]
    return QualityCheck(
        id="checklist_complete",
        label="Required checklist items",
        description="All required checklist items are completed",
        passed=not incomplete,
        severity=Severity.ERROR,
        details=f"{len(incomplete)} incomplete: {', '.join(incomplete)}" if incomplete else None,
    )


def _check_deduction_evidence(snapshot: CaseSnapshot) -> Optional[QualityCheck]:
    if not snapshot.deductions:
        return None
    missing = [d for d in snapshot.deductions if not d.has_evidence and d.attachment_count == 0]
    return QualityCheck(
        id="deduction_evidence",
        label="Deduction evidence",
        description="All deductions have supporting evidence",
        passed=not missing,
        severity=Severity.WARNING,
        details=f"{len(missing)} deduction(s) without evidence" if missing else None,
    )


def _check_high_risk(snapshot: CaseSnapshot) -> Optional[QualityCheck]:
    high_risk = [d for d in snapshot.deductions if d.risk_level == RiskLevel.HIGH.value]
    if not high_risk:
        return None
    # Surfaced as a warning whenever present.
    return QualityCheck(
        id="high_risk_reviewed",
        label="High-risk deductions",
        description="Review deductions flagged as high-risk",
        passed=False,
        severity=Severity.WARNING,
        details=f"{len(high_risk)} deduction(s) flagged as high-risk",
    )


def _check_tenant_info(snapshot: CaseSnapshot) -> QualityCheck:
    tenant = snapshot.primary_tenant
    return QualityCheck(
        id="tenant_info",
        label="Tenant information",
        description="Primary tenant information is complete",
        passed=bool(tenant and tenant.name.strip()),
        severity=Severity.ERROR,
    )


def run_quality_checks(snapshot: CaseSnapshot, now: Optional[datetime] = None) -> QualityCheckResult:
    """
    Evaluate every readiness check in order.

    ready: no failed error-severity check.
    score: round(100 * passed / total).
    """
    now = now or utc_now()
    candidates = [
        _check_move_out(snapshot),
        _check_deadline(snapshot, now),
        _check_totals(snapshot),
        _check_notice_letter(snapshot),
        _check_itemized_statement(snapshot),
        _check_delivery_method(snapshot),
        _check_forwarding_address(snapshot),
        _check_checklist(snapshot),
        _check_deduction_evidence(snapshot),
        _check_high_risk(snapshot),
        _check_tenant_info(snapshot),
    ]
    checks = [c for c in candidates if c is not None]

    passed = sum(1 for c in checks if c.passed)
    score = math.floor(100 * passed / len(checks) + 0.5)
    ready = not any(not c.passed and c.severity == Severity.ERROR for c in checks)

    return QualityCheckResult(ready=ready, score=score, checks=checks)
