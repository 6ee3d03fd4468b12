"""
Exposure Estimator
==================

Rough worst-case penalty exposure for a case:
- Each penalty provision of the rule set gets an amount (deposit x parsed
  multiplier, or None when the text cannot be quantified) and a likelihood
  keyed off its condition text and the case's state.
- Risk factors flag the deadline, documentation, forwarding address,
  deductions and checklist problems that feed those penalties.

A heuristic for prioritizing work, not a legal determination.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional

from landlordcomply.core.utc import utc_now
from landlordcomply.models.models import (
    DocumentType,
    ForwardingAddressStatus,
    RiskLevel,
)
from landlordcomply.services.calculations import (
    calculate_days_until_deadline,
    calculate_penalty_amount,
    calculate_refund_amount,
    round_money,
)
from landlordcomply.services.quality_check import CaseSnapshot

logger = logging.getLogger(__name__)


@dataclass
class PenaltyExposure:
    condition: str
    potential_penalty: str
    calculated_amount: Optional[float]
    likelihood: RiskLevel

    def to_dict(self) -> dict[str, Any]:
        return {
            "condition": self.condition,
            "potential_penalty": self.potential_penalty,
            "calculated_amount": self.calculated_amount,
            "likelihood": self.likelihood.value,
        }


@dataclass
class RiskFactor:
    category: str
    issue: str
    severity: RiskLevel

    def to_dict(self) -> dict[str, Any]:
        return {"category": self.category, "issue": self.issue, "severity": self.severity.value}


@dataclass
class ExposureReport:
    deposit_amount: float
    deposit_interest: float
    total_deductions: float
    refund_amount: float
    days_until_deadline: int
    is_overdue: bool
    penalties: list[PenaltyExposure] = field(default_factory=list)
    risk_factors: list[RiskFactor] = field(default_factory=list)
    citations: list[dict[str, Any]] = field(default_factory=list)
    min_exposure: float = 0.0
    max_exposure: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "deposit_amount": self.deposit_amount,
            "deposit_interest": self.deposit_interest,
            "total_deductions": self.total_deductions,
            "refund_amount": self.refund_amount,
            "days_until_deadline": self.days_until_deadline,
            "is_overdue": self.is_overdue,
            "penalties": [p.to_dict() for p in self.penalties],
            "risk_factors": [r.to_dict() for r in self.risk_factors],
            "citations": self.citations,
            "min_exposure": self.min_exposure,
            "max_exposure": self.max_exposure,
        }


def assess_penalty_likelihood(
    condition: str,
    days_left: int,
    has_itemized_statement: bool,
) -> RiskLevel:
    """Likelihood that a penalty condition is triggered, from its wording."""
    text = (condition or "").lower()

    if "late" in text or "deadline" in text:
        if days_left < 0:
            return RiskLevel.HIGH
        return RiskLevel.MEDIUM if days_left < 3 else RiskLevel.LOW
    if "bad faith" in text:
        # Needs proof of intent
        return RiskLevel.LOW
    if "itemiz" in text:
        return RiskLevel.LOW if has_itemized_statement else RiskLevel.MEDIUM
    return RiskLevel.LOW


def identify_risk_factors(snapshot: CaseSnapshot, days_left: int) -> list[RiskFactor]:
    factors: list[RiskFactor] = []

    if days_left < 0:
        factors.append(RiskFactor("Deadline", f"Notice is {abs(days_left)} days overdue", RiskLevel.HIGH))
    elif days_left <= 3:
        factors.append(
            RiskFactor("Deadline", f"Only {days_left} days remaining until deadline", RiskLevel.MEDIUM)
        )

    if not snapshot.has_document(DocumentType.NOTICE_LETTER):
        factors.append(RiskFactor("Documentation", "Notice letter not yet generated", RiskLevel.HIGH))
    if snapshot.itemization_required and not snapshot.has_document(DocumentType.ITEMIZED_STATEMENT):
        factors.append(
            RiskFactor("Documentation", "Itemized statement required but not generated", RiskLevel.HIGH)
        )

    tenant = snapshot.primary_tenant
    if tenant and not tenant.forwarding_address:
        if tenant.forwarding_address_status == ForwardingAddressStatus.REQUESTED.value:
            factors.append(RiskFactor(
                "Forwarding Address",
                "Requested but not received - document this in your notice",
                RiskLevel.LOW,
            ))
        elif tenant.forwarding_address_status == ForwardingAddressStatus.NOT_REQUESTED.value:
            factors.append(RiskFactor(
                "Forwarding Address",
                "No forwarding address - consider requesting one",
                RiskLevel.MEDIUM,
            ))

    high_risk = [d for d in snapshot.deductions if d.risk_level == RiskLevel.HIGH.value]
    if high_risk:
        factors.append(
            RiskFactor("Deductions", f"{len(high_risk)} deduction(s) flagged as high risk", RiskLevel.HIGH)
        )
    no_evidence = [d for d in snapshot.deductions if not d.has_evidence and d.attachment_count == 0]
    if no_evidence:
        factors.append(RiskFactor(
            "Deductions",
            f"{len(no_evidence)} deduction(s) without supporting evidence",
            RiskLevel.MEDIUM,
        ))

    blockers = [i for i in snapshot.checklist if i.blocks_export and not i.completed]
    if blockers:
        factors.append(RiskFactor("Checklist", f"{len(blockers)} required item(s) incomplete", RiskLevel.HIGH))

    return factors


def estimate_exposure(
    snapshot: CaseSnapshot,
    penalties: Iterable[Any],
    citations: Iterable[Any] = (),
    now: Optional[datetime] = None,
) -> ExposureReport:
    """
    Penalty exposure for a case.

    penalties/citations are Penalty/Citation rows (or anything with the same
    attributes). min_exposure is always 0; max_exposure sums every penalty
    whose amount could be computed. Unquantifiable penalties keep a None
    amount and are left out of the total.
    """
    now = now or utc_now()
    days_left = calculate_days_until_deadline(snapshot.due_date, now)
    has_itemized = snapshot.has_document(DocumentType.ITEMIZED_STATEMENT)

    penalty_rows = [
        PenaltyExposure(
            condition=p.condition,
            potential_penalty=p.penalty,
            calculated_amount=calculate_penalty_amount(snapshot.deposit_amount, p.penalty),
            likelihood=assess_penalty_likelihood(p.condition, days_left, has_itemized),
        )
        for p in penalties
    ]
    max_exposure = round_money(sum(p.calculated_amount for p in penalty_rows if p.calculated_amount is not None))

    total_deductions = snapshot.total_deductions
    report = ExposureReport(
        deposit_amount=snapshot.deposit_amount,
        deposit_interest=snapshot.deposit_interest,
        total_deductions=total_deductions,
        refund_amount=calculate_refund_amount(snapshot.deposit_amount, snapshot.deposit_interest, total_deductions),
        days_until_deadline=days_left,
        is_overdue=days_left < 0,
        penalties=penalty_rows,
        risk_factors=identify_risk_factors(snapshot, days_left),
        citations=[{"code": c.code, "title": c.title, "url": c.url} for c in citations],
        min_exposure=0.0,
        max_exposure=max_exposure,
    )
    logger.debug("Exposure: %d penalties, max %.2f", len(penalty_rows), max_exposure)
    return report
