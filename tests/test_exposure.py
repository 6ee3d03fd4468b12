"""
Tests for the penalty exposure estimator.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from landlordcomply.models.models import RiskLevel
from landlordcomply.services.exposure import assess_penalty_likelihood, estimate_exposure
from landlordcomply.services.quality_check import (
    CaseSnapshot,
    ChecklistSnapshot,
    DeductionSnapshot,
    TenantSnapshot,
)

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


@dataclass
class FakePenalty:
    condition: str
    penalty: str


@dataclass
class FakeCitation:
    code: str
    title: str
    url: Optional[str] = None


def snapshot(days_left: int = 10, **overrides) -> CaseSnapshot:
    data = dict(
        deposit_amount=1000.0,
        due_date=NOW + timedelta(days=days_left),
        tenants=[TenantSnapshot(name="Jane", is_primary=True, forwarding_address="9 Oak Ave")],
    )
    data.update(overrides)
    return CaseSnapshot(**data)


class TestLikelihood:

    def test_late_penalty_by_days_left(self):
        assert assess_penalty_likelihood("Failure to return within deadline", -1, False) == RiskLevel.HIGH
        assert assess_penalty_likelihood("Late return", 2, False) == RiskLevel.MEDIUM
        assert assess_penalty_likelihood("Late return", 10, False) == RiskLevel.LOW

    def test_bad_faith_is_low(self):
        assert assess_penalty_likelihood("Bad faith retention", -5, False) == RiskLevel.LOW

    def test_itemization_depends_on_statement(self):
        assert assess_penalty_likelihood("Failure to itemize", 10, False) == RiskLevel.MEDIUM
        assert assess_penalty_likelihood("Failure to itemize", 10, True) == RiskLevel.LOW


class TestEstimateExposure:

    def test_max_exposure_sums_quantified_penalties(self):
        penalties = [
            FakePenalty("Bad faith retention", "Up to 2x deposit amount"),
            FakePenalty("Failure to pay interest", "Interest plus penalties"),
            FakePenalty("Willful violation", "Triple damages"),
        ]
        report = estimate_exposure(snapshot(), penalties, now=NOW)
        amounts = [p.calculated_amount for p in report.penalties]
        assert amounts == [2000.0, None, 3000.0]
        assert report.min_exposure == 0.0
        assert report.max_exposure == 5000.0

    def test_fractional_multiplier_left_out(self):
        penalties = [
            FakePenalty("Late return", "1.5x deposit"),
            FakePenalty("Bad faith retention", "12x deposit"),
        ]
        report = estimate_exposure(snapshot(), penalties, now=NOW)
        assert [p.calculated_amount for p in report.penalties] == [None, 12000.0]
        assert report.max_exposure == 12000.0

    def test_overdue_case(self):
        report = estimate_exposure(snapshot(days_left=-3), [], now=NOW)
        assert report.is_overdue is True
        assert report.days_until_deadline == -3
        deadline = [r for r in report.risk_factors if r.category == "Deadline"]
        assert deadline[0].issue == "Notice is 3 days overdue"
        assert deadline[0].severity == RiskLevel.HIGH

    def test_documentation_factors(self):
        report = estimate_exposure(snapshot(document_types=set()), [], now=NOW)
        issues = [r.issue for r in report.risk_factors if r.category == "Documentation"]
        assert "Notice letter not yet generated" in issues
        assert "Itemized statement required but not generated" in issues

    def test_forwarding_address_not_requested(self):
        tenants = [TenantSnapshot(name="Jane", is_primary=True)]
        report = estimate_exposure(snapshot(tenants=tenants), [], now=NOW)
        forwarding = [r for r in report.risk_factors if r.category == "Forwarding Address"]
        assert forwarding[0].severity == RiskLevel.MEDIUM

    def test_deduction_and_checklist_factors(self):
        report = estimate_exposure(
            snapshot(
                deductions=[DeductionSnapshot(amount=200.0, risk_level="HIGH")],
                checklist=[ChecklistSnapshot(label="x", blocks_export=True)],
            ),
            [],
            now=NOW,
        )
        issues = {r.issue for r in report.risk_factors}
        assert "1 deduction(s) flagged as high risk" in issues
        assert "1 deduction(s) without supporting evidence" in issues
        assert "1 required item(s) incomplete" in issues
        assert report.refund_amount == 800.0

    def test_to_dict(self):
        report = estimate_exposure(
            snapshot(),
            [FakePenalty("Bad faith retention", "twice the deposit")],
            [FakeCitation("Cal. Civ. Code § 1950.5", "Security deposits")],
            now=NOW,
        )
        data = report.to_dict()
        assert data["penalties"][0]["likelihood"] == "LOW"
        assert data["citations"] == [{"code": "Cal. Civ. Code § 1950.5", "title": "Security deposits", "url": None}]
        assert data["max_exposure"] == 2000.0
