"""
Tests for the pre-send quality check.
"""
from datetime import datetime, timedelta, timezone

from landlordcomply.services.quality_check import (
    CaseSnapshot,
    ChecklistSnapshot,
    DeductionSnapshot,
    Severity,
    TenantSnapshot,
    run_quality_checks,
)

NOW = datetime(2025, 6, 1, 12, tzinfo=timezone.utc)


def ready_snapshot(**overrides) -> CaseSnapshot:
    """A case with everything in place."""
    data = dict(
        deposit_amount=2000.0,
        due_date=NOW + timedelta(days=10),
        move_out_date=NOW - timedelta(days=11),
        delivery_method="certified_mail",
        document_types={"NOTICE_LETTER", "ITEMIZED_STATEMENT"},
        deductions=[DeductionSnapshot(amount=300.0, risk_level="LOW", has_evidence=True)],
        checklist=[ChecklistSnapshot(label="Generate notice letter", completed=True, blocks_export=True)],
        tenants=[TenantSnapshot(name="Jane Tenant", is_primary=True, forwarding_address="1 New St")],
    )
    data.update(overrides)
    return CaseSnapshot(**data)


def check(result, check_id):
    return next((c for c in result.checks if c.id == check_id), None)


class TestQualityCheck:

    def test_everything_passes(self):
        result = run_quality_checks(ready_snapshot(), NOW)
        assert result.ready is True
        assert result.score == 100
        assert result.blockers == []
        assert result.warnings == []

    def test_check_order(self):
        result = run_quality_checks(ready_snapshot(), NOW)
        assert [c.id for c in result.checks] == [
            "move_out_date",
            "deadline_not_missed",
            "totals_reconcile",
            "notice_letter",
            "itemized_statement",
            "delivery_method",
            "forwarding_address",
            "checklist_complete",
            "deduction_evidence",
            "tenant_info",
        ]

    def test_overdue_blocks(self):
        result = run_quality_checks(ready_snapshot(due_date=NOW - timedelta(days=2)), NOW)
        deadline = check(result, "deadline_not_missed")
        assert deadline.passed is False
        assert deadline.severity == Severity.ERROR
        assert deadline.details == "OVERDUE by 2 days!"
        assert result.ready is False

    def test_deductions_exceeding_deposit_block(self):
        result = run_quality_checks(
            ready_snapshot(deductions=[DeductionSnapshot(amount=2500.0, has_evidence=True)]), NOW
        )
        assert check(result, "totals_reconcile").passed is False
        assert result.ready is False

    def test_itemized_statement_skipped_without_deductions(self):
        result = run_quality_checks(
            ready_snapshot(deductions=[], document_types={"NOTICE_LETTER"}), NOW
        )
        assert check(result, "itemized_statement") is None
        assert check(result, "deduction_evidence") is None
        assert result.ready is True

    def test_missing_notice_letter_blocks(self):
        result = run_quality_checks(ready_snapshot(document_types={"ITEMIZED_STATEMENT"}), NOW)
        notice = check(result, "notice_letter")
        assert notice.passed is False
        assert notice.severity == Severity.ERROR
        assert notice in result.blockers
        assert result.ready is False

    def test_missing_delivery_method(self):
        result = run_quality_checks(ready_snapshot(delivery_method=None), NOW)
        assert check(result, "delivery_method").passed is False
        assert result.ready is False

    def test_forwarding_address_is_only_a_warning(self):
        tenants = [TenantSnapshot(name="Jane Tenant", is_primary=True)]
        result = run_quality_checks(ready_snapshot(tenants=tenants), NOW)
        forwarding = check(result, "forwarding_address")
        assert forwarding.passed is False
        assert forwarding.severity == Severity.WARNING
        assert result.ready is True
        assert result.score == 90

    def test_refused_forwarding_address_counts_as_documented(self):
        tenants = [TenantSnapshot(name="Jane", is_primary=True, forwarding_address_status="REFUSED")]
        result = run_quality_checks(ready_snapshot(tenants=tenants), NOW)
        assert check(result, "forwarding_address").details == "Tenant refused (documented)"

    def test_high_risk_always_warns(self):
        deductions = [DeductionSnapshot(amount=100.0, risk_level="HIGH", has_evidence=True)]
        result = run_quality_checks(ready_snapshot(deductions=deductions), NOW)
        high_risk = check(result, "high_risk_reviewed")
        assert high_risk.passed is False
        assert high_risk.severity == Severity.WARNING
        assert result.ready is True

    def test_evidence_counts_attachments(self):
        deductions = [DeductionSnapshot(amount=100.0, attachment_count=2)]
        result = run_quality_checks(ready_snapshot(deductions=deductions), NOW)
        assert check(result, "deduction_evidence").passed is True

    def test_incomplete_blocking_item(self):
        checklist = [ChecklistSnapshot(label="Generate notice letter", completed=False, blocks_export=True)]
        result = run_quality_checks(ready_snapshot(checklist=checklist), NOW)
        item = check(result, "checklist_complete")
        assert item.passed is False
        assert item.details == "1 incomplete: Generate notice letter"

    def test_placeholder_tenant_without_name(self):
        result = run_quality_checks(ready_snapshot(tenants=[TenantSnapshot(name="  ", is_primary=True)]), NOW)
        assert check(result, "tenant_info").passed is False

    def test_to_dict_shape(self):
        data = run_quality_checks(ready_snapshot(delivery_method=""), NOW).to_dict()
        assert set(data) == {"ready", "score", "checks", "blockers", "warnings"}
        assert data["blockers"][0]["id"] == "delivery_method"
        assert data["blockers"][0]["severity"] == "error"
