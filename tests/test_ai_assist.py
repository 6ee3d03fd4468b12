"""
Tests for the deduction writing assistant and risk scoring.
"""
from unittest.mock import AsyncMock

import httpx
import pytest

from landlordcomply.core.errors import ServiceUnavailableError
from landlordcomply.models.models import RiskLevel
from landlordcomply.services.ai_assist import (
    DeductionContext,
    GeminiAssistant,
    assess_deduction_risk_rule_based,
)


def context(**overrides) -> DeductionContext:
    data = dict(
        description="Carpet in the living room has a 3 inch burn mark near the window",
        category="REPAIRS",
        amount=250.0,
        has_evidence=True,
    )
    data.update(overrides)
    return DeductionContext(**data)


# ============================================================================
# RULE-BASED RISK
# ============================================================================

class TestRuleBasedRisk:

    def test_well_documented_is_low(self):
        result = assess_deduction_risk_rule_based(context())
        assert result.risk_level == RiskLevel.LOW
        assert result.factors == ["No significant risk factors identified"]
        assert result.source == "rules"

    def test_missing_evidence_is_medium(self):
        result = assess_deduction_risk_rule_based(context(has_evidence=False))
        assert result.risk_level == RiskLevel.MEDIUM
        assert "No supporting evidence attached" in result.factors

    def test_normal_wear_without_evidence_is_high(self):
        result = assess_deduction_risk_rule_based(context(has_evidence=False, damage_type="NORMAL_WEAR"))
        assert result.risk_level == RiskLevel.HIGH

    def test_old_item_adds_proration_advice(self):
        result = assess_deduction_risk_rule_based(context(item_age=72))
        assert result.risk_level == RiskLevel.MEDIUM
        assert "Consider proration based on item age" in result.recommendations

    def test_old_item_ignored_outside_cleaning_and_repairs(self):
        result = assess_deduction_risk_rule_based(context(category="UNPAID_RENT", item_age=72))
        assert result.risk_level == RiskLevel.LOW

    def test_brief_description(self):
        result = assess_deduction_risk_rule_based(context(description="Cleaning"))
        assert "Description is very brief" in result.factors
        assert result.risk_level == RiskLevel.LOW


# ============================================================================
# GEMINI CLIENT
# ============================================================================

class TestGeminiAssistant:

    @pytest.mark.asyncio
    async def test_improve_requires_key(self):
        assistant = GeminiAssistant(api_key="")
        with pytest.raises(ServiceUnavailableError):
            await assistant.improve_deduction_description(context())

    @pytest.mark.asyncio
    async def test_risk_falls_back_to_rules_without_key(self):
        assistant = GeminiAssistant(api_key="")
        result = await assistant.assess_deduction_risk(context(has_evidence=False))
        assert result.source == "rules"
        assert result.risk_level == RiskLevel.MEDIUM

    @pytest.mark.asyncio
    async def test_improve_uses_model_reply(self, monkeypatch):
        assistant = GeminiAssistant(api_key="test-key")
        monkeypatch.setattr(
            assistant,
            "_generate_json",
            AsyncMock(return_value={"description": "  Burn mark, 3in, living room.  ", "reasoning": "Specific"}),
        )
        improved = await assistant.improve_deduction_description(context())
        assert improved.description == "Burn mark, 3in, living room."
        assert improved.reasoning == "Specific"

    @pytest.mark.asyncio
    async def test_improve_provider_failure(self, monkeypatch):
        assistant = GeminiAssistant(api_key="test-key")
        monkeypatch.setattr(
            assistant, "_generate_json", AsyncMock(side_effect=httpx.ConnectError("down"))
        )
        with pytest.raises(ServiceUnavailableError):
            await assistant.improve_deduction_description(context())

    @pytest.mark.asyncio
    async def test_improve_rejects_empty_reply(self, monkeypatch):
        assistant = GeminiAssistant(api_key="test-key")
        monkeypatch.setattr(assistant, "_generate_json", AsyncMock(return_value={"description": " "}))
        with pytest.raises(ServiceUnavailableError):
            await assistant.improve_deduction_description(context())

    @pytest.mark.asyncio
    async def test_risk_uses_model_reply(self, monkeypatch):
        assistant = GeminiAssistant(api_key="test-key")
        monkeypatch.setattr(
            assistant,
            "_generate_json",
            AsyncMock(return_value={"riskLevel": "high", "factors": ["Wear"], "recommendations": ["Prorate"]}),
        )
        result = await assistant.assess_deduction_risk(context())
        assert result.risk_level == RiskLevel.HIGH
        assert result.source == "ai"

    @pytest.mark.asyncio
    async def test_risk_bad_reply_falls_back(self, monkeypatch):
        assistant = GeminiAssistant(api_key="test-key")
        monkeypatch.setattr(assistant, "_generate_json", AsyncMock(return_value={"riskLevel": "SEVERE"}))
        result = await assistant.assess_deduction_risk(context())
        assert result.source == "rules"

    def test_improve_prompt_includes_context(self):
        assistant = GeminiAssistant(api_key="test-key")
        prompt = assistant._build_improve_prompt(context(item_age=18, where_located="Bedroom"))
        assert "Item Age: 18 months" in prompt
        assert "Location: Bedroom" in prompt
        assert "Amount: $250.00" in prompt
