"""
LandlordComply - Deduction Writing Assistant
Gemini (Google Generative Language REST API) rewrites deduction
descriptions into specific, court-defensible language and rates how likely
a deduction is to be contested.

Risk assessment always works: without an API key, or when the call fails,
the rule-based assessment answers instead.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from landlordcomply.core.config import get_settings
from landlordcomply.core.errors import ServiceUnavailableError
from landlordcomply.models.models import DeductionCategory, RiskLevel

logger = logging.getLogger(__name__)

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


@dataclass
class DeductionContext:
    """What the assistant knows about one deduction."""
    description: str
    category: str
    amount: float
    item_age: Optional[int] = None  # months
    damage_type: Optional[str] = None
    has_evidence: bool = False
    what_happened: Optional[str] = None
    where_located: Optional[str] = None
    why_beyond_wear: Optional[str] = None
    invoice_info: Optional[str] = None
    jurisdiction_state: Optional[str] = None


@dataclass
class ImprovedDeduction:
    description: str
    reasoning: str


@dataclass
class RiskAssessment:
    risk_level: RiskLevel
    factors: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    source: str = "rules"

    def to_dict(self) -> dict[str, Any]:
        return {
            "risk_level": self.risk_level.value,
            "factors": self.factors,
            "recommendations": self.recommendations,
            "source": self.source,
        }


def assess_deduction_risk_rule_based(context: DeductionContext) -> RiskAssessment:
    """
    Score a deduction on the usual grounds for a tenant dispute.

    +2 no evidence, +3 marked normal wear, +2 cleaning/repairs on an item
    older than five years, +1 a description under 20 characters.
    Score >= 4 is HIGH, >= 2 MEDIUM, else LOW.
    """
    factors: list[str] = []
    recommendations: list[str] = []
    score = 0

    if not context.has_evidence:
        score += 2
        factors.append("No supporting evidence attached")
        recommendations.append("Attach photos, receipts, or invoices")

    if context.damage_type == "NORMAL_WEAR":
        score += 3
        factors.append("Marked as normal wear and tear - typically not deductible")
        recommendations.append("Review if this damage is truly beyond normal use")

    if context.category in (DeductionCategory.CLEANING.value, DeductionCategory.REPAIRS.value):
        if context.item_age and context.item_age > 60:
            score += 2
            factors.append("Item age exceeds typical useful life")
            recommendations.append("Consider proration based on item age")

    if len(context.description.strip()) < 20:
        score += 1
        factors.append("Description is very brief")
        recommendations.append("Add specific details about location, extent, and cost basis")

    if score >= 4:
        level = RiskLevel.HIGH
    elif score >= 2:
        level = RiskLevel.MEDIUM
    else:
        level = RiskLevel.LOW

    return RiskAssessment(
        risk_level=level,
        factors=factors or ["No significant risk factors identified"],
        recommendations=recommendations or ["Documentation appears adequate"],
    )


class GeminiAssistant:
    """Thin client for the Gemini generateContent endpoint."""

    API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.ai_api_key
        self.model = model or settings.gemini_model

    @property
    def is_available(self) -> bool:
        return bool(self.api_key)

    async def improve_deduction_description(self, context: DeductionContext) -> ImprovedDeduction:
        """
        Rewrite a deduction description.

        Raises ServiceUnavailableError when no key is configured or the
        provider call fails; there is no offline rewrite.
        """
        if not self.is_available:
            raise ServiceUnavailableError("AI features are not available - API key not configured")

        try:
            data = await self._generate_json(self._build_improve_prompt(context))
            description = str(data["description"]).strip()
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.error("Gemini description rewrite failed: %s", e)
            raise ServiceUnavailableError("Failed to improve description. Please try again.") from e

        if not description:
            raise ServiceUnavailableError("Failed to improve description. Please try again.")
        return ImprovedDeduction(description=description, reasoning=str(data.get("reasoning", "")))

    async def assess_deduction_risk(self, context: DeductionContext) -> RiskAssessment:
        if not self.is_available:
            return assess_deduction_risk_rule_based(context)

        try:
            data = await self._generate_json(self._build_risk_prompt(context))
            return RiskAssessment(
                risk_level=RiskLevel(str(data["riskLevel"]).upper()),
                factors=[str(f) for f in data.get("factors", [])],
                recommendations=[str(r) for r in data.get("recommendations", [])],
                source="ai",
            )
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            logger.warning("Gemini risk assessment failed, using rules: %s", e)
            return assess_deduction_risk_rule_based(context)

    # -------------------------------------------------------------------------

    def _build_improve_prompt(self, c: DeductionContext) -> str:
        lines = [
            "You are a legal writing assistant helping landlords write clear, specific, factual "
            "descriptions for security deposit deductions. Your goal is to help create descriptions "
            "that would hold up in small claims court.",
            "",
            "IMPORTANT GUIDELINES:",
            "- Be specific and factual, not vague or emotional",
            "- Include measurements, locations, and observable conditions when possible",
            "- Reference documentation and evidence when available",
            '- Avoid legal conclusions (don\'t say "tenant is liable")',
            "- Use neutral, professional language",
            "- Keep it concise but complete",
            "",
            "ORIGINAL DEDUCTION:",
            f"Category: {c.category}",
            f"Amount: ${c.amount:.2f}",
            f"Original Description: {c.description}",
        ]
        if c.item_age:
            lines.append(f"Item Age: {c.item_age} months")
        if c.damage_type:
            lines.append(f"Damage Type: {c.damage_type}")
        lines.append(
            "Supporting evidence: Yes (photos/receipts attached)"
            if c.has_evidence
            else "Supporting evidence: None attached"
        )
        lines += [
            "",
            "ADDITIONAL CONTEXT FROM LANDLORD:",
            f"What happened: {c.what_happened or 'Not provided'}",
            f"Location: {c.where_located or 'Not provided'}",
            f"Why beyond normal wear: {c.why_beyond_wear or 'Not provided'}",
            f"Invoice/repair info: {c.invoice_info or 'Not provided'}",
            "",
            "Please provide:",
            "1. An improved description (1-3 sentences) that is specific, factual, and court-defensible",
            "2. Brief reasoning explaining what makes this description stronger",
            "",
            "Respond in this exact JSON format:",
            '{"description": "Your improved description here", "reasoning": "Brief explanation of improvements made"}',
        ]
        return "\n".join(lines)

    def _build_risk_prompt(self, c: DeductionContext) -> str:
        return f"""You are analyzing a security deposit deduction for risk of being contested or ruled invalid in court.

DEDUCTION DETAILS:
Category: {c.category}
Amount: ${c.amount:.2f}
Description: {c.description}
Item Age: {f'{c.item_age} months' if c.item_age else 'Unknown'}
Damage Type: {c.damage_type or 'Not specified'}
Has Evidence Attached: {'Yes' if c.has_evidence else 'No'}
State: {c.jurisdiction_state or 'Unknown'}

RISK FACTORS TO CONSIDER:
- Normal wear and tear (not deductible in most states)
- Age and expected lifespan of items (proration may apply)
- Documentation and evidence quality
- Clarity and specificity of description
- Amount reasonableness

Respond in this exact JSON format:
{{"riskLevel": "LOW" | "MEDIUM" | "HIGH", "factors": ["..."], "recommendations": ["..."]}}

LOW = Strong case, well-documented, clearly beyond normal wear
MEDIUM = Some concerns or missing documentation
HIGH = Likely wear/tear, weak evidence, or commonly contested"""

    async def _generate_json(self, prompt: str) -> dict:
        """POST a prompt, return the first JSON object in the reply."""
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": 0.2, "responseMimeType": "application/json"},
        }
        async with httpx.AsyncClient(timeout=30.0) as client:
            response = await client.post(
                self.API_URL.format(model=self.model),
                params={"key": self.api_key},
                json=payload,
            )
            response.raise_for_status()

        body = response.json()
        text = body["candidates"][0]["content"]["parts"][0]["text"]
        match = _JSON_OBJECT_RE.search(text)
        if not match:
            raise ValueError("Could not parse AI response")
        data = json.loads(match.group(0))
        if not isinstance(data, dict):
            raise ValueError("AI response is not an object")
        return data


_assistant: Optional[GeminiAssistant] = None


def get_ai_assistant() -> GeminiAssistant:
    """Get or create the assistant singleton."""
    global _assistant
    if _assistant is None:
        _assistant = GeminiAssistant()
    return _assistant
