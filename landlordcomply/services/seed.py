"""
Built-in jurisdiction catalogue.

Loaded at startup when SEED_JURISDICTIONS_ON_STARTUP is set. Safe to run
repeatedly: a jurisdiction is matched on (state_code, city) and a rule set
on (jurisdiction, version), so existing rows are left alone.

Sources: official state statutes and city ordinances, checked at the
version date below.
"""

import json
import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from landlordcomply.models.models import Citation, CoverageLevel, Jurisdiction, Penalty, RuleSet

logger = logging.getLogger(__name__)

SEED_VERSION = "2025.1"
SEED_EFFECTIVE_DATE = datetime(2025, 1, 1, tzinfo=timezone.utc)

_CA_1950_5 = {
    "code": "Cal. Civ. Code § 1950.5",
    "title": "Security deposits",
    "url": "https://leginfo.legislature.ca.gov/faces/codes_displaySection.xhtml?sectionNum=1950.5.&lawCode=CIV",
}
_CA_AB12 = {
    "code": "AB 12 (2023)",
    "title": "Security deposit limit reduction",
    "url": "https://leginfo.legislature.ca.gov/faces/billNavClient.xhtml?bill_id=202320240AB12",
}
_CA_BAD_FAITH = {
    "condition": "Bad faith retention",
    "penalty": "Up to 2x deposit amount",
    "description": "If landlord retains deposit in bad faith, tenant may recover up to twice the deposit amount.",
}
_NY_7_108 = {
    "code": "NY Gen. Oblig. Law § 7-108",
    "title": "Deposits and advances",
    "url": "https://www.nysenate.gov/legislation/laws/GOB/7-108",
}
_WA_59_18_280 = {
    "code": "RCW 59.18.280",
    "title": "Deposit - Statement and notice",
    "url": "https://app.leg.wa.gov/RCW/default.aspx?cite=59.18.280",
}
_WA_PENALTY = {
    "condition": "Failure to return or provide statement",
    "penalty": "Up to 2x deposit",
    "description": "Landlord liable for up to twice the deposit if they fail to comply.",
}
_IL_710 = {
    "code": "765 ILCS 710/1",
    "title": "Security Deposit Return Act",
    "url": "https://www.ilga.gov/legislation/ilcs/ilcs3.asp?ActID=2202",
}
_IL_PENALTY = {
    "condition": "Failure to return within deadline",
    "penalty": "2x deposit",
    "description": "Landlord who fails to comply is liable for twice the deposit amount.",
}

JURISDICTIONS: list[dict] = [
    {
        "state": "California",
        "state_code": "CA",
        "city": None,
        "coverage_level": CoverageLevel.STATE_ONLY,
        "rules": {
            "return_deadline_days": 21,
            "return_deadline_description": (
                "21 days from move-out, or 21 days from tenant providing forwarding address, whichever is later"
            ),
            "interest_required": False,
            "itemization_required": True,
            "itemization_requirements": (
                "Itemized statement required for any deductions. Must include copies of receipts for repairs "
                "over $125. As of April 1, 2025, landlords must provide dated photos of unit condition after "
                "tenant vacates."
            ),
            "max_deposit_months": 1,
            "receipt_requirement_threshold": 125,
            "allowed_delivery_methods": ["mail", "hand_delivery", "email"],
            "citations": [_CA_1950_5, _CA_AB12],
            "penalties": [_CA_BAD_FAITH],
        },
    },
    {
        "state": "California",
        "state_code": "CA",
        "city": "San Francisco",
        "coverage_level": CoverageLevel.FULL,
        "rules": {
            "return_deadline_days": 21,
            "return_deadline_description": "21 days from move-out",
            "interest_required": True,
            "interest_rate": 0.05,
            "interest_rate_source": (
                "San Francisco Rent Board annual rate based on 90-Day AA Financial Commercial Paper Rate"
            ),
            "interest_calculation_method": (
                "Simple interest, paid annually on anniversary of deposit receipt, or at termination. "
                "Interest not due if tenancy < 1 year."
            ),
            "itemization_required": True,
            "itemization_requirements": (
                "Itemized statement required. Receipts required for repairs over $125. "
                "Photos required per state law as of April 1, 2025."
            ),
            "max_deposit_months": 1,
            "receipt_requirement_threshold": 125,
            "allowed_delivery_methods": ["mail", "hand_delivery", "email"],
            "citations": [
                _CA_1950_5,
                {
                    "code": "SF Admin. Code Ch. 49",
                    "title": "Security deposit interest",
                    "url": "https://www.sf.gov/reports--security-deposits",
                },
                _CA_AB12,
            ],
            "penalties": [
                _CA_BAD_FAITH,
                {
                    "condition": "Failure to pay interest",
                    "penalty": "Interest plus penalties",
                    "description": "Landlord must pay interest at the rate set by the Rent Board annually.",
                },
            ],
        },
    },
    {
        "state": "California",
        "state_code": "CA",
        "city": "Los Angeles",
        "coverage_level": CoverageLevel.FULL,
        "rules": {
            "return_deadline_days": 21,
            "return_deadline_description": "21 days from move-out",
            "interest_required": False,
            "itemization_required": True,
            "itemization_requirements": (
                "Itemized statement required. Receipts required for repairs over $125. "
                "Photos required as of April 1, 2025."
            ),
            "max_deposit_months": 1,
            "receipt_requirement_threshold": 125,
            "allowed_delivery_methods": ["mail", "hand_delivery", "email"],
            "citations": [
                _CA_1950_5,
                {"code": "LAMC § 151.06", "title": "LA Rent Stabilization", "url": "https://housing.lacity.org/"},
                _CA_AB12,
            ],
            "penalties": [_CA_BAD_FAITH],
        },
    },
    {
        "state": "New York",
        "state_code": "NY",
        "city": None,
        "coverage_level": CoverageLevel.STATE_ONLY,
        "rules": {
            "return_deadline_days": 14,
            "return_deadline_description": "14 days from tenant vacating premises",
            "interest_required": True,
            "interest_rate": 0.01,
            "interest_rate_source": "Bank rate on deposits; landlord keeps 1% admin fee",
            "interest_calculation_method": "Interest on deposit, landlord may retain 1% admin fee",
            "itemization_required": True,
            "itemization_requirements": "Itemized statement required with any deductions",
            "max_deposit_months": 1,
            "allowed_delivery_methods": ["mail", "hand_delivery"],
            "citations": [_NY_7_108],
            "penalties": [
                {
                    "condition": "Failure to return",
                    "penalty": "Up to 2x deposit",
                    "description": "Willful violation may result in punitive damages up to twice the deposit.",
                },
            ],
        },
    },
    {
        "state": "New York",
        "state_code": "NY",
        "city": "New York City",
        "coverage_level": CoverageLevel.FULL,
        "rules": {
            "return_deadline_days": 14,
            "return_deadline_description": "14 days from tenant vacating premises",
            "interest_required": True,
            "interest_rate": 0.01,
            "interest_rate_source": "Prevailing bank rate; landlord keeps 1% admin fee",
            "interest_calculation_method": "Interest on deposit minus 1% admin fee",
            "itemization_required": True,
            "itemization_requirements": "Itemized statement required with receipts",
            "max_deposit_months": 1,
            "allowed_delivery_methods": ["mail", "hand_delivery"],
            "citations": [
                _NY_7_108,
                {"code": "NYC Admin. Code § 26-511", "title": "Rent Stabilization", "url": "https://www.nyc.gov/hpd"},
            ],
            "penalties": [
                {
                    "condition": "Failure to return within 14 days",
                    "penalty": "Up to 2x deposit",
                    "description": "Tenant may sue for return plus up to 2x deposit as damages.",
                },
            ],
        },
    },
    {
        "state": "Washington",
        "state_code": "WA",
        "city": None,
        "coverage_level": CoverageLevel.STATE_ONLY,
        "rules": {
            "return_deadline_days": 21,
            "return_deadline_description": "21 days from termination of rental agreement and vacation of premises",
            "interest_required": False,
            "itemization_required": True,
            "itemization_requirements": "Full statement of basis for retaining deposit with payment of any refund due",
            "allowed_delivery_methods": ["mail", "hand_delivery"],
            "citations": [_WA_59_18_280],
            "penalties": [_WA_PENALTY],
        },
    },
    {
        "state": "Washington",
        "state_code": "WA",
        "city": "Seattle",
        "coverage_level": CoverageLevel.FULL,
        "rules": {
            "return_deadline_days": 21,
            "return_deadline_description": "21 days from termination of rental agreement and vacation of premises",
            "interest_required": False,
            "itemization_required": True,
            "itemization_requirements": (
                "Full statement of basis for retaining deposit with payment of any refund due. "
                "Must provide move-in checklist."
            ),
            "allowed_delivery_methods": ["mail", "hand_delivery"],
            "citations": [
                _WA_59_18_280,
                {
                    "code": "SMC 7.24.030",
                    "title": "Seattle Rental Agreement Regulation",
                    "url": "https://library.municode.com/wa/seattle/codes/municipal_code",
                },
            ],
            "penalties": [_WA_PENALTY],
        },
    },
    {
        "state": "Massachusetts",
        "state_code": "MA",
        "city": None,
        "coverage_level": CoverageLevel.STATE_ONLY,
        "rules": {
            "return_deadline_days": 30,
            "return_deadline_description": "30 days from termination of tenancy",
            "interest_required": True,
            "interest_rate": 0.05,
            "interest_rate_source": "5% or actual interest rate of bank where deposited",
            "interest_calculation_method": "Annual interest payment required",
            "itemization_required": True,
            "itemization_requirements": "Sworn itemized statement of damages with written evidence",
            "max_deposit_months": 1,
            "allowed_delivery_methods": ["mail", "hand_delivery"],
            "citations": [
                {
                    "code": "M.G.L. c. 186 § 15B",
                    "title": "Security deposits; entry of premises",
                    "url": "https://malegislature.gov/Laws/GeneralLaws/PartII/TitleI/Chapter186/Section15B",
                },
            ],
            "penalties": [
                {
                    "condition": "Failure to comply with any requirement",
                    "penalty": "3x deposit",
                    "description": (
                        "Any failure to comply entitles tenant to treble damages or actual damages, "
                        "whichever is greater."
                    ),
                },
            ],
        },
    },
    {
        "state": "Illinois",
        "state_code": "IL",
        "city": None,
        "coverage_level": CoverageLevel.STATE_ONLY,
        "rules": {
            "return_deadline_days": 30,
            "return_deadline_description": "30 days (45 days if deductions exceed $400 for units with 5+ units)",
            "interest_required": False,
            "itemization_required": True,
            "itemization_requirements": "Itemized statement of damage required if deducting from deposit",
            "allowed_delivery_methods": ["mail", "hand_delivery"],
            "citations": [_IL_710],
            "penalties": [_IL_PENALTY],
        },
    },
    {
        "state": "Illinois",
        "state_code": "IL",
        "city": "Chicago",
        "coverage_level": CoverageLevel.FULL,
        "rules": {
            "return_deadline_days": 30,
            "return_deadline_description": "30 days (45 days if deductions exceed $400 for units with 5+ units)",
            "interest_required": True,
            "interest_rate": 0.01,
            "interest_rate_source": "Chicago RLTO - rate set annually by City Comptroller",
            "interest_calculation_method": "Interest paid annually or at end of tenancy",
            "itemization_required": True,
            "itemization_requirements": "Itemized statement with receipts for any deductions",
            "allowed_delivery_methods": ["mail", "hand_delivery"],
            "citations": [
                _IL_710,
                {
                    "code": "Chicago RLTO § 5-12-080",
                    "title": "Chicago Residential Landlord Tenant Ordinance",
                    "url": "https://www.chicago.gov/city/en/depts/doh/provdrs/renters/svcs/rents_rights.html",
                },
            ],
            "penalties": [
                _IL_PENALTY,
                {
                    "condition": "Failure to pay interest",
                    "penalty": "Amount plus penalties",
                    "description": "Must pay interest at city-mandated rate.",
                },
            ],
        },
    },
]


def build_rule_set(rules: dict, version: str = SEED_VERSION, effective_date: datetime = SEED_EFFECTIVE_DATE) -> RuleSet:
    fields = {k: v for k, v in rules.items() if k not in ("citations", "penalties", "allowed_delivery_methods")}
    return RuleSet(
        version=version,
        effective_date=effective_date,
        allowed_delivery_methods=json.dumps(rules.get("allowed_delivery_methods", [])),
        citations=[Citation(**c) for c in rules.get("citations", [])],
        penalties=[Penalty(**p) for p in rules.get("penalties", [])],
        **fields,
    )


async def seed_jurisdictions(session: AsyncSession, catalogue: list[dict] = JURISDICTIONS) -> int:
    """Insert missing jurisdictions and rule sets. Returns how many rule sets were added."""
    added = 0
    for entry in catalogue:
        city_clause = (
            Jurisdiction.city.is_(None) if entry["city"] is None else Jurisdiction.city == entry["city"]
        )
        result = await session.execute(
            select(Jurisdiction).where(Jurisdiction.state_code == entry["state_code"], city_clause)
        )
        jurisdiction = result.scalars().first()

        if jurisdiction is None:
            jurisdiction = Jurisdiction(
                state=entry["state"],
                state_code=entry["state_code"],
                city=entry["city"],
                coverage_level=entry["coverage_level"].value,
                rule_sets=[],
            )
            session.add(jurisdiction)
        elif any(rs.version == SEED_VERSION for rs in jurisdiction.rule_sets):
            continue

        jurisdiction.rule_sets.append(build_rule_set(entry["rules"]))
        added += 1
        logger.debug("Seeded %s", jurisdiction.display_name)

    await session.flush()
    if added:
        logger.info("Seeded %d jurisdiction rule sets", added)
    return added
