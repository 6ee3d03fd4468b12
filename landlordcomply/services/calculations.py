"""
Deposit Calculations
====================

Pure functions for security deposit compliance math: return deadlines,
days remaining, simple interest, refund totals, penalty multipliers and
item-value proration. No I/O; "now" is always injectable.

Money values are rounded half-up to cents.
"""

import math
import re
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Optional, Union

from landlordcomply.core.utc import to_utc, utc_now

DEFAULT_USEFUL_LIFE_MONTHS = 60
SECONDS_PER_DAY = 24 * 60 * 60
DAYS_PER_YEAR = 365

Number = Union[int, float, Decimal]

# Checked in order; the first hit wins.
_DOUBLE_RE = re.compile(r"(?<![\d.])2x|twice|double")
_TRIPLE_RE = re.compile(r"(?<![\d.])3x|triple|three times")
_MULTIPLIER_RE = re.compile(r"(?<![\d.])(\d+)\s*(?:x|times)\b")


def round_money(value: Number) -> float:
    """Round half-up to 2 decimals (2.675 -> 2.68, -2.675 -> -2.68)."""
    quantized = Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return float(quantized)


# =============================================================================
# Deadlines
# =============================================================================

def calculate_deadline(move_out_date: Union[datetime, date], deadline_days: int) -> datetime:
    """
    Due date for returning the deposit: move-out plus N calendar days.

    Calendar arithmetic handles month/year rollover and leap days
    (2024-02-15 + 21 days == 2024-03-07).
    """
    return to_utc(move_out_date) + timedelta(days=deadline_days)


def calculate_days_until_deadline(
    due_date: Union[datetime, date],
    from_date: Optional[Union[datetime, date]] = None,
) -> int:
    """
    Whole days until the deadline, negative once it has passed.

    Any time left counts as a day: 4 hours before the deadline is 1, and
    only the exact instant of the deadline is 0.
    """
    from_date = utc_now() if from_date is None else from_date
    delta = to_utc(due_date) - to_utc(from_date)
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)


def is_overdue(
    due_date: Union[datetime, date],
    from_date: Optional[Union[datetime, date]] = None,
) -> bool:
    return calculate_days_until_deadline(due_date, from_date) < 0


def get_deadline_urgency(days_left: int) -> str:
    """overdue (<0), critical (0-3), warning (4-7), normal (>7)."""
    if days_left < 0:
        return "overdue"
    if days_left <= 3:
        return "critical"
    if days_left <= 7:
        return "warning"
    return "normal"


def format_days_remaining(days_left: int) -> str:
    if days_left < 0:
        return f"{abs(days_left)}d overdue"
    if days_left == 0:
        return "Due today"
    if days_left == 1:
        return "1 day left"
    return f"{days_left} days left"


# =============================================================================
# Money
# =============================================================================

def calculate_interest(
    deposit_amount: Number,
    annual_rate: Optional[Number],
    lease_start_date: Union[datetime, date],
    lease_end_date: Union[datetime, date],
) -> float:
    """
    Simple interest over the lease term: principal x rate x years.

    Years are measured on a 365-day basis. A missing or non-positive rate
    yields 0.
    """
    if not annual_rate or annual_rate <= 0:
        return 0.0

    duration = to_utc(lease_end_date) - to_utc(lease_start_date)
    years = duration.total_seconds() / (SECONDS_PER_DAY * DAYS_PER_YEAR)
    return round_money(float(deposit_amount) * float(annual_rate) * years)


def calculate_refund_amount(
    deposit_amount: Number,
    deposit_interest: Number,
    total_deductions: Number,
) -> float:
    """Deposit + interest - deductions. Negative means the tenant owes a balance."""
    return round_money(float(deposit_amount) + float(deposit_interest) - float(total_deductions))


def _coerce_amount(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        amount = float(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError):
        return None
    if math.isnan(amount) or math.isinf(amount):
        return None
    return amount


def sum_deductions(deductions: Iterable[Any]) -> float:
    """
    Total of the deduction amounts.

    Accepts mappings or objects with an ``amount``; amounts given as strings
    are parsed, and anything non-numeric is skipped rather than rejected.
    """
    total = 0.0
    for deduction in deductions:
        raw = deduction.get("amount") if isinstance(deduction, dict) else getattr(deduction, "amount", None)
        amount = _coerce_amount(raw)
        if amount is not None:
            total += amount
    return round_money(total)


# =============================================================================
# Penalties
# =============================================================================

def parse_penalty_multiplier(penalty_text: Optional[str]) -> Optional[int]:
    """
    Extract a deposit multiplier from free-text penalty language.

    "twice the deposit" -> 2, "triple damages" -> 3, "4 times" -> 4.
    Returns None when nothing matches; callers treat that as
    "cannot quantify", never as a zero penalty.
    """
    if not penalty_text:
        return None
    text = penalty_text.lower()

    if _DOUBLE_RE.search(text):
        return 2
    if _TRIPLE_RE.search(text):
        return 3

    match = _MULTIPLIER_RE.search(text)
    if match:
        return int(match.group(1))
    return None


def calculate_penalty_amount(deposit_amount: Number, penalty_text: Optional[str]) -> Optional[float]:
    multiplier = parse_penalty_multiplier(penalty_text)
    if multiplier is None:
        return None
    return round_money(float(deposit_amount) * multiplier)


# =============================================================================
# Proration
# =============================================================================

def calculate_proration(item_age_months: Number, useful_life_months: Number = DEFAULT_USEFUL_LIFE_MONTHS) -> float:
    """
    Remaining-value fraction of an item, (life - age) / life, rounded to
    2 decimals. Fully depreciated items give 0.
    """
    if useful_life_months <= 0:
        raise ValueError("useful_life_months must be positive")
    if item_age_months >= useful_life_months:
        return 0.0
    remaining = (float(useful_life_months) - float(item_age_months)) / float(useful_life_months)
    return round_money(remaining)


def apply_proration(
    amount: Number,
    item_age_months: Number,
    useful_life_months: Number = DEFAULT_USEFUL_LIFE_MONTHS,
) -> float:
    """Chargeable share of amount after depreciation."""
    factor = calculate_proration(item_age_months, useful_life_months)
    return round_money(float(amount) * factor)
