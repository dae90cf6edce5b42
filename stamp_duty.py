"""
Stamp duty calculation.

The one place the rate table lives. Every screen that shows or charges an
amount (stamp selection, checkout, order creation) goes through `quote`.
"""
import math
import re
from typing import Dict, List, Optional

from pydantic import BaseModel

STAMP_DUTY_RATES: Dict[str, float] = {
    "sale_deed": 0.05,
    "lease_deed": 0.02,
    "gift_deed": 0.03,
    "power_of_attorney": 0.001,
}
DEFAULT_STAMP_DUTY_RATE = 0.02

# Flat fee for a printed stamp couriered to the customer
DELIVERY_SURCHARGE = 50
PHYSICAL_DELIVERY_TYPES = ("physical", "door")

# Upper bound keeps every computed amount inside a BSON int64
MAX_TRANSACTION_VALUE = 10 ** 15

DOCUMENT_TYPES: List[Dict[str, str]] = [
    {"value": "sale_deed", "label": "Sale Deed"},
    {"value": "lease_deed", "label": "Lease Deed"},
    {"value": "gift_deed", "label": "Gift Deed"},
    {"value": "power_of_attorney", "label": "Power of Attorney"},
    {"value": "agreement_to_sell", "label": "Agreement to Sell"},
    {"value": "mortgage_deed", "label": "Mortgage Deed"},
    {"value": "partition_deed", "label": "Partition Deed"},
    {"value": "release_deed", "label": "Release Deed"},
]

_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


class StampDutyQuote(BaseModel):
    document_type: Optional[str] = None
    transaction_value: int
    rate: float
    stamp_amount: int
    delivery_fee: int
    total_amount: int


def stamp_duty_rate(document_type: Optional[str]) -> float:
    return STAMP_DUTY_RATES.get(document_type or "", DEFAULT_STAMP_DUTY_RATE)


def parse_transaction_value(raw) -> int:
    """Read the leading integer of a form value ("150000", "1000.5" -> 1000). Unparsable -> 0."""
    if raw is None:
        return 0
    if isinstance(raw, bool):
        return 0
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw)
    match = _LEADING_INT_RE.match(str(raw))
    return int(match.group(1)) if match else 0


def valid_transaction_value(raw) -> bool:
    """True when `raw` starts with an integer between 0 and MAX_TRANSACTION_VALUE."""
    if raw is None or isinstance(raw, bool):
        return False
    if isinstance(raw, (int, float)):
        value = raw
    else:
        match = _LEADING_INT_RE.match(str(raw))
        if not match:
            return False
        value = int(match.group(1))
    return 0 <= value <= MAX_TRANSACTION_VALUE


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_stamp_duty(document_type: Optional[str], transaction_value) -> int:
    value = parse_transaction_value(transaction_value)
    return _round_half_up(value * stamp_duty_rate(document_type))


def delivery_fee(delivery_type: Optional[str]) -> int:
    return DELIVERY_SURCHARGE if delivery_type in PHYSICAL_DELIVERY_TYPES else 0


def quote(document_type: Optional[str], transaction_value, delivery_type: Optional[str] = "digital") -> StampDutyQuote:
    """Stamp amount, delivery fee and total for one checkout."""
    value = parse_transaction_value(transaction_value)
    stamp_amount = calculate_stamp_duty(document_type, value)
    fee = delivery_fee(delivery_type)
    return StampDutyQuote(
        document_type=document_type,
        transaction_value=value,
        rate=stamp_duty_rate(document_type),
        stamp_amount=stamp_amount,
        delivery_fee=fee,
        total_amount=stamp_amount + fee,
    )


def format_document_type(document_type: Optional[str]) -> str:
    """sale_deed -> Sale Deed"""
    if not document_type:
        return ""
    return " ".join(word[:1].upper() + word[1:] for word in document_type.split("_"))
