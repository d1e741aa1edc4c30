"""
Field rules for pricing records.

Single source of truth for CSV ingestion and the record editor. Each
validate_* function returns "" when the value is acceptable, otherwise a
message that can be shown next to the field or in the row error table.
"""

import math
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping, Optional

STORE_ID_PATTERN = re.compile(r"[A-Z]{2,4}-[0-9]{4,}")
SKU_PATTERN = re.compile(r"[A-Z0-9]{6,12}")

PRODUCT_NAME_MIN_LENGTH = 2
PRODUCT_NAME_MAX_LENGTH = 100
MAX_PRICE = Decimal("999999")

# Tried after ISO 8601. Month-first wins over day-first when both parse.
DATE_FORMATS = ["%Y/%m/%d", "%m/%d/%Y", "%d/%m/%Y"]

STORE_ID_REQUIRED = "Store ID is required"
STORE_ID_FORMAT = "Store ID must look like IND-0456 (2-4 uppercase letters, a hyphen, 4+ digits)"
SKU_REQUIRED = "SKU is required"
SKU_FORMAT = "SKU must be 6-12 uppercase letters or digits"
PRODUCT_NAME_REQUIRED = "Product name is required"
PRODUCT_NAME_TOO_SHORT = f"Product name must be at least {PRODUCT_NAME_MIN_LENGTH} characters"
PRODUCT_NAME_TOO_LONG = f"Product name must be at most {PRODUCT_NAME_MAX_LENGTH} characters"
PRICE_REQUIRED = "Price is required"
PRICE_NOT_NUMBER = "Price must be a number"
PRICE_NOT_POSITIVE = "Price must be greater than 0"
PRICE_TOO_HIGH = "Price must not exceed 999,999"
DATE_INVALID = "Invalid date format"

FIELD_LABELS = {
    "store_id": "Store ID",
    "sku": "SKU",
    "product_name": "Product Name",
    "price": "Price",
    "date": "Date",
}


def _as_text(value: Any) -> str:
    """Trimmed string form of a raw cell or form value."""
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value).strip()


# ===================
# PARSING
# ===================

def parse_price(value: Any) -> Optional[Decimal]:
    """
    Parse a price strictly.

    Returns None for blanks, non-numeric text, NaN and infinities.
    "12abc" is not a price.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float)):
        number = Decimal(str(value))
    else:
        text = _as_text(value)
        if not text:
            return None
        try:
            number = Decimal(text)
        except InvalidOperation:
            return None

    if not number.is_finite():
        return None
    return number


def parse_date(value: Any) -> Optional[date]:
    """Parse a calendar date. Returns None if blank or unparseable."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = _as_text(value)
    if not text:
        return None

    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def normalize_date(value: Any) -> Optional[str]:
    """ISO YYYY-MM-DD form of a date value, or None."""
    parsed = parse_date(value)
    return parsed.isoformat() if parsed else None


# ===================
# FIELD RULES
# ===================

def validate_store_id(value: Any) -> str:
    text = _as_text(value)
    if not text:
        return STORE_ID_REQUIRED
    if not STORE_ID_PATTERN.fullmatch(text):
        return STORE_ID_FORMAT
    return ""


def validate_sku(value: Any) -> str:
    text = _as_text(value)
    if not text:
        return SKU_REQUIRED
    if not SKU_PATTERN.fullmatch(text):
        return SKU_FORMAT
    return ""


def validate_product_name(value: Any) -> str:
    text = _as_text(value)
    if not text:
        return PRODUCT_NAME_REQUIRED
    if len(text) < PRODUCT_NAME_MIN_LENGTH:
        return PRODUCT_NAME_TOO_SHORT
    if len(text) > PRODUCT_NAME_MAX_LENGTH:
        return PRODUCT_NAME_TOO_LONG
    return ""


def validate_price(value: Any) -> str:
    if isinstance(value, str) or value is None:
        if not _as_text(value):
            return PRICE_REQUIRED

    number = parse_price(value)
    if number is None:
        return PRICE_NOT_NUMBER
    # Stored as a float, so tiny values that round to 0.0 are not positive
    if number <= 0 or float(number) <= 0:
        return PRICE_NOT_POSITIVE
    if number > MAX_PRICE:
        return PRICE_TOO_HIGH
    return ""


def validate_date(value: Any) -> str:
    """Date is optional; when present it must parse."""
    if not _as_text(value) and not isinstance(value, date):
        return ""
    if parse_date(value) is None:
        return DATE_INVALID
    return ""


FIELD_VALIDATORS: dict[str, Callable[[Any], str]] = {
    "store_id": validate_store_id,
    "sku": validate_sku,
    "product_name": validate_product_name,
    "price": validate_price,
    "date": validate_date,
}


def validate_record(fields: Mapping[str, Any]) -> dict[str, str]:
    """
    Run every field rule.

    Args:
        fields: Mapping with store_id, sku, product_name, price, date
                (missing keys are treated as blank)

    Returns:
        Failing fields only, in rule order: {field: message}
    """
    errors: dict[str, str] = {}
    for field, rule in FIELD_VALIDATORS.items():
        message = rule(fields.get(field))
        if message:
            errors[field] = message
    return errors
