"""
CSV parser for bulk pricing uploads.

Reads the pricing feed (Store ID, SKU, Product Name, Price, Date),
runs the record validator on every row and keeps every failing message
so the uploader sees the full error table, not just the first problem.
"""

from dataclasses import dataclass, field
from io import BytesIO
from typing import Union
import structlog

import pandas as pd

from exceptions import CsvParseError
from utils.record_validator import validate_record

logger = structlog.get_logger(__name__)

CSV_COLUMNS = ["Store ID", "SKU", "Product Name", "Price", "Date"]

COLUMN_FIELDS = {
    "Store ID": "store_id",
    "SKU": "sku",
    "Product Name": "product_name",
    "Price": "price",
    "Date": "date",
}

TEMPLATE_FILENAME = "pricing-feed-template.csv"

TEMPLATE_ROWS = [
    ["IND-0456", "ABC123", "iPhone 15 Pro", "999.99", "2026-02-06"],
    ["IND-0456", "ABC124", "iPhone 15 Pro Max", "1199.99", "2026-02-06"],
    ["USA-0789", "DEF456", 'MacBook Pro 16"', "2499.99", "2026-02-05"],
]


@dataclass
class ParsedRow:
    """One data row after validation. Never persisted."""
    row_index: int
    store_id: str
    sku: str
    product_name: str
    price: str
    date: str
    valid: bool = True
    errors: list[str] = field(default_factory=list)

    @property
    def key(self) -> tuple[str, str]:
        return (self.store_id, self.sku)

    def fields(self) -> dict[str, str]:
        """Raw field values keyed like the record schema."""
        return {
            "store_id": self.store_id,
            "sku": self.sku,
            "product_name": self.product_name,
            "price": self.price,
            "date": self.date,
        }


@dataclass
class PricingCsvParseResult:
    """Result of parsing a pricing CSV."""
    rows: list[ParsedRow] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.rows)

    @property
    def valid_rows(self) -> list[ParsedRow]:
        return [r for r in self.rows if r.valid]

    @property
    def invalid_rows(self) -> list[ParsedRow]:
        return [r for r in self.rows if not r.valid]

    def error_messages(self) -> list[str]:
        """Flat 'Row N: message' list for display."""
        return [
            f"Row {row.row_index}: {error}"
            for row in self.invalid_rows
            for error in row.errors
        ]


def parse_pricing_csv(content: Union[bytes, str, BytesIO]) -> PricingCsvParseResult:
    """
    Parse and validate a pricing CSV.

    Args:
        content: Raw file bytes, decoded text, or a BytesIO

    Returns:
        PricingCsvParseResult with one ParsedRow per non-empty data row

    Raises:
        CsvParseError: If the file is empty, unreadable, or misses columns
    """
    df = _load_csv(content)

    missing = [col for col in CSV_COLUMNS if col not in df.columns]
    if missing:
        logger.warning("csv_missing_columns", missing=missing)
        raise CsvParseError(
            message=f"Missing required columns: {', '.join(missing)}",
            details={"missing": missing, "expected": CSV_COLUMNS}
        )

    extra = [col for col in df.columns if col not in COLUMN_FIELDS]
    if extra:
        logger.debug("csv_extra_columns_ignored", columns=extra)

    result = PricingCsvParseResult()

    for position, (_, row) in enumerate(df.iterrows()):
        row_num = position + 2  # 1-indexed + header

        values = {
            field_name: _cell(row.get(column))
            for column, field_name in COLUMN_FIELDS.items()
        }

        # Skip blank lines and fully empty rows (",,,,")
        if not any(values.values()):
            continue

        row_errors = list(validate_record(values).values())

        result.rows.append(ParsedRow(
            row_index=row_num,
            valid=not row_errors,
            errors=row_errors,
            **values,
        ))

    logger.info(
        "csv_parsed",
        total=result.total,
        valid=len(result.valid_rows),
        invalid=len(result.invalid_rows)
    )

    return result


def build_template_csv() -> bytes:
    """Downloadable template: header plus sample rows."""
    df = pd.DataFrame(TEMPLATE_ROWS, columns=CSV_COLUMNS)
    return df.to_csv(index=False, lineterminator="\n").encode("utf-8")


# ===================
# HELPER FUNCTIONS
# ===================

def _load_csv(content: Union[bytes, str, BytesIO]) -> pd.DataFrame:
    """Load CSV into a DataFrame of strings."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    buffer = BytesIO(content) if isinstance(content, bytes) else content

    header_width = len(CSV_COLUMNS)

    def _truncate_bad_line(bad_line: list[str]) -> list[str]:
        # Rows with extra cells keep their first columns and still get validated
        logger.debug("csv_row_truncated", cells=len(bad_line))
        return bad_line[:header_width]

    try:
        df = pd.read_csv(
            buffer,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=False,
            index_col=False,
            encoding="utf-8-sig",
            engine="python",
            on_bad_lines=_truncate_bad_line,
        )
    except pd.errors.EmptyDataError:
        raise CsvParseError(message="CSV file is empty")
    except (pd.errors.ParserError, UnicodeDecodeError, ValueError) as e:
        logger.error("csv_read_failed", error=str(e))
        raise CsvParseError(
            message="Failed to read CSV file",
            details={"original_error": str(e)}
        )

    df.columns = [str(col).strip() for col in df.columns]
    return df


def _cell(value) -> str:
    """Trimmed cell text ('' for missing cells)."""
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    return str(value).strip()
