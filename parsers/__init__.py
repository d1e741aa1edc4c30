"""
File parsers module.
"""

from parsers.pricing_csv_parser import (
    parse_pricing_csv,
    build_template_csv,
    ParsedRow,
    PricingCsvParseResult,
    CSV_COLUMNS,
    TEMPLATE_FILENAME,
)

__all__ = [
    "parse_pricing_csv",
    "build_template_csv",
    "ParsedRow",
    "PricingCsvParseResult",
    "CSV_COLUMNS",
    "TEMPLATE_FILENAME",
]
