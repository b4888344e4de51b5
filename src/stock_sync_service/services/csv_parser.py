"""CSV stock feed parsing."""

import csv
import io

import structlog

from stock_sync_service.exceptions import (
    ColumnNotFoundError,
    ConfigError,
    EmptyFeedError,
    NoDataError,
)
from stock_sync_service.models import FeedRow

logger = structlog.get_logger()


def decode_feed(raw: bytes) -> str:
    """Decode feed bytes as UTF-8 (BOM stripped), falling back to Latin-1."""
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def sniff_delimiter(header_line: str) -> str:
    """Semicolon only when the header has ``;`` and no ``,``."""
    if ";" in header_line and "," not in header_line:
        return ";"
    return ","


def _is_blank(record: list[str]) -> bool:
    return len(record) <= 1 and not "".join(record).strip()


class CsvStockParser:
    """Extracts (sku, quantity) pairs from a CSV feed.

    Quantities stay raw strings; numeric coercion belongs to reconciliation.
    """

    def parse(self, raw: bytes, sku_column: str, stock_column: str) -> list[FeedRow]:
        if not sku_column or not sku_column.strip() or not stock_column or not stock_column.strip():
            raise ConfigError("SKU and stock column names must be configured.")

        text = decode_feed(raw).lstrip()
        # Quoted fields may span lines, so records come from one reader over the body.
        delimiter = sniff_delimiter(text.split("\n", 1)[0])
        reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)
        records = [record for record in reader if not _is_blank(record)]
        if not records:
            raise EmptyFeedError("Could not parse CSV data.")

        header_record, *data_records = records
        headers = [header.strip() for header in header_record]
        lookup: dict[str, int] = {}
        for index, header in enumerate(headers):
            lookup.setdefault(header.lower(), index)

        sku_index = lookup.get(sku_column.strip().lower())
        stock_index = lookup.get(stock_column.strip().lower())
        if sku_index is None or stock_index is None:
            raise ColumnNotFoundError(
                requested=[sku_column, stock_column],
                available_headers=headers,
            )

        rows: list[FeedRow] = []
        needed = max(sku_index, stock_index)
        for fields in data_records:
            if len(fields) <= needed:
                continue
            rows.append(
                FeedRow(sku=fields[sku_index].strip(), quantity=fields[stock_index].strip())
            )

        if not rows:
            raise NoDataError()

        logger.info(
            "Feed parsed",
            rows=len(rows),
            delimiter=delimiter,
            dropped=len(data_records) - len(rows),
        )
        return rows
