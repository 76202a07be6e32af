"""Parsing helpers for tabular transaction files."""
from __future__ import annotations

import csv
import io
import re
import unicodedata
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional


TARGET_FIELDS = ("date", "description", "amount", "merchant", "notes", "category", "type")
REQUIRED_FIELDS = ("date", "description", "amount")

HEADER_SYNONYMS: Dict[str, set[str]] = {
    "date": {
        "date",
        "transactiondate",
        "transactiondt",
        "posteddate",
        "postingdate",
        "bookingdate",
        "valuedate",
        "dtposted",
        "data",
        "day",
        "dt",
    },
    "description": {
        "description",
        "desc",
        "details",
        "memo",
        "narrative",
        "narration",
        "transaction",
        "transactiondescription",
        "descricao",
    },
    "amount": {
        "amount",
        "value",
        "total",
        "sum",
        "trnamt",
        "transactionamount",
        "valor",
    },
    "merchant": {
        "merchant",
        "merchantname",
        "payee",
        "vendor",
        "counterparty",
        "name",
    },
    "notes": {
        "notes",
        "note",
        "comment",
        "comments",
        "remarks",
        "reference",
    },
    "category": {
        "category",
        "categoria",
        "cat",
        "group",
    },
    "type": {
        "type",
        "transactiontype",
        "trntype",
        "tipo",
    },
}

TYPE_ALIASES: Dict[str, str] = {
    "income": "income",
    "credit": "income",
    "deposit": "income",
    "cr": "income",
    "salary": "income",
    "expense": "expense",
    "debit": "expense",
    "dr": "expense",
    "payment": "expense",
    "withdrawal": "expense",
    "purchase": "expense",
}

CURRENCY_PREFIXES = {
    "R$": "BRL",
    "$": "USD",
    "€": "EUR",
    "£": "GBP",
}

DECIMAL_COMMA_CURRENCIES = {"BRL", "EUR"}

DATE_FORMATS = [
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d/%m/%Y",
    "%m/%d/%Y",
    "%d-%m-%Y",
    "%m-%d-%Y",
    "%d.%m.%Y",
    "%Y%m%d",
    "%d %b %Y",
    "%b %d, %Y",
    "%Y-%m-%d %H:%M:%S",
    "%d/%m/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M:%S",
]


@dataclass
class ParsedTable:
    """Header names plus raw row dicts of a decoded CSV file."""

    columns: List[str]
    rows: List[Dict[str, str]]
    delimiter: str
    encoding: str


class FileFormatError(ValueError):
    """Raised when a file cannot be read as a delimited table."""


def normalize_key(value: str) -> str:
    normalized = unicodedata.normalize("NFKD", value)
    normalized = normalized.encode("ASCII", "ignore").decode("ASCII")
    normalized = re.sub(r"[^a-z0-9]", "", normalized.lower())
    return normalized


def decode_bytes(data: bytes) -> tuple[str, str]:
    try:
        text = data.decode("utf-8-sig")
        return text, "utf-8"
    except UnicodeDecodeError:
        text = data.decode("latin-1")
        return text, "latin-1"


def parse_csv(data: bytes) -> ParsedTable:
    """Decode ``data`` and split it into header names and row dicts.

    Blank lines are dropped. Cells are stripped. Extra cells beyond the
    header are ignored and missing trailing cells read as empty strings.
    """
    text, encoding = decode_bytes(data)
    if not text.strip():
        raise FileFormatError("File is empty.")

    sample = text[:2048]
    delimiter = ","
    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=",;\t")
        if dialect.delimiter in {",", ";", "\t"}:
            delimiter = dialect.delimiter
    except csv.Error:
        delimiter = ","

    reader = csv.reader(io.StringIO(text), delimiter=delimiter)
    try:
        header = next(reader)
    except StopIteration:
        raise FileFormatError("File has no header row.") from None
    except csv.Error as exc:
        raise FileFormatError(f"Could not read CSV header: {exc}") from None

    columns = [column.strip() for column in header]
    if not any(columns):
        raise FileFormatError("File has no header row.")
    seen: set[str] = set()
    for column in columns:
        if not column:
            raise FileFormatError("Header contains an empty column name.")
        if column in seen:
            raise FileFormatError(f"Header contains duplicate column '{column}'.")
        seen.add(column)

    rows: List[Dict[str, str]] = []
    try:
        for record in reader:
            if not any(cell.strip() for cell in record):
                continue
            cells = [cell.strip() for cell in record]
            cells += [""] * (len(columns) - len(cells))
            rows.append(dict(zip(columns, cells)))
    except csv.Error as exc:
        raise FileFormatError(f"Malformed CSV near line {reader.line_num}: {exc}") from None

    return ParsedTable(columns=columns, rows=rows, delimiter=delimiter, encoding=encoding)


def suggest_mapping(columns: Iterable[str]) -> dict[str, str]:
    """Guess ``{source_column: target_field}`` from well-known header names."""
    mapping: dict[str, str] = {}
    taken: set[str] = set()
    for column in columns:
        normalized = normalize_key(column)
        for target, synonyms in HEADER_SYNONYMS.items():
            if target in taken:
                continue
            if normalized in synonyms:
                mapping[column] = target
                taken.add(target)
                break
    return mapping


def parse_amount(value: Optional[str]) -> tuple[Optional[float], Optional[str], List[str]]:
    """Parse a monetary string.

    Accepts formats like "1234.56", "1,234.56", "1.234,56", "R$ 1.234,56",
    "USD 12.00" and "(1,234.56)" for negatives.

    Returns (amount, currency, warnings); amount is None when unparseable.
    """
    warnings: List[str] = []
    if value is None:
        return None, None, ["Missing amount"]

    cleaned = value.strip()
    if not cleaned:
        return None, None, ["Missing amount"]

    negative = False
    if cleaned.startswith("-"):
        negative = True
        cleaned = cleaned[1:].strip()
    elif cleaned.startswith("+"):
        cleaned = cleaned[1:].strip()

    currency: Optional[str] = None
    for prefix, code in CURRENCY_PREFIXES.items():
        if cleaned.startswith(prefix):
            currency = code
            cleaned = cleaned[len(prefix) :].strip()
            break

    alpha_prefix = re.match(r"^([A-Za-z]{3})\s*", cleaned)
    if alpha_prefix:
        currency = alpha_prefix.group(1).upper()
        cleaned = cleaned[alpha_prefix.end() :]

    if cleaned.startswith("(") and cleaned.endswith(")"):
        negative = True
        cleaned = cleaned[1:-1]
    if cleaned.startswith("-"):
        negative = True
        cleaned = cleaned[1:]
    elif cleaned.startswith("+"):
        cleaned = cleaned[1:]
    if cleaned.endswith("-"):
        negative = True
        cleaned = cleaned[:-1]
    cleaned = cleaned.replace(" ", "")

    comma_count = cleaned.count(",")
    dot_count = cleaned.count(".")

    if comma_count and dot_count:
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "")
            cleaned = cleaned.replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif comma_count:
        # A lone comma is a decimal mark only with one or two digits after it,
        # or for currencies that write amounts that way.
        if currency not in DECIMAL_COMMA_CURRENCIES and re.fullmatch(r"\d{1,3}(,\d{3})+", cleaned):
            cleaned = cleaned.replace(",", "")
        elif comma_count == 1 and (
            currency in DECIMAL_COMMA_CURRENCIES or re.fullmatch(r"\d*,\d{1,2}", cleaned)
        ):
            cleaned = cleaned.replace(",", ".")

    if not re.fullmatch(r"\d+(\.\d+)?|\.\d+", cleaned):
        warnings.append(f"Could not parse amount '{value}'.")
        return None, currency, warnings

    amount = float(cleaned)
    if negative:
        amount = -amount

    return amount, currency, warnings


def parse_type(raw_value: Optional[str]) -> Optional[str]:
    if not raw_value:
        return None
    return TYPE_ALIASES.get(normalize_key(raw_value))


def parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    raw = value.strip()
    if not raw:
        return None

    try:
        return date.fromisoformat(raw)
    except ValueError:
        pass

    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()
    except ValueError:
        pass

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue

    return None
