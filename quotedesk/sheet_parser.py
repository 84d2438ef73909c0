"""
Google Sheets response parser.
Converts raw sheet rows into records, lead rows and product rows.
"""

import re
from typing import Dict, Any, List, Optional
from datetime import datetime, timezone

# Fields a sync configuration may map to sheet columns
LEAD_FIELDS = (
    "lead_date",
    "customer_name",
    "phone",
    "email",
    "location",
    "project_type",
    "budget_preference",
    "notes",
)

# Product fields a brand sheet may map, in mapping order
PRODUCT_FIELDS = (
    "name",
    "description",
    "category",
    "finish_color",
    "series",
    "model_code",
    "size",
    "mrp",
    "landing_price",
    "client_price",
    "quotation_price",
    "quantity",
)

# Header fragments (lowercase) that identify each product field when a brand
# has no mapping of its own. Each entry is a list of alternatives; all words of
# one alternative must appear in the header.
_PRODUCT_HEADER_HINTS = {
    "name": [("name",), ("product",)],
    "description": [("desc",)],
    "category": [("categ",), ("area",)],
    "finish_color": [("finish",), ("color",)],
    "series": [("series",)],
    "model_code": [("model",), ("code",)],
    "size": [("size",)],
    "mrp": [("mrp",)],
    "landing_price": [("offer",)],
    "client_price": [("client", "price")],
    "quotation_price": [("yds price",)],
    "quantity": [("qty",), ("quant",)],
}

_PRICE_FIELDS = ("mrp", "landing_price", "client_price", "quotation_price")
_LEADING_NUMBER = re.compile(r"[-+]?(\d+\.?\d*|\.\d+)")

_DATE_SEPARATORS = re.compile(r"[/\-.]")

# Month-name layouts seen in hand-kept sheets, e.g. "Feb 20, 2024", "20 February 2024"
_TEXT_DATE_FORMATS = (
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
    "%B %d %Y",
    "%d %b %Y",
    "%d %B %Y",
    "%d-%b-%Y",
    "%d-%B-%Y",
)


def rows_to_records(headers: List[str], rows: List[List[Any]]) -> List[Dict[str, Any]]:
    """
    Map each row to a dict keyed by header.

    Args:
        headers: Header row
        rows: Data rows; short rows are padded with ""

    Returns:
        One record per row
    """
    records = []
    for row in rows:
        record = {}
        for index, header in enumerate(headers):
            value = row[index] if index < len(row) else ""
            record[header] = "" if value is None else value
        records.append(record)
    return records


def split_header(values: List[List[Any]], header_index: int):
    """
    Split sheet values into header row and data rows.

    Args:
        values: All rows returned by the API
        header_index: 0-based index of the header row

    Returns:
        (headers, rows) tuple, or None if the header row does not exist
    """
    if header_index < 0 or header_index >= len(values):
        return None
    headers = [str(h) for h in (values[header_index] or [])]
    return headers, values[header_index + 1:]


def _build_date(year: str, month: str, day: str) -> Optional[datetime]:
    try:
        return datetime(int(year), int(month), int(day), tzinfo=timezone.utc)
    except ValueError:
        return None


def _parse_text_date(text: str) -> Optional[datetime]:
    text = " ".join(text.split())
    for fmt in _TEXT_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def parse_lead_date(value: Any, now: datetime) -> datetime:
    """
    Parse a date cell as written by humans.

    Tries ISO 8601 first, then DD/MM/YYYY, then MM/DD/YYYY (separators
    "/", "-" or "."), then English month names such as "Feb 20, 2024" or
    "20-Feb-2024". Anything else falls back to ``now``.

    Args:
        value: Cell value
        now: Fallback timestamp

    Returns:
        Timezone-aware datetime
    """
    text = str(value or "").strip()
    if not text:
        return now

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    except ValueError:
        pass

    parts = _DATE_SEPARATORS.split(text)
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        return _parse_text_date(text) or now

    first, second, year = parts
    if len(year) == 4 and len(first) <= 2 and len(second) <= 2:
        day_first = _build_date(year, second, first)
        if day_first is not None:
            return day_first

    month_first = _build_date(year, first, second)
    if month_first is not None:
        return month_first
    return now


def _cell(record: Dict[str, Any], column: Optional[str]) -> Any:
    if not column:
        return None
    value = record.get(column, "")
    return value.strip() if isinstance(value, str) else value


def map_leads(
    records: List[Dict[str, Any]],
    column_mapping: Dict[str, str],
    now: datetime
) -> List[Dict[str, Any]]:
    """
    Map sheet records to lead rows using a column mapping.

    Args:
        records: Records from rows_to_records
        column_mapping: Lead field -> sheet header
        now: Sync timestamp

    Returns:
        Lead dicts ready for insertion. Records without a customer name are skipped.
    """
    name_column = column_mapping.get("customer_name")
    if not name_column:
        return []

    leads = []
    for record in records:
        customer_name = _cell(record, name_column)
        if not customer_name:
            continue

        date_column = column_mapping.get("lead_date")
        lead = {
            "lead_date": parse_lead_date(record.get(date_column), now) if date_column else now,
            "customer_name": str(customer_name),
            "phone": str(_cell(record, column_mapping.get("phone")) or ""),
            "status": "New",
            "source": "sheet",
            "last_synced_at": now,
        }
        for field in ("email", "location", "project_type", "budget_preference", "notes"):
            value = _cell(record, column_mapping.get(field))
            lead[field] = str(value) if value else None

        leads.append(lead)

    return leads


def default_product_mapping(headers: List[str]) -> Dict[str, str]:
    """
    Guess a product column mapping from header names.

    The first header matching a field's hints wins; fields with no match map
    to "".

    Args:
        headers: Header row of a brand sheet

    Returns:
        Product field -> sheet header
    """
    mapping = {}
    for field in PRODUCT_FIELDS:
        mapping[field] = ""
        for header in headers:
            lowered = header.lower()
            if any(all(word in lowered for word in hint) for hint in _PRODUCT_HEADER_HINTS[field]):
                mapping[field] = header
                break
    return mapping


def _to_number(value: Any) -> float:
    """Leading number of a cell, ignoring thousands separators; 0 when there is none."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    match = _LEADING_NUMBER.match(str(value or "").strip().replace(",", ""))
    return float(match.group(0)) if match else 0.0


def map_products(
    records: List[Dict[str, Any]],
    headers: List[str],
    column_mapping: Dict[str, str]
) -> List[Dict[str, Any]]:
    """
    Map brand sheet records to product rows.

    Args:
        records: Records from rows_to_records
        headers: Header row; unmapped headers are kept in extra_data
        column_mapping: Product field -> sheet header

    Returns:
        Product dicts without brand id. Records without a name are skipped.
    """
    name_column = column_mapping.get("name")
    if not name_column:
        return []

    mapped_columns = {column for column in column_mapping.values() if column}
    products = []
    for record in records:
        name = _cell(record, name_column)
        if not name:
            continue

        product: Dict[str, Any] = {"name": str(name)}
        for field in ("description", "category", "finish_color", "series", "model_code", "size"):
            value = _cell(record, column_mapping.get(field))
            product[field] = str(value) if value else ""
        for field in _PRICE_FIELDS:
            column = column_mapping.get(field)
            # Prices are never negative
            product[field] = max(0.0, _to_number(record.get(column))) if column else 0.0
        quantity_column = column_mapping.get("quantity")
        product["quantity"] = max(0, int(_to_number(record.get(quantity_column)))) if quantity_column else 0
        product["extra_data"] = {
            header: record.get(header, "") for header in headers if header not in mapped_columns
        }

        products.append(product)

    return products
