"""Wire codec for the attributes packed into a ledger record's text field.

Two formats exist in stored data:

* ``v2|c=...|i=...`` -- the current one. Tokens are ``key=value`` pairs,
  strings percent-encoded the way browsers' ``encodeURIComponent`` does it,
  numbers written as plain decimals.
* ``STOCK_META::{json}`` -- the legacy blob, accepted on read only when its
  ``schema`` is ``stock-v2``.

Anything else decodes to ``None``: the record is not part of the ledger.
"""

import json
import math
import re
from datetime import date, datetime, timezone
from urllib.parse import quote, unquote

from pydantic import ValidationError

from stockledger.models.stock_transaction import ApprovalStatus, ReasonType
from stockledger.schemas.stock import StockMovementMeta

V2_PREFIX = "v2|"
LEGACY_PREFIX = "STOCK_META::"
LEGACY_SCHEMA = "stock-v2"

# encodeURIComponent leaves these unescaped besides alphanumerics
_URI_SAFE = "-_.!~*'()"

# Always written, possibly empty, in this order
_REQUIRED_TOKENS = (
    ("c", "category"),
    ("i", "item_name"),
    ("l", "location"),
    ("d", "transaction_date"),
    ("n", "note"),
    ("by", "created_by"),
    ("cd", "created_date"),
)

# Written only when set, in this order
_OPTIONAL_TOKENS = (
    ("sn", "serial_number"),
    ("v", "vendor"),
    ("r", "reference_number"),
    ("rs", "reason"),
    ("to", "issued_to"),
    ("rt", "reason_type"),
    ("fl", "from_location"),
    ("tl", "to_location"),
    ("as", "approval_status"),
    ("ab", "approved_by"),
    ("ad", "approved_date"),
    ("sv", "scrap_vendor"),
)

_NUMERIC_TOKENS = (
    ("u", "unit_cost"),
    ("t", "total_cost"),
    ("q", "quantity"),
)

_LEGACY_KEYS = {
    "category": "category",
    "itemName": "item_name",
    "serialNumber": "serial_number",
    "location": "location",
    "transactionDate": "transaction_date",
    "note": "note",
    "createdBy": "created_by",
    "createdDate": "created_date",
    "vendor": "vendor",
    "quantity": "quantity",
    "unitCost": "unit_cost",
    "totalCost": "total_cost",
    "referenceNumber": "reference_number",
    "reason": "reason",
    "issuedTo": "issued_to",
    "reasonType": "reason_type",
    "fromLocation": "from_location",
    "toLocation": "to_location",
    "approvalStatus": "approval_status",
    "approvedBy": "approved_by",
    "approvedDate": "approved_date",
    "scrapVendor": "scrap_vendor",
}

_FLOAT_RE = re.compile(r"\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_INT_RE = re.compile(r"\s*[+-]?\d+")


# --- value formatting ---

def _enc(value) -> str:
    return quote(str(value or "").strip(), safe=_URI_SAFE)


def format_number(value: float | int) -> str:
    """Shortest decimal form, written the way JavaScript prints numbers.

    Integral values carry no fractional part. Exponent form is used only
    below 1e-6 or from 1e21 up, as `1e-7` / `1.5e+21`.
    """
    if not isinstance(value, float):
        return str(value)
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    text = repr(value)
    if "e" not in text:
        return text
    mantissa, exp = text.split("e")
    exponent = int(exp)
    if -7 < exponent < 0:
        digits = mantissa.lstrip("-").replace(".", "")
        sign = "-" if value < 0 else ""
        return sign + "0." + "0" * (-exponent - 1) + digits
    return mantissa + ("e+" if exponent > 0 else "e-") + str(abs(exponent))


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def _format_value(value) -> str:
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (ReasonType, ApprovalStatus)):
        return value.value
    return value


# --- lenient parsing ---

def parse_float(raw) -> float | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        number = float(raw)
    else:
        match = _FLOAT_RE.match(str(raw or ""))
        if not match:
            return None
        number = float(match.group())
    if not math.isfinite(number):
        return None
    return number


def parse_int(raw) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw) if math.isfinite(raw) else None
    match = _INT_RE.match(str(raw or ""))
    return int(match.group()) if match else None


def _non_negative(number: float | None) -> float | None:
    return number if number is not None and number >= 0 else None


def parse_date(raw) -> date | None:
    if not raw:
        return None
    try:
        return date.fromisoformat(str(raw).strip()[:10])
    except ValueError:
        return None


def parse_timestamp(raw) -> datetime | None:
    if not raw:
        return None
    text = str(raw).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _parse_enum(enum_cls, raw):
    try:
        return enum_cls(raw) if raw else None
    except ValueError:
        return None


# --- encode / decode ---

def encode(meta: StockMovementMeta) -> str:
    parts = []
    for key, field in _REQUIRED_TOKENS:
        value = getattr(meta, field)
        parts.append(f"{key}={_enc(_format_value(value) if value is not None else '')}")
    for key, field in _OPTIONAL_TOKENS:
        value = getattr(meta, field)
        if value:
            parts.append(f"{key}={_enc(_format_value(value))}")
    for key, field in _NUMERIC_TOKENS:
        value = getattr(meta, field)
        if value is not None:
            parts.append(f"{key}={format_number(value)}")
    return V2_PREFIX + "|".join(parts)


def _build(fields: dict) -> StockMovementMeta | None:
    if not all(str(fields.get(f) or "").strip() for f in ("category", "item_name", "location")):
        return None
    data = {
        "category": str(fields["category"]),
        "item_name": str(fields["item_name"]),
        "location": str(fields["location"]),
        "transaction_date": parse_date(fields.get("transaction_date")),
        "created_date": parse_timestamp(fields.get("created_date")),
        "approved_date": parse_timestamp(fields.get("approved_date")),
        "reason_type": _parse_enum(ReasonType, fields.get("reason_type")),
        "approval_status": _parse_enum(ApprovalStatus, fields.get("approval_status")),
        "unit_cost": _non_negative(parse_float(fields.get("unit_cost"))),
        "total_cost": _non_negative(parse_float(fields.get("total_cost"))),
        "quantity": parse_int(fields.get("quantity")),
    }
    for field in (
        "serial_number", "vendor", "reference_number", "note", "reason", "issued_to",
        "created_by", "from_location", "to_location", "approved_by", "scrap_vendor",
    ):
        value = fields.get(field)
        data[field] = value if isinstance(value, str) else None
    try:
        return StockMovementMeta(**data)
    except ValidationError:
        return None


def _decode_v2(text: str) -> StockMovementMeta | None:
    raw: dict[str, str] = {}
    for part in text.split("|")[1:]:
        key, sep, value = part.partition("=")
        if sep:
            raw[key] = value
    fields = {}
    for key, field in _REQUIRED_TOKENS + _OPTIONAL_TOKENS:
        fields[field] = unquote(raw.get(key, ""))
    for key, field in _NUMERIC_TOKENS:
        fields[field] = raw.get(key)
    return _build(fields)


def _decode_legacy(text: str) -> StockMovementMeta | None:
    try:
        parsed = json.loads(text[len(LEGACY_PREFIX):])
    except ValueError:
        return None
    if not isinstance(parsed, dict) or parsed.get("schema") != LEGACY_SCHEMA:
        return None
    return _build({field: parsed.get(key) for key, field in _LEGACY_KEYS.items()})


def decode(text: str | None) -> StockMovementMeta | None:
    if not text:
        return None
    if text.startswith(V2_PREFIX):
        return _decode_v2(text)
    if text.startswith(LEGACY_PREFIX):
        return _decode_legacy(text)
    return None
