"""Decoding of holding rows written by other clients.

Other clients sometimes stash metadata (local ids, cost basis, source
tags) inside the ``type`` and ``notes`` text columns. Rows are cleaned
here, once, as they cross into the application.
"""

import json
import re

from ..models import Holding

DEFAULT_TYPE = "Other"

# Keys that mark a JSON notes value as client metadata rather than a note
METADATA_KEYS = frozenset({"local_id", "source", "cost_basis", "created_at"})

_METADATA_PATTERN = re.compile(r"\blocal_id\b|\bcost_basis\b")


def _parse_json_container(text: str):
    """Parse text that looks like a JSON object or array, else return None."""
    if not (text.startswith("{") or text.startswith("[")):
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def _name_from_mapping(obj: dict) -> str:
    return str(obj.get("name") or obj.get("type") or obj.get("label") or DEFAULT_TYPE)


def decode_product_type(raw) -> str:
    """Extract a clean product name from a raw ``type`` value."""
    if raw is None:
        return DEFAULT_TYPE

    if isinstance(raw, dict):
        return _name_from_mapping(raw)

    if isinstance(raw, str):
        trimmed = raw.strip()
        parsed = _parse_json_container(trimmed)
        if isinstance(parsed, dict):
            return _name_from_mapping(parsed)
        if isinstance(parsed, list):
            return DEFAULT_TYPE
        # Metadata is sometimes appended after a newline
        return trimmed.split("\n")[0].strip() or DEFAULT_TYPE

    return str(raw)


def decode_notes(raw) -> str | None:
    """Return the user's note, or None when the value is metadata or blank."""
    if raw is None:
        return None
    if isinstance(raw, dict):
        return None if METADATA_KEYS & raw.keys() else json.dumps(raw)

    text = str(raw).strip()
    if not text:
        return None

    parsed = _parse_json_container(text)
    if isinstance(parsed, dict) and METADATA_KEYS & parsed.keys():
        return None

    if _METADATA_PATTERN.search(text):
        return None

    return text


def decode_row(row: dict) -> Holding:
    """Materialize a remote row as a Holding."""
    return Holding(
        id=str(row["id"]),
        metal=row["metal"],
        type=decode_product_type(row.get("type")),
        weight=float(row["weight"]),
        weight_unit=row.get("weight_unit") or "oz",
        quantity=int(row["quantity"]),
        purchase_price=float(row["purchase_price"]),
        purchase_date=str(row["purchase_date"]),
        notes=decode_notes(row.get("notes")),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def encode_row(holding: Holding, user_id: str) -> dict:
    """Build the remote row for a holding owned by ``user_id``."""
    return {
        "id": holding.id,
        "user_id": user_id,
        "metal": holding.metal,
        "type": holding.type,
        "weight": holding.weight,
        "weight_unit": holding.weight_unit,
        "quantity": holding.quantity,
        "purchase_price": holding.purchase_price,
        "purchase_date": holding.purchase_date,
        "notes": holding.notes or None,
        "created_at": holding.created_at,
        "updated_at": holding.updated_at,
    }
