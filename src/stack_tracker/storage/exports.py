"""CSV interchange for holdings."""

import csv
import io
import logging
from collections.abc import Callable
from datetime import date
from pathlib import Path

import pandas as pd

from ..errors import ValidationError
from ..models import Holding, utc_now

logger = logging.getLogger(__name__)

CSV_HEADERS = [
    "Metal",
    "Type",
    "Weight (oz)",
    "Quantity",
    "Total Oz",
    "Purchase Price",
    "Purchase Date",
    "Notes",
    "Created At",
]

MIN_IMPORT_FIELDS = 6


def holdings_to_dataframe(holdings: list[Holding]) -> pd.DataFrame:
    """Convert holdings to a DataFrame of display-formatted strings."""
    return pd.DataFrame(
        [
            [
                h.metal,
                h.type,
                f"{h.weight:.4f}",
                str(h.quantity),
                f"{h.total_oz:.4f}",
                f"{h.purchase_price:.2f}",
                h.purchase_date,
                h.notes or "",
                h.created_at,
            ]
            for h in holdings
        ],
        columns=CSV_HEADERS,
        dtype=str,
    )


def holdings_to_csv(holdings: list[Holding]) -> str:
    """
    Render holdings in the interchange format.

    The header row is bare, every data field is double-quoted. An empty
    collection renders as an empty string.
    """
    if not holdings:
        return ""

    df = holdings_to_dataframe(holdings)
    body = df.to_csv(index=False, header=False, quoting=csv.QUOTE_ALL, lineterminator="\n")
    return ",".join(CSV_HEADERS) + "\n" + body.rstrip("\n")


def export_to_csv(holdings: list[Holding], output_path: Path) -> Path:
    """
    Write holdings to a dated CSV file.

    Args:
        holdings: Holdings to export
        output_path: Directory to write the CSV file

    Returns:
        Path to the created CSV file
    """
    output_path.mkdir(parents=True, exist_ok=True)
    csv_path = output_path / f"holdings_{date.today().isoformat()}.csv"
    csv_path.write_text(holdings_to_csv(holdings), encoding="utf-8")
    return csv_path


def _to_float(value: str) -> float:
    try:
        return float(value)
    except ValueError:
        return 0.0


def _to_int(value: str) -> int:
    try:
        return int(value) or 1
    except ValueError:
        return 1


def parse_holdings_csv(text: str, id_factory: Callable[[], str]) -> list[Holding]:
    """
    Parse interchange CSV into new holdings.

    Quoted fields may contain commas. Rows with too few fields are skipped
    with a warning. Weight is read as troy ounces.

    Args:
        text: CSV content including the header row
        id_factory: Generates an id for each imported holding

    Returns:
        Freshly created holdings, not yet persisted anywhere
    """
    rows = list(csv.reader(io.StringIO(text.strip()), skipinitialspace=True))
    if len(rows) < 2:
        raise ValidationError("csv", "CSV must have a header row and at least one data row")

    now = utc_now()
    imported: list[Holding] = []

    # Row 1 is the header
    for row_number, row in enumerate(rows[1:], start=2):
        values = [cell.strip() for cell in row]
        if not any(values):
            continue
        if len(values) < MIN_IMPORT_FIELDS:
            logger.warning("Skipping row %d: not enough columns", row_number)
            continue

        values += [""] * (len(CSV_HEADERS) - len(values))
        metal, type_, weight, quantity, _total, price, purchase_date, notes = values[:8]

        imported.append(
            Holding(
                id=id_factory(),
                metal=metal.lower(),
                type=type_,
                weight=_to_float(weight),
                weight_unit="oz",
                quantity=_to_int(quantity),
                purchase_price=_to_float(price),
                purchase_date=purchase_date or now.split("T")[0],
                notes=notes or None,
                created_at=now,
                updated_at=now,
            )
        )

    return imported
