"""Export utilities for creator data."""

import csv
import io
from pathlib import Path
from typing import Any

from affiliate_ledger.logging_config import get_logger
from affiliate_ledger.storage.models import Creator

logger = get_logger(__name__)

EXPORT_FIELDS = [
    "id",
    "creator_code",
    "display_name",
    "email",
    "status",
    "commission_rate",
    "minimum_payout",
    "total_clicks",
    "total_sales",
    "total_commission",
    "conversion_rate",
    "payment_method",
    "created_at",
    "approved_at",
]


def creator_export_row(creator: Creator) -> dict[str, Any]:
    """Flatten a creator for export. Payment details are never included."""
    return {
        "id": creator.id,
        "creator_code": creator.creator_code,
        "display_name": creator.display_name,
        "email": creator.email,
        "status": creator.status,
        "commission_rate": f"{creator.commission_rate:.2f}",
        "minimum_payout": f"{creator.minimum_payout:.2f}",
        "total_clicks": creator.total_clicks,
        "total_sales": creator.total_sales,
        "total_commission": f"{creator.total_commission:.2f}",
        "conversion_rate": f"{creator.conversion_rate:.2f}",
        "payment_method": creator.payment_method,
        "created_at": creator.created_at.isoformat() if creator.created_at else "",
        "approved_at": creator.approved_at.isoformat() if creator.approved_at else "",
    }


def rows_to_csv(rows: list[dict[str, Any]]) -> str:
    """Render export rows as CSV text (header included)."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=EXPORT_FIELDS)
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return buffer.getvalue()


def export_to_csv(rows: list[dict[str, Any]], output_path: Path) -> None:
    """Write export rows to a CSV file.

    Args:
        rows: Rows from ``creator_export_row``
        output_path: Output file path
    """
    if not rows:
        logger.warning("no_creators_to_export")
        return

    with open(output_path, "w", newline="", encoding="utf-8") as csvfile:
        csvfile.write(rows_to_csv(rows))

    logger.info("csv_export_completed", path=str(output_path), count=len(rows))
