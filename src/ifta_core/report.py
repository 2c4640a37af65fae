"""Rendering of a QuarterlySummary for export collaborators.

The summary keeps full precision; rounding happens here only, half-up, to
the places configured in PresentationConfig.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

from .config import PresentationConfig
from .models import QuarterlySummary

TOTAL_ROW_LABEL = "TOTAL"


def round_decimal(value: Optional[Decimal], places: int) -> Optional[Decimal]:
    """Round half-up to a fixed number of decimal places; None stays None."""
    if value is None:
        return None
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def summary_to_rows(
    summary: QuarterlySummary,
    config: Optional[PresentationConfig] = None,
) -> list[dict[str, Any]]:
    """
    Flatten a summary into rounded report rows.

    Args:
        summary: Summary returned by compute_quarterly_summary
        config: Decimal places per unit (default: from environment)

    Returns:
        One row per jurisdiction in summary order, followed by a TOTAL row.
        Undeterminable figures are None, never zero.
    """
    config = config or PresentationConfig()
    mpg = round_decimal(summary.fleet_mpg, config.mpg_places)

    rows = []
    for row in summary.per_jurisdiction:
        rows.append({
            "quarter": str(summary.quarter),
            "jurisdiction": row.jurisdiction,
            "jurisdiction_name": row.jurisdiction_name,
            "miles": round_decimal(row.miles_driven, config.miles_places),
            "gallons": round_decimal(row.gallons_purchased, config.gallons_places),
            "fuel_cost": round_decimal(row.fuel_cost, config.cost_places),
            "mpg": mpg,
            "taxable_gallons": round_decimal(row.taxable_gallons, config.gallons_places),
            "net_taxable_gallons": round_decimal(row.gallons_due_or_credit, config.gallons_places),
            "low_confidence": row.low_confidence,
        })

    totals = summary.totals
    rows.append({
        "quarter": str(summary.quarter),
        "jurisdiction": TOTAL_ROW_LABEL,
        "jurisdiction_name": "All jurisdictions",
        "miles": round_decimal(totals.miles, config.miles_places),
        "gallons": round_decimal(totals.gallons, config.gallons_places),
        "fuel_cost": round_decimal(totals.fuel_cost, config.cost_places),
        "mpg": mpg,
        "taxable_gallons": round_decimal(totals.taxable_gallons, config.gallons_places),
        "net_taxable_gallons": round_decimal(totals.net_gallons_due, config.gallons_places),
        "low_confidence": summary.low_confidence,
    })
    return rows
