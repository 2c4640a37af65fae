"""Taxable gallons and net gallons due/credit per jurisdiction.

    taxable_gallons       = miles_driven / mpg
    gallons_due_or_credit = taxable_gallons - gallons_purchased

Without a usable MPG (None or not positive) both figures are None and the
row is flagged low_confidence; zero is never substituted. Converting gallons
into currency with jurisdiction tax rates is left to the caller.
"""

from decimal import Decimal
from typing import Mapping, Optional

import structlog

from .models import JurisdictionTotals, TaxableGallons

logger = structlog.get_logger()


class TaxableGallonsCalculator:
    """Convert per-jurisdiction miles into taxable gallons."""

    def compute_taxable(
        self,
        jurisdiction_totals: Mapping[str, JurisdictionTotals],
        mpg: Optional[Decimal],
    ) -> dict[str, TaxableGallons]:
        """
        Compute taxable gallons for every jurisdiction.

        Args:
            jurisdiction_totals: Output of JurisdictionAggregator.aggregate
            mpg: Fleet (or vehicle) MPG for the same scope

        Returns:
            Mapping of jurisdiction code to TaxableGallons, same order as input
        """
        usable = mpg is not None and mpg > 0
        if not usable:
            logger.info("taxable_gallons_low_confidence", mpg=None if mpg is None else str(mpg))

        result = {}
        for code, totals in jurisdiction_totals.items():
            result[code] = self.compute_for(totals, mpg if usable else None)
        return result

    @staticmethod
    def compute_for(totals: JurisdictionTotals, mpg: Optional[Decimal]) -> TaxableGallons:
        if mpg is None or mpg <= 0:
            return TaxableGallons(jurisdiction=totals.jurisdiction, low_confidence=True)

        taxable = totals.miles_driven / mpg
        return TaxableGallons(
            jurisdiction=totals.jurisdiction,
            taxable_gallons=taxable,
            gallons_due_or_credit=taxable - totals.gallons_purchased,
        )
