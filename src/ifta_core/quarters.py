"""Reporting quarter value type and calendar boundaries.

A quarter is serialized as ``YYYY-Qn`` and maps to a fixed calendar range:
Q1=Jan 1-Mar 31, Q2=Apr 1-Jun 30, Q3=Jul 1-Sep 30, Q4=Oct 1-Dec 31.
The same boundaries are used by the engine and by any caller that filters
raw records by date before handing them to the engine.
"""

import calendar
import re
from datetime import date
from typing import Union

from pydantic import BaseModel, ConfigDict, Field, model_serializer, model_validator

from .exceptions import ValidationError

QUARTER_PATTERN = re.compile(r"^(\d{4})-Q([1-4])$")


class QuarterDateRange(BaseModel):
    """Inclusive calendar date range covered by a quarter."""

    model_config = ConfigDict(frozen=True)

    start_date: date = Field(description="First day of the quarter (inclusive)")
    end_date: date = Field(description="Last day of the quarter (inclusive)")


class Quarter(BaseModel):
    """An IFTA reporting quarter.

    Example:
        >>> q = Quarter.parse("2025-Q1")
        >>> str(q)
        '2025-Q1'
        >>> q.date_range().end_date
        datetime.date(2025, 3, 31)
    """

    model_config = ConfigDict(frozen=True)

    year: int = Field(ge=1900, le=2100, description="Calendar year")
    quarter_number: int = Field(ge=1, le=4, description="Quarter within the year (1-4)")

    def __str__(self) -> str:
        return f"{self.year}-Q{self.quarter_number}"

    @model_validator(mode="before")
    @classmethod
    def accept_string_form(cls, data):
        """Allow ``"2025-Q1"`` wherever a Quarter field is declared."""
        if isinstance(data, str):
            match = QUARTER_PATTERN.match(data.strip().upper())
            if match is None:
                raise ValueError(f"Invalid quarter: {data!r}. Use YYYY-Qn")
            return {"year": int(match.group(1)), "quarter_number": int(match.group(2))}
        return data

    @model_serializer
    def serialize(self) -> str:
        return str(self)

    @classmethod
    def parse(cls, value: str) -> "Quarter":
        """Parse a ``YYYY-Qn`` string.

        Raises:
            ValidationError: If the value does not have the quarter shape.
        """
        if not isinstance(value, str):
            raise ValidationError(
                "Quarter must be a string in YYYY-Qn format",
                field="quarter",
                value=repr(value),
                constraint="YYYY-Qn with n in 1..4",
            )
        match = QUARTER_PATTERN.match(value.strip().upper())
        if match is None:
            raise ValidationError(
                f"Invalid quarter: {value!r}. Use YYYY-Qn (e.g., 2025-Q1)",
                field="quarter",
                value=value,
                constraint="YYYY-Qn with n in 1..4",
            )
        year = int(match.group(1))
        if not 1900 <= year <= 2100:
            raise ValidationError(
                f"Quarter year out of range: {year}",
                field="quarter",
                value=value,
                constraint="Year between 1900 and 2100",
            )
        return cls(year=year, quarter_number=int(match.group(2)))

    @classmethod
    def from_date(cls, d: date) -> "Quarter":
        """Return the quarter a calendar date falls in."""
        return cls(year=d.year, quarter_number=(d.month - 1) // 3 + 1)

    def date_range(self) -> QuarterDateRange:
        start_month = (self.quarter_number - 1) * 3 + 1
        end_month = start_month + 2
        last_day = calendar.monthrange(self.year, end_month)[1]
        return QuarterDateRange(
            start_date=date(self.year, start_month, 1),
            end_date=date(self.year, end_month, last_day),
        )

    def contains(self, d: date) -> bool:
        """True if the date falls within this quarter (inclusive)."""
        return Quarter.from_date(d) == self

    def previous(self) -> "Quarter":
        if self.quarter_number == 1:
            return Quarter(year=self.year - 1, quarter_number=4)
        return Quarter(year=self.year, quarter_number=self.quarter_number - 1)

    def next(self) -> "Quarter":
        if self.quarter_number == 4:
            return Quarter(year=self.year + 1, quarter_number=1)
        return Quarter(year=self.year, quarter_number=self.quarter_number + 1)


QuarterLike = Union[Quarter, str]


def coerce_quarter(quarter: QuarterLike) -> Quarter:
    """Accept either a Quarter or its string form."""
    if isinstance(quarter, Quarter):
        return quarter
    return Quarter.parse(quarter)


def quarter_to_date_range(quarter: QuarterLike) -> QuarterDateRange:
    """Calendar-quarter boundaries, inclusive on both ends.

    Args:
        quarter: A Quarter or a ``YYYY-Qn`` string

    Returns:
        QuarterDateRange with start_date and end_date

    Raises:
        ValidationError: If a string quarter is malformed.
    """
    return coerce_quarter(quarter).date_range()
