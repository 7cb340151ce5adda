"""
Reporting period models.

Months are 1-indexed everywhere in this package (January == 1).
Any conversion to another convention happens at the boundary that needs it.
"""

import datetime as dt
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class InvalidPeriodError(ValueError):
    """A period specification has the wrong shape for its type."""
    pass


class PeriodType(str, Enum):
    ALL = "all"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"
    RANGE = "range"


class PeriodSpec(BaseModel):
    """
    A calendar window used to select expenses for a report.

    Each type requires its own fields:
    - month:   month + year
    - quarter: quarter + year
    - year:    year
    - range:   start_date + end_date (inclusive)
    - all:     nothing
    """
    model_config = ConfigDict(frozen=True)

    type: PeriodType
    month: Optional[int] = Field(default=None, ge=1, le=12)
    quarter: Optional[int] = Field(default=None, ge=1, le=4)
    year: Optional[int] = Field(default=None, ge=1, le=9999)
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None

    @model_validator(mode='after')
    def validate_shape(self) -> 'PeriodSpec':
        """Reject specifications that are missing the fields their type needs."""
        if self.type == PeriodType.MONTH and (self.month is None or self.year is None):
            raise InvalidPeriodError("A month period needs both month and year")

        if self.type == PeriodType.QUARTER and (self.quarter is None or self.year is None):
            raise InvalidPeriodError("A quarter period needs both quarter and year")

        if self.type == PeriodType.YEAR and self.year is None:
            raise InvalidPeriodError("A year period needs a year")

        if self.type == PeriodType.RANGE:
            if self.start_date is None or self.end_date is None:
                raise InvalidPeriodError("A range period needs start_date and end_date")
            if self.end_date < self.start_date:
                raise InvalidPeriodError("Range end cannot be before range start")

        return self

    @classmethod
    def all_time(cls) -> 'PeriodSpec':
        return cls(type=PeriodType.ALL)

    @classmethod
    def for_month(cls, year: int, month: int) -> 'PeriodSpec':
        return cls(type=PeriodType.MONTH, year=year, month=month)

    @classmethod
    def for_quarter(cls, year: int, quarter: int) -> 'PeriodSpec':
        return cls(type=PeriodType.QUARTER, year=year, quarter=quarter)

    @classmethod
    def for_year(cls, year: int) -> 'PeriodSpec':
        return cls(type=PeriodType.YEAR, year=year)

    @classmethod
    def between(cls, start: dt.date, end: dt.date) -> 'PeriodSpec':
        return cls(type=PeriodType.RANGE, start_date=start, end_date=end)

    @classmethod
    def parse_month_key(cls, key: str) -> 'PeriodSpec':
        """
        Build a month period from a "YYYY-MM" key.

        This is the format month pickers hand over.
        """
        try:
            year_str, month_str = key.strip().split("-")
            return cls.for_month(int(year_str), int(month_str))
        except (AttributeError, ValueError) as e:
            raise InvalidPeriodError(f"Invalid month key: {key!r}") from e
