"""
Date plausibility checks for invoices.

Each check returns its own ValidationResult; callers merge them. All
functions take an optional ``today`` so results can be made deterministic.
"""

from datetime import date, timedelta
from typing import Optional

from .config import (
    MAX_ISSUE_DATE_AGE_DAYS,
    MAX_PERIOD_END_AHEAD_DAYS,
    MAX_PERIOD_LENGTH_DAYS,
    MAX_SALE_AFTER_ISSUE_DAYS,
)
from .results import ValidationResult


def validate_issue_date(issue_date: date, today: Optional[date] = None) -> ValidationResult:
    """Issue date must not be in the future; very old dates only warn."""
    today = today or date.today()
    result = ValidationResult()

    if issue_date > today:
        result.add_error(
            "DATE_ISSUE_FUTURE",
            f"Issue date ({issue_date.isoformat()}) cannot be in the future",
            "IssueDate",
        )

    if issue_date < today - timedelta(days=MAX_ISSUE_DATE_AGE_DAYS):
        result.add_warning(
            "DATE_ISSUE_OLD",
            f"Issue date ({issue_date.isoformat()}) is more than 5 years old",
            "IssueDate",
        )

    return result


def validate_sale_date(
    sale_date: Optional[date],
    issue_date: Optional[date] = None,
    today: Optional[date] = None,
) -> ValidationResult:
    """
    Sale date must not be in the future.

    A sale date more than 30 days after the issue date is unusual
    (invoices may be raised before delivery) and only warns.
    """
    result = ValidationResult()
    if sale_date is None:
        return result

    today = today or date.today()

    if sale_date > today:
        result.add_error(
            "DATE_SALE_FUTURE",
            f"Sale date ({sale_date.isoformat()}) cannot be in the future",
            "SaleDate",
        )

    if issue_date is not None and sale_date > issue_date + timedelta(days=MAX_SALE_AFTER_ISSUE_DAYS):
        result.add_warning(
            "DATE_SALE_AFTER_ISSUE",
            f"Sale date ({sale_date.isoformat()}) is much later than "
            f"the issue date ({issue_date.isoformat()})",
            "SaleDate",
        )

    return result


def validate_period(start: date, end: date, today: Optional[date] = None) -> ValidationResult:
    """
    Validate a settlement period.

    End before start is an error. An end date far in the future or a period
    longer than a year only warns.
    """
    today = today or date.today()
    result = ValidationResult()

    if end < start:
        result.add_error(
            "DATE_PERIOD_INVALID",
            f"Period end ({end.isoformat()}) cannot be earlier than period start ({start.isoformat()})",
            "SalePeriod",
        )

    if end > today + timedelta(days=MAX_PERIOD_END_AHEAD_DAYS):
        result.add_warning(
            "DATE_PERIOD_FUTURE",
            f"Period end ({end.isoformat()}) is far in the future",
            "SalePeriod",
        )

    period_days = (end - start).days
    if period_days > MAX_PERIOD_LENGTH_DAYS:
        result.add_warning(
            "DATE_PERIOD_TOO_LONG",
            f"Settlement period ({period_days} days) is longer than a year",
            "SalePeriod",
        )

    return result
