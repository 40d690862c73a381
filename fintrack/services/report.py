"""Monthly running-balance report.

Pure functions over any objects exposing ``id``, ``date``, ``description``,
``amount`` and ``type``; inputs are never mutated.
"""
import calendar
import re
import uuid
import datetime as dt
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlmodel import SQLModel

from ..core.errors import ValidationError
from ..models.transaction import EXPENSE, INCOME


_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

ZERO = Decimal("0")


class ReportRow(SQLModel):
    id: uuid.UUID
    date: dt.date
    description: str
    income: Decimal
    expense: Decimal
    balance: Decimal


class MonthlyReport(SQLModel):
    month: str
    title: str
    rows: List[ReportRow] = []
    total_income: Decimal = ZERO
    total_expense: Decimal = ZERO
    balance: Decimal = ZERO
    is_empty: bool = True


def parse_month(month: str) -> dt.date:
    if not month or not _MONTH_RE.match(month):
        raise ValidationError("Invalid month. Use YYYY-MM")
    year, mon = month.split("-")
    return dt.date(int(year), int(mon), 1)


def current_month(today: Optional[dt.date] = None) -> str:
    return (today or dt.date.today()).strftime("%Y-%m")


def month_title(month: str) -> str:
    first = parse_month(month)
    return f"{calendar.month_name[first.month]} {first.year}"


def _amount(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def build_monthly_report(transactions: Iterable, month: str) -> MonthlyReport:
    first = parse_month(month)
    in_month = [
        t for t in transactions
        if t.date.year == first.year and t.date.month == first.month
    ]
    # sorted() is stable: same-day rows keep their input order
    in_month = sorted(in_month, key=lambda t: t.date)

    rows: List[ReportRow] = []
    balance = total_income = total_expense = ZERO
    for t in in_month:
        amount = _amount(t.amount)
        income = amount if t.type == INCOME else ZERO
        expense = amount if t.type == EXPENSE else ZERO
        balance = balance + income - expense
        total_income += income
        total_expense += expense
        rows.append(
            ReportRow(
                id=t.id,
                date=t.date,
                description=t.description,
                income=income,
                expense=expense,
                balance=balance,
            )
        )

    return MonthlyReport(
        month=month,
        title=month_title(month),
        rows=rows,
        total_income=total_income,
        total_expense=total_expense,
        balance=balance,
        is_empty=not rows,
    )
