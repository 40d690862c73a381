import uuid
import datetime as dt
from decimal import Decimal

import sqlalchemy as sa
from pydantic import field_validator
from sqlmodel import SQLModel, Field

from ..core.clock import as_utc, utcnow


INCOME = "income"
EXPENSE = "expense"
TRANSACTION_TYPES = (INCOME, EXPENSE)


class Transaction(SQLModel, table=True):
    __tablename__ = "transactions"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    property_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid,
            sa.ForeignKey("properties.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )
    )

    date: dt.date
    description: str = Field(max_length=100)
    # Always positive; direction lives in `type`
    amount: Decimal = Field(max_digits=12, decimal_places=2)
    type: str = Field(max_length=7)

    created_at: dt.datetime = Field(default_factory=utcnow, sa_type=sa.DateTime(timezone=True))


class TransactionRead(SQLModel):
    id: uuid.UUID
    property_id: uuid.UUID
    date: dt.date
    description: str
    amount: Decimal
    type: str
    created_at: dt.datetime

    @field_validator("created_at")
    @classmethod
    def _created_at_utc(cls, value: dt.datetime) -> dt.datetime:
        return as_utc(value)
