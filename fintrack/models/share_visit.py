import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlmodel import SQLModel, Field

from ..core.clock import utcnow


class ShareVisit(SQLModel, table=True):
    __tablename__ = "share_visits"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    property_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid,
            sa.ForeignKey("properties.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )
    )

    visited_at: datetime = Field(default_factory=utcnow, sa_type=sa.DateTime(timezone=True), index=True)
