import uuid
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import SQLModel, Field

from ..core.clock import utcnow


class Property(SQLModel, table=True):
    __tablename__ = "properties"
    __table_args__ = (
        sa.CheckConstraint(
            "(share_token IS NULL) = (share_token_expires_at IS NULL)",
            name="properties_share_token_pair_check",
        ),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, index=True)

    name: str = Field(min_length=2, max_length=50)

    # Owner id as issued by the identity service; no local users table
    user_id: uuid.UUID = Field(index=True)

    # Both set or both null
    share_token: Optional[str] = Field(default=None, unique=True, index=True)
    share_token_expires_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))

    created_at: datetime = Field(default_factory=utcnow, sa_type=sa.DateTime(timezone=True))

    @property
    def is_shared(self) -> bool:
        return self.share_token is not None
