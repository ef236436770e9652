"""Role assignments backing the admin capability check."""
import uuid
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import String, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from agency_billing.database import Base
from agency_billing.db_types import UUIDType


class AppRole(str, Enum):
    ADMIN = "admin"
    USER = "user"


class UserRole(Base):
    """A role granted to a user of the hosted auth provider."""
    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    role: Mapped[str] = mapped_column(
        String(20),
        default=AppRole.USER.value,
        nullable=False,
        comment="admin, user"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<UserRole(user_id='{self.user_id}', role='{self.role}')>"
