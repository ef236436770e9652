"""Caller identity and the admin capability check."""
from dataclasses import dataclass
from typing import Optional
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agency_billing.models.user import UserRole, AppRole


@dataclass(frozen=True)
class Caller:
    """
    Who is calling the billing store.

    Every store operation checks is_admin first; the HTTP layer fills this in
    from the bearer token and the user_roles table.
    """
    user_id: Optional[uuid.UUID]
    is_admin: bool = False


# Used by background jobs, which run with service privileges
SYSTEM_CALLER = Caller(user_id=None, is_admin=True)


async def has_role(db: AsyncSession, user_id: uuid.UUID, role: AppRole) -> bool:
    """True if the user has been granted the role."""
    result = await db.execute(
        select(UserRole.id)
        .where(
            UserRole.user_id == user_id,
            UserRole.role == role.value,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def resolve_caller(db: AsyncSession, user_id: uuid.UUID) -> Caller:
    """Build the Caller for an authenticated user."""
    return Caller(user_id=user_id, is_admin=await has_role(db, user_id, AppRole.ADMIN))
