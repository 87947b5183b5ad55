"""User repository — tenant-scoped lookups used by every engine component."""

from __future__ import annotations

import uuid
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leave_ledger.common.exceptions import NotFoundException, TenantMismatchException
from leave_ledger.core.models import User


class UserRepository:
    """Read access to ``users``."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, user_id: uuid.UUID) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def get_for_tenant(self, tenant_id: uuid.UUID, user_id: uuid.UUID) -> User:
        """Return the user or raise ``NotFound`` / ``TenantMismatch``."""
        user = await self.get(user_id)
        if user is None:
            raise NotFoundException("User", user_id)
        if user.tenant_id != tenant_id:
            raise TenantMismatchException("User", user_id)
        return user

    async def find_by_email(self, tenant_id: uuid.UUID, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.tenant_id == tenant_id, User.email == email)
        )
        return result.scalars().first()

    async def list_for_tenant(self, tenant_id: uuid.UUID) -> Sequence[User]:
        result = await self.db.execute(
            select(User).where(User.tenant_id == tenant_id).order_by(User.email)
        )
        return result.scalars().all()
