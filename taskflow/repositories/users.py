from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.db.models import User

"""
Users repository.

Keeps SQLAlchemy queries out of API handlers and services. Free of HTTP concerns.
"""


class UsersRepository:
    """
    Data access layer for User entities.

    Args:
        session: SQLAlchemy async session scoped to the current request/unit-of-work.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, name: str, email: str) -> User:
        """
        Create a new user.

        Notes:
            Commits within the method (simple unit-of-work model).

        Returns:
            The created User model with refreshed fields (e.g., id).
        """
        user = User(name=name, email=email)
        self._session.add(user)
        await self._session.commit()
        await self._session.refresh(user)
        return user

    async def list_all(self) -> list[User]:
        stmt = select(User).order_by(User.name)
        return list((await self._session.execute(stmt)).scalars().all())
