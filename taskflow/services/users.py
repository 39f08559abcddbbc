"""User registration and listing."""

from __future__ import annotations

from taskflow.repositories.users import UsersRepository
from taskflow.schemas.users import UserCreate, UserRead


class UsersService:
    """
    User use-cases.

    Args:
        users_repo: Repository used for user persistence and lookups.
    """

    def __init__(self, users_repo: UsersRepository) -> None:
        self._users_repo = users_repo

    async def register(self, payload: UserCreate) -> UserRead:
        user = await self._users_repo.create(name=payload.name, email=payload.email)
        return UserRead.model_validate(user, from_attributes=True)

    async def list_users(self) -> list[UserRead]:
        users = await self._users_repo.list_all()
        return [UserRead.model_validate(u, from_attributes=True) for u in users]
