"""User endpoints: /users."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException
from sqlalchemy.exc import SQLAlchemyError

from taskflow.api.deps import UsersServiceDep
from taskflow.schemas.users import UserCreate, UserCreated, UsersList

logger = logging.getLogger(__name__)

router = APIRouter(tags=["users"])


@router.post("/users", response_model=UserCreated, status_code=201)
async def create_user_endpoint(payload: UserCreate, service: UsersServiceDep) -> UserCreated:
    """Register a user by name/email."""
    try:
        user = await service.register(payload)
    except SQLAlchemyError as err:
        logger.exception("Error creating user")
        raise HTTPException(status_code=500, detail="Internal Server Error") from err
    return UserCreated(user=user)


@router.get("/users", response_model=UsersList)
async def list_users_endpoint(service: UsersServiceDep) -> UsersList:
    return UsersList(users=await service.list_users())
