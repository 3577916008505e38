"""
User API Backend — User Service (Business Logic)
=================================================

What:  Create, read, list, update and delete users.
How:   Stateless service; every method receives the AsyncSession for the
       current request (opened by the handler through `session_scope()`).
Who:   Called by the users handlers in app.routes.users.

Error Handling Strategy:
    Missing rows       → NotFoundError (404)
    Duplicate email    → ConflictError (409)
    Other DB failures  → propagate unchanged; the pipeline maps them to 500
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import asc, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ConflictError, NotFoundError
from app.models.user import User
from app.schemas.user import UserCreate, UserListResponse, UserResponse, UserUpdate

logger = logging.getLogger(__name__)


class UserService:
    """Business logic layer for user operations."""

    async def create_user(self, db: AsyncSession, data: UserCreate) -> UserResponse:
        """
        Insert a new user.

        Raises:
            ConflictError: A user with the same email already exists
        """
        email = data.email.lower()
        existing = await db.execute(select(User).where(User.email == email))
        if existing.scalar_one_or_none() is not None:
            raise ConflictError("User with this email already exists")

        user = User(email=email, name=data.name)
        db.add(user)
        try:
            await db.flush()
        except IntegrityError:
            # Lost a race with a concurrent create for the same email
            raise ConflictError("User with this email already exists")

        logger.info("User created: %s", user.id)
        return UserResponse.model_validate(user)

    async def _get_or_404(self, db: AsyncSession, user_id: UUID) -> User:
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def get_user(self, db: AsyncSession, user_id: UUID) -> UserResponse:
        return UserResponse.model_validate(await self._get_or_404(db, user_id))

    async def list_users(self, db: AsyncSession, limit: int = 50, offset: int = 0) -> UserListResponse:
        """One page of users, oldest first."""
        result = await db.execute(
            select(User).order_by(asc(User.created_at), asc(User.id)).limit(limit).offset(offset)
        )
        users = [UserResponse.model_validate(u) for u in result.scalars().all()]
        return UserListResponse(users=users, count=len(users))

    async def update_user(self, db: AsyncSession, user_id: UUID, data: UserUpdate) -> UserResponse:
        user = await self._get_or_404(db, user_id)
        if data.name is not None:
            user.name = data.name
        user.updated_at = datetime.now(timezone.utc)
        await db.flush()
        logger.info("User updated: %s", user_id)
        return UserResponse.model_validate(user)

    async def delete_user(self, db: AsyncSession, user_id: UUID) -> None:
        user = await self._get_or_404(db, user_id)
        await db.delete(user)
        await db.flush()
        logger.info("User deleted: %s", user_id)


# ── Singleton Instance ────────────────────────────────────────────────────
user_service = UserService()

