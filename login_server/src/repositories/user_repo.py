"""
User repository for database operations.

Provides async operations on the users table using asyncpg with PostgreSQL.
"""

from contextlib import asynccontextmanager
from typing import Optional

import asyncpg
import structlog

from login_server.src.exceptions import AccountExistsError
from login_server.src.models.auth import SessionDB, UserDB

logger = structlog.get_logger(__name__)


class UserRepository:
    """Repository for user database operations."""

    def __init__(self, pool: asyncpg.Pool):
        """
        Initialize user repository.

        Args:
            pool: asyncpg connection pool
        """
        self.pool = pool

    @asynccontextmanager
    async def transaction(self):
        """
        Context manager for database transactions.

        Yields:
            asyncpg.Connection: Database connection
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def email_exists(self, email: str) -> bool:
        """
        Check whether an account uses this E-mail address.

        Args:
            email: Email address

        Returns:
            True if an account exists
        """
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetchval(
                    "SELECT EXISTS(SELECT 1 FROM users WHERE email = $1)",
                    email
                )

        except Exception as e:
            logger.error("user_email_exists_failed", error=str(e))
            raise

    async def create_user(self, user: UserDB, session: SessionDB) -> UserDB:
        """
        Insert a new user together with its first session.

        Both rows are written in one transaction.

        Args:
            user: User to insert
            session: Session issued to the new user

        Returns:
            Created user

        Raises:
            AccountExistsError: If the E-mail address is already registered
            asyncpg.PostgresError: On database error
        """
        try:
            async with self.transaction() as conn:
                await conn.execute(
                    """
                    INSERT INTO users (user_id, email, password, salt)
                    VALUES ($1, $2, $3, $4)
                    """,
                    user.user_id,
                    user.email,
                    user.password,
                    user.salt
                )

                await conn.execute(
                    """
                    INSERT INTO sessions (session_id, user_id, expiry)
                    VALUES ($1, $2, $3)
                    """,
                    session.session_id,
                    session.user_id,
                    session.expiry
                )

            logger.info("user_created", user_id=user.user_id)
            return user

        except asyncpg.UniqueViolationError as e:
            if "email" in str(e):
                logger.warning("email_already_exists")
                raise AccountExistsError("Account already exists.") from e
            raise
        except Exception as e:
            logger.error("user_create_failed", error=str(e), user_id=user.user_id)
            raise

    async def get_user_by_id(self, user_id: str) -> Optional[UserDB]:
        """
        Get user by ID.

        Args:
            user_id: User ID

        Returns:
            User or None if not found
        """
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    SELECT user_id, email, password, salt
                    FROM users
                    WHERE user_id = $1
                    """,
                    user_id
                )

            if not row:
                logger.debug("user_not_found", user_id=user_id)
                return None

            return UserDB(**dict(row))

        except Exception as e:
            logger.error("user_get_by_id_failed", error=str(e), user_id=user_id)
            raise

    async def get_user_by_email(self, email: str) -> Optional[UserDB]:
        """
        Get user by email.

        Args:
            email: Email address

        Returns:
            User or None if not found
        """
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    SELECT user_id, email, password, salt
                    FROM users
                    WHERE email = $1
                    """,
                    email
                )

            if not row:
                logger.debug("user_not_found_by_email")
                return None

            return UserDB(**dict(row))

        except Exception as e:
            logger.error("user_get_by_email_failed", error=str(e))
            raise
