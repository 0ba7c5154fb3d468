"""
Session repository for database operations.

Provides async operations on the sessions table using asyncpg.
"""

from typing import Optional

import asyncpg
import structlog

from login_server.src.models.auth import SessionDB

logger = structlog.get_logger(__name__)


class SessionRepository:
    """Repository for session database operations."""

    def __init__(self, pool: asyncpg.Pool):
        """
        Initialize session repository.

        Args:
            pool: asyncpg connection pool
        """
        self.pool = pool

    async def create_session(self, session: SessionDB) -> SessionDB:
        """
        Insert a session.

        Args:
            session: Session to store

        Returns:
            Stored session
        """
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO sessions (session_id, user_id, expiry)
                    VALUES ($1, $2, $3)
                    """,
                    session.session_id,
                    session.user_id,
                    session.expiry
                )

            logger.info("session_created", user_id=session.user_id, expiry=session.expiry)
            return session

        except Exception as e:
            logger.error("session_create_failed", error=str(e), user_id=session.user_id)
            raise

    async def get_session(self, session_id: str) -> Optional[SessionDB]:
        """
        Get session by ID.

        Args:
            session_id: Session ID

        Returns:
            Session or None if not found
        """
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    SELECT session_id, user_id, expiry
                    FROM sessions
                    WHERE session_id = $1
                    """,
                    session_id
                )

            if not row:
                logger.debug("session_not_found")
                return None

            return SessionDB(**dict(row))

        except Exception as e:
            logger.error("session_get_failed", error=str(e))
            raise

    async def delete_session(self, session_id: str) -> bool:
        """
        Delete a session.

        Args:
            session_id: Session ID

        Returns:
            True if deleted, False if not found
        """
        try:
            async with self.pool.acquire() as conn:
                result = await conn.execute(
                    "DELETE FROM sessions WHERE session_id = $1",
                    session_id
                )

            deleted = result.split()[-1] != "0"
            if deleted:
                logger.info("session_deleted")
            else:
                logger.debug("session_not_found")
            return deleted

        except Exception as e:
            logger.error("session_delete_failed", error=str(e))
            raise

    async def delete_expired_sessions(self, now: int) -> int:
        """
        Remove every session whose expiry has passed.

        Args:
            now: Current Unix timestamp (seconds)

        Returns:
            Number of sessions removed
        """
        try:
            async with self.pool.acquire() as conn:
                result = await conn.execute(
                    "DELETE FROM sessions WHERE expiry <= $1",
                    now
                )

            removed = int(result.split()[-1])
            logger.info("expired_sessions_deleted", count=removed)
            return removed

        except Exception as e:
            logger.error("expired_sessions_delete_failed", error=str(e))
            raise
