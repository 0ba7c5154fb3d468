"""Database repositories for users and sessions."""

from login_server.src.repositories.session_repo import SessionRepository
from login_server.src.repositories.user_repo import UserRepository

__all__ = ["SessionRepository", "UserRepository"]
