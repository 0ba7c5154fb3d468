"""
Authentication service for account registration and session management.

Provides:
- Password hashing and verification (peppered SHA-512/256 digest + passlib bcrypt)
- Account registration
- Login with E-mail address and password
- Session lookup and logout

Every operation answers with a response model carrying an application-level
status code (200, 400, 401, 409). Only undecodable form fields are reported
as errors (FieldDecodeError) so the router can answer with HTTP 400.
"""

import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import structlog
from passlib.context import CryptContext
from starlette.concurrency import run_in_threadpool

from login_server.src.config import Settings, get_settings
from login_server.src.environment import Environment
from login_server.src.exceptions import AccountExistsError, FieldDecodeError
from login_server.src.models.auth import (
    LoginForm, LoginResponse, LogoutForm, LogoutResponse,
    RegisterForm, RegisterResponse, SessionDB, SessionForm,
    SessionResponse, UserDB, is_storable_email, is_valid_email
)
from login_server.src.repositories.session_repo import SessionRepository
from login_server.src.repositories.user_repo import UserRepository
from shared.metrics import AuthMetrics
from shared.security.crypto import decode_base64_text, peppered_digest, random_alphanumeric

logger = structlog.get_logger(__name__)

SALT_LENGTH = 16
IDENTIFIER_LENGTH = 64

INVALID_EMAIL_MESSAGE = "Invalid E-mail address."
ACCOUNT_EXISTS_MESSAGE = "Account already exists."
INVALID_CREDENTIALS_MESSAGE = "Invalid E-mail address or password."
SESSION_NOT_FOUND_MESSAGE = "Session ID not found."
SESSION_EXPIRED_MESSAGE = "Session expired"


def utc_timestamp() -> int:
    """Current Unix time in whole seconds."""
    return int(datetime.now(timezone.utc).timestamp())


def decode_field(name: str, value: str) -> str:
    """
    Decode one base64 form field.

    Raises:
        FieldDecodeError: If the value is not base64 encoded UTF-8
    """
    try:
        return decode_base64_text(value)
    except ValueError as e:
        logger.info("form_field_decode_failed", field=name, error=str(e))
        raise FieldDecodeError(name, str(e)) from e


class PasswordHasher:
    """bcrypt over the peppered digest of password and salt."""

    def __init__(self, pepper: str, rounds: int = 10):
        """
        Initialize password hasher.

        Args:
            pepper: Server-wide secret
            rounds: bcrypt cost factor
        """
        self.pepper = pepper
        self.pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=rounds,
            bcrypt__ident="2y"
        )

    def hash(self, password: str, salt: str) -> str:
        """
        Hash a password.

        Args:
            password: Plain text password
            salt: Per-user salt

        Returns:
            bcrypt hash in $2y$ format
        """
        return self.pwd_context.hash(peppered_digest(password, salt, self.pepper))

    def verify(self, password: str, salt: str, hashed_password: str) -> bool:
        """
        Verify a password against its stored hash.

        Args:
            password: Plain text password
            salt: Per-user salt
            hashed_password: Stored bcrypt hash

        Returns:
            True if password matches, False otherwise
        """
        try:
            return self.pwd_context.verify(
                peppered_digest(password, salt, self.pepper),
                hashed_password
            )
        except ValueError as e:
            logger.error("password_verify_failed", error=str(e))
            return False


class AuthService:
    """Service for registration, login, session lookup and logout."""

    def __init__(
        self,
        user_repo: UserRepository,
        session_repo: SessionRepository,
        environment: Environment,
        settings: Optional[Settings] = None,
        metrics: Optional[AuthMetrics] = None,
        clock: Callable[[], int] = utc_timestamp,
    ):
        """
        Initialize auth service.

        Args:
            user_repo: User repository
            session_repo: Session repository
            environment: Deployment environment (provides the pepper)
            settings: Application settings
            metrics: Auth metrics (optional)
            clock: Returns the current Unix time in seconds
        """
        self.user_repo = user_repo
        self.session_repo = session_repo
        self.settings = settings or get_settings()
        self.metrics = metrics
        self.clock = clock
        self.hasher = PasswordHasher(
            environment.password_pepper,
            rounds=self.settings.password_bcrypt_rounds
        )

    @property
    def session_lifetime(self) -> timedelta:
        return timedelta(days=self.settings.session_lifetime_days)

    def _new_session(self, user_id: str) -> SessionDB:
        expiry = self.clock() + int(self.session_lifetime.total_seconds())
        return SessionDB(
            session_id=random_alphanumeric(IDENTIFIER_LENGTH),
            user_id=user_id,
            expiry=expiry
        )

    def _record(self, operation: str, status: int) -> None:
        if self.metrics is not None:
            self.metrics.record(operation, status)

    async def _timed(self, operation: str, func, *args):
        start = time.perf_counter()
        try:
            return await run_in_threadpool(func, *args)
        finally:
            if self.metrics is not None:
                self.metrics.password_hash_duration.labels(operation=operation).observe(
                    time.perf_counter() - start
                )

    async def register(self, form: RegisterForm) -> RegisterResponse:
        """
        Create an account and its first session.

        Args:
            form: Base64 encoded E-mail address and password

        Returns:
            200 with session, 400 for an invalid E-mail address,
            409 when the account already exists

        Raises:
            FieldDecodeError: If a field is not base64 encoded UTF-8
        """
        email = decode_field("email_base64", form.email_base64)
        password = decode_field("password_base64", form.password_base64)

        if not is_valid_email(email):
            logger.info("register_rejected_invalid_email")
            self._record("register", 400)
            return RegisterResponse(status=400, message=INVALID_EMAIL_MESSAGE)

        if await self.user_repo.email_exists(email):
            logger.info("register_rejected_account_exists")
            self._record("register", 409)
            return RegisterResponse(status=409, message=ACCOUNT_EXISTS_MESSAGE)

        salt = random_alphanumeric(SALT_LENGTH)
        password_hash = await self._timed("hash", self.hasher.hash, password, salt)

        user = UserDB(
            user_id=random_alphanumeric(IDENTIFIER_LENGTH),
            email=email,
            password=password_hash,
            salt=salt
        )
        session = self._new_session(user.user_id)

        try:
            await self.user_repo.create_user(user, session)
        except AccountExistsError:
            # Lost a race with a concurrent registration of the same address
            self._record("register", 409)
            return RegisterResponse(status=409, message=ACCOUNT_EXISTS_MESSAGE)

        logger.info("register_success", user_id=user.user_id, expiry=session.expiry)
        self._record("register", 200)
        return RegisterResponse(status=200, session_id=session.session_id, expiry=session.expiry)

    async def login(self, form: LoginForm) -> LoginResponse:
        """
        Log in with E-mail address and password.

        Args:
            form: Base64 encoded E-mail address and password

        Returns:
            200 with a new session, 401 for unknown account or wrong password

        Raises:
            FieldDecodeError: If a field is not base64 encoded UTF-8
        """
        email = decode_field("username_base64", form.username_base64)
        password = decode_field("password_base64", form.password_base64)

        user = None
        if is_storable_email(email):
            user = await self.user_repo.get_user_by_email(email)
        if not user:
            logger.warning("login_failed_user_not_found")
            self._record("login", 401)
            return LoginResponse(status=401, message=INVALID_CREDENTIALS_MESSAGE)

        verified = await self._timed(
            "verify", self.hasher.verify, password, user.salt, user.password
        )
        if not verified:
            logger.warning("login_failed_invalid_password", user_id=user.user_id)
            self._record("login", 401)
            return LoginResponse(status=401, message=INVALID_CREDENTIALS_MESSAGE)

        session = await self.session_repo.create_session(self._new_session(user.user_id))

        logger.info("login_success", user_id=user.user_id, expiry=session.expiry)
        self._record("login", 200)
        return LoginResponse(status=200, session_id=session.session_id, expiry=session.expiry)

    async def get_session(self, form: SessionForm) -> SessionResponse:
        """
        Resolve a session ID to its user.

        Args:
            form: Session ID

        Returns:
            200 with user ID and E-mail address, 401 when unknown or expired
        """
        session = await self.session_repo.get_session(form.session_id)
        if not session:
            self._record("session", 401)
            return SessionResponse(status=401, message=SESSION_NOT_FOUND_MESSAGE)

        if session.is_expired(self.clock()):
            logger.info("session_expired", user_id=session.user_id)
            self._record("session", 401)
            return SessionResponse(status=401, message=SESSION_EXPIRED_MESSAGE)

        user = await self.user_repo.get_user_by_id(session.user_id)
        if not user:
            logger.warning("session_user_missing", user_id=session.user_id)
            self._record("session", 401)
            return SessionResponse(status=401, message=SESSION_NOT_FOUND_MESSAGE)

        self._record("session", 200)
        return SessionResponse(status=200, user_id=user.user_id, email=user.email)

    async def logout(self, form: LogoutForm) -> LogoutResponse:
        """
        Invalidate a session. Expired sessions can be logged out too.

        Args:
            form: Session ID

        Returns:
            200 when the session was removed, 401 when it did not exist
        """
        deleted = await self.session_repo.delete_session(form.session_id)
        status = 200 if deleted else 401

        logger.info("logout", deleted=deleted)
        self._record("logout", status)
        return LogoutResponse(status=status)

    async def purge_expired_sessions(self) -> int:
        """Delete sessions past their expiry. Returns how many were removed."""
        return await self.session_repo.delete_expired_sessions(self.clock())
