"""Rate limiting for the credential endpoints (slowapi)."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from login_server.src.config import get_settings


def auth_rate_limit() -> str:
    """Limit applied to register and login, read from settings on each request."""
    return get_settings().rate_limit_auth


def create_limiter() -> Limiter:
    """Build the limiter from settings; memory storage unless a Redis URL is configured."""
    settings = get_settings()
    options = {}
    if settings.rate_limit_storage_url:
        options["storage_uri"] = settings.rate_limit_storage_url

    return Limiter(
        key_func=get_remote_address,
        enabled=settings.rate_limit_enabled,
        **options
    )


limiter = create_limiter()
