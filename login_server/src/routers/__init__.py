"""HTTP routers."""

from login_server.src.routers.auth import auth_router

__all__ = ["auth_router"]
