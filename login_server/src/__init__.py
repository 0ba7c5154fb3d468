"""Login server for the Twinsight content dashboard.

This package provides the HTTP endpoints for account registration, login,
session lookup and logout, backed by PostgreSQL.
"""

__version__ = "0.1.0"
