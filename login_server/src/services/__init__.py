"""Business logic services.

This package contains service classes that implement the authentication
flows on top of the user and session repositories.
"""
