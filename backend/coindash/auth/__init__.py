"""Credential handling for authenticated backend calls.

Public API:
    Credentials           - Access/refresh token pair
    CredentialStore       - Holder of the current tokens, optionally file-backed
    RefreshCoordinator    - Single-flight token refresh
    AuthenticatedRequester - Bearer-token HTTP calls with one refresh-and-retry
"""

from .credentials import CredentialStore, Credentials
from .errors import AuthenticationError, AuthError, RefreshError
from .refresh import RefreshCoordinator
from .requester import AuthenticatedRequester

__all__ = [
    "Credentials",
    "CredentialStore",
    "RefreshCoordinator",
    "AuthenticatedRequester",
    "AuthError",
    "AuthenticationError",
    "RefreshError",
]
