"""Exceptions raised by the authentication layer."""

from __future__ import annotations


class AuthError(Exception):
    """Base class for authentication failures."""


class RefreshError(AuthError):
    """The refresh token was missing or rejected, or the refresh call failed."""


class AuthenticationError(AuthError):
    """Terminal authentication failure for a call; the session has been invalidated."""
