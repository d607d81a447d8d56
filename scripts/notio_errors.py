"""Exception types shared by the notio sync scripts."""

from __future__ import annotations

from typing import Optional


class NotioError(RuntimeError):
    """Base class for conditions that end a sync run."""


class ConfigError(NotioError):
    pass


class AuthError(NotioError):
    pass


class RemoteError(NotioError):
    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class PartialIndexError(NotioError):
    """Raised when the remote table could not be read completely."""
