"""
Registry push error classes.

Provides the taxonomy of failures a chart push can surface. Every error
raised by the registry layer derives from RegistryError so callers can
treat a failed push uniformly, while still telling apart the one kind
(ContentRejected) that the caller may be able to fix and retry.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional


class RegistryError(Exception):
    """
    Base class for all registry push errors.

    Attributes:
        step: Push step that failed ("authentication", "existence check",
              "upload initiation", "blob upload", "manifest upload"), if known
    """

    def __init__(self, message: str, *, step: Optional[str] = None):
        super().__init__(message)
        self.step = step


class AuthenticationDenied(RegistryError):
    """
    The registry did not grant push access.

    Raised when:
    - The token exchange completed without a usable token
    - The initial probe returned neither a challenge nor success
    """
    pass


class ProtocolViolation(RegistryError):
    """
    The registry broke the Distribution Spec contract.

    Raised when:
    - A required header is missing (WWW-Authenticate, Location, Docker-Content-Digest)
    - A well-defined step returned an unexpected status code
    """

    def __init__(self, message: str, *, step: Optional[str] = None,
                 status_code: Optional[int] = None):
        super().__init__(message, step=step)
        self.status_code = status_code


class ContentRejected(RegistryError):
    """
    The registry rejected the uploaded content (HTTP 400).

    The message is the registry's own error text; it usually names what is
    wrong with the blob or manifest.
    """

    def __init__(self, detail: str, *, step: Optional[str] = None,
                 status_code: int = 400):
        super().__init__(detail, step=step)
        self.detail = detail
        self.status_code = status_code


class TransportError(RegistryError):
    """
    Network or I/O failure while talking to the registry.

    Always chained to the underlying httpx exception. The executor raising it
    does not know the push step; at_step() fills it in.
    """
    pass


@contextmanager
def at_step(step: str) -> Iterator[None]:
    """
    Attribute registry errors raised in the block to a push step.

    A step already set on the error is kept.
    """
    try:
        yield
    except RegistryError as e:
        if e.step is None:
            e.step = step
        raise


__all__ = [
    "RegistryError",
    "AuthenticationDenied",
    "ProtocolViolation",
    "ContentRejected",
    "TransportError",
    "at_step",
]
