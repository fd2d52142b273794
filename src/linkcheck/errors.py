"""
Exceptions raised by the link checker.

Broken links and fragments are never raised; they are collected in the
crawl report.
"""
from __future__ import annotations

from typing import Optional


class LinkCheckError(Exception):
    """Base class for failures that stop a link check."""


class ServerStartupFailure(LinkCheckError):
    """The supervised server never announced that it was listening."""

    def __init__(self, message: str, returncode: Optional[int] = None) -> None:
        super().__init__(message)
        self.returncode = returncode


class MissingDomainConfiguration(LinkCheckError, ValueError):
    """A LinkSieve was built without a site root domain."""
