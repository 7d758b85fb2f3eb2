"""
pointkeeper.errors — Error Taxonomy
====================================

Every failure raised by the ledger services derives from
:class:`PointkeeperError`.  Each class carries the HTTP status the API
layer maps it to.

* :class:`ValidationError` — malformed input.  Raised before any
  transaction opens, so nothing has been written.
* :class:`NotFoundError` — target participant / group / honor is not in
  the organization.  Aborts the in-flight transaction.
* :class:`ConflictError` — the write would break the one-honor-per-day
  rule (re-dating an honor onto an occupied day).
* :class:`InternalError` — storage failure.  Aborts the transaction.
"""

from __future__ import annotations


class PointkeeperError(Exception):
    """Base class for all ledger errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(PointkeeperError):
    status_code = 400


class NotFoundError(PointkeeperError):
    status_code = 404


class ConflictError(PointkeeperError):
    status_code = 409


class InternalError(PointkeeperError):
    status_code = 500
