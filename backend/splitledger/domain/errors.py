# backend/splitledger/domain/errors.py
from __future__ import annotations


class LedgerError(Exception):
    """Base class for every failure the ledger surfaces to its callers."""

    code = "ledger_error"
    status = 500


class ValidationError(LedgerError, ValueError):
    """Rejected input: bad amounts, bad shares, unknown enum values."""

    code = "validation_failed"
    status = 400


class AuthorizationError(LedgerError):
    """Requestor may not perform this operation (not the payer / sender)."""

    code = "forbidden"
    status = 403


class NotFoundError(LedgerError):
    code = "not_found"
    status = 404


class ConsistencyError(LedgerError):
    """
    The store reported zero affected rows where one was expected, or an
    internal invariant did not hold. Never retried automatically.
    """

    code = "internal_inconsistency"
    status = 500
