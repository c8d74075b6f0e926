"""Validation package."""

from smartledger.validation.validator import LedgerValidator

__all__ = ["LedgerValidator"]
