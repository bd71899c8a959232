"""Validation package."""

from homeledger.validation.validator import TransactionValidator

__all__ = ["TransactionValidator"]
