"""Clinic billing and invoice ledger."""

__version__ = "0.1.0"
