"""Ledger domain models, schemas and persistence."""
