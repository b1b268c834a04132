"""Data access layer for the ledger engine.

This module provides data models and repository patterns for accessing
currency ledger events, stock transactions and splits.
"""
