"""Shared state and utilities for the trinoduck server.

This module contains:
- ServerError exception class
- Shared engine and statement manager instances
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .engine import Engine
from .statement_manager import StatementManager

# Shared DuckDB engine instance
# Use TRINODUCK_DB_PATH environment variable for persistence, or in-memory by default
shared_engine = Engine(db_file=os.getenv("TRINODUCK_DB_PATH", ":memory:"))

# Shared statement manager for tracking submitted queries
statement_manager = StatementManager()


@dataclass
class ServerError(Exception):
    """Exception raised for server errors with HTTP status code and error name."""

    status_code: int
    code: str
    message: str
