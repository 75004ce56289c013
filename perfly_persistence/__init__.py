"""
Perfly Persistence module.

This module contains database implementation for job storage.
Currently supports SQLite, but can be extended to PostgreSQL, MySQL, etc.

The persistence layer depends on perfly_common for domain models and
interfaces, and can be used by the server, the processor and the admin CLI.
"""

from .sqlite_repository import SQLiteJobRepository

__all__ = ["SQLiteJobRepository"]
