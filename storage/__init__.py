"""
Storage Package.

Relational persistence for the market pipeline.

Modules:
- database: Engine, sessions and transaction scopes
- models: ORM models
- repositories: Data access layer
"""

from storage.database import Database, DatabaseConnectionError, DatabasePersistenceError

__all__ = [
    "Database",
    "DatabaseConnectionError",
    "DatabasePersistenceError",
]
