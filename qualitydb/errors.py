"""Error taxonomy for the database layer.

Driver exceptions never escape the package untyped: connection problems
surface as `DatabaseConnectionError`, statement failures as `QueryError`,
and migration/seed/reset failures as their own types below.
"""

from __future__ import annotations


class DatabaseError(Exception):
    pass


class DatabaseConnectionError(DatabaseError, ConnectionError):
    """The pool could not be established within the retry budget."""

    def __init__(self, message: str, *, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class NotInitializedError(DatabaseError, RuntimeError):
    def __init__(self, message: str = "Database not initialized. Call initialize() first.") -> None:
        super().__init__(message)


class QueryError(DatabaseError):
    """A statement failed. `statement` is the sanitized text, never parameters."""

    def __init__(self, statement: str, message: str) -> None:
        super().__init__(f"{message} [query: {statement}]")
        self.statement = statement
        self.message = message


class MigrationFailure(DatabaseError):
    def __init__(self, version: str, message: str, *, name: str | None = None, execution_time_ms: int = 0) -> None:
        super().__init__(f"Migration {version} failed: {message}")
        self.version = version
        self.name = name
        self.message = message
        self.execution_time_ms = execution_time_ms


class MigrationChecksumError(MigrationFailure):
    """An applied migration no longer matches its registered definition."""


class SeedError(DatabaseError):
    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors) or "seed data creation failed")
        self.errors = list(errors)


class ResetGuardError(DatabaseError, PermissionError):
    pass
