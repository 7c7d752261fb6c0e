"""dbconfig exception types."""


class ConfigurationError(Exception):
    """Raised when configuration options or bindings are invalid."""

    pass


class DatabaseError(Exception):
    """Base exception for all row source errors."""

    pass


class DatabaseConnectionError(DatabaseError):
    """Raised when a row source cannot open its connection."""

    pass


class QueryError(DatabaseError):
    """Raised when fetching settings rows fails."""

    def __init__(self, message: str, query: str | None = None):
        """Initialize query error.

        Args:
            message: Error message
            query: The SQL query that failed
        """
        super().__init__(message)
        self.query = query


class WatcherDisposedError(RuntimeError):
    """Raised when a disposed change watcher is asked to watch again."""

    pass
