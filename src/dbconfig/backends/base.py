"""Base row source interface."""

from abc import ABC, abstractmethod
from typing import Any

from ..query import quote_identifier


class RowSource(ABC):
    """Abstract connection to a table of (key, value) settings rows.

    A row source owns exactly one connection. It is opened lazily by the
    provider before the first query and closed when the provider is closed.
    """

    dialect: str = ""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Check if the underlying connection is open."""
        pass

    @abstractmethod
    async def open(self) -> None:
        """Open the underlying connection.

        Raises:
            DatabaseConnectionError: If the connection cannot be established
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the underlying connection. Closing a closed source is a no-op."""
        pass

    @abstractmethod
    async def fetch_pairs(self, query: str) -> list[tuple[Any, Any]]:
        """Run a two-column query and return its rows in order.

        Raises:
            QueryError: If the query fails
        """
        pass

    def quote_identifier(self, name: str) -> str:
        """Quote an identifier for this dialect."""
        return quote_identifier(name)

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"{self.__class__.__name__}(dialect='{self.dialect}', {state})"
