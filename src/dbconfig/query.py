"""SELECT statement construction for settings tables."""

from typing import Callable, Optional


def quote_identifier(name: str) -> str:
    """Quote an identifier the ANSI way, doubling embedded quotes.

    Examples:
        >>> quote_identifier("Key")
        '"Key"'
        >>> quote_identifier('odd"name')
        '"odd""name"'
    """
    return '"' + name.replace('"', '""') + '"'


def build_select_query(
    table: str,
    key_column: str,
    value_column: str,
    schema: Optional[str] = None,
    quote: Callable[[str], str] = quote_identifier,
) -> str:
    """Build the query that projects a settings table to (key, value) rows.

    Args:
        table: Settings table name
        key_column: Column holding configuration keys
        value_column: Column holding configuration values
        schema: Optional schema qualifier; blank means unqualified
        quote: Identifier quoting function of the target dialect

    Returns:
        SQL query string
    """
    columns = f"{quote(key_column)}, {quote(value_column)}"
    if schema and schema.strip():
        return f"SELECT {columns} FROM {quote(schema)}.{quote(table)}"
    return f"SELECT {columns} FROM {quote(table)}"
