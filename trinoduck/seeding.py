"""Data seeding utilities for trinoduck - making test data easy!"""
from typing import Any

import pandas as pd

from .protocol.params import format_literal


def _qualified_schema(table_name: str) -> str | None:
    parts = table_name.split(".")
    return parts[-2] if len(parts) >= 2 else None


def _is_missing(value: Any) -> bool:
    return pd.api.types.is_scalar(value) and bool(pd.isna(value))


def _python_value(value: Any) -> Any:
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    # numpy scalars
    item = getattr(value, "item", None)
    return item() if item is not None else value


def seed_table(
    target,
    table_name: str,
    data: pd.DataFrame | dict[str, list] | list[dict[str, Any]],
    drop_if_exists: bool = True,
) -> int:
    """
    Seed a table with data from a pandas DataFrame or dict.

    Args:
        target: Where to create the table. Either the server side (an
            ``Engine`` or a DuckDB connection), or a trinoduck ``Connection``
            whose coordinator runs the statements.
        table_name: Name of the table to create/populate, e.g. ``tpch.orders``.
            A missing schema is created first.
        data: Data as pandas DataFrame, dict of lists, or list of dicts
        drop_if_exists: If True, drops existing table first (default: True)

    Returns:
        Number of rows inserted

    Example:
        >>> from trinoduck import seed_table
        >>> from trinoduck.server import shared_engine
        >>>
        >>> seed_table(shared_engine, 'tpch.nation', {
        ...     'nationkey': [0, 1, 2],
        ...     'name': ['ALGERIA', 'ARGENTINA', 'BRAZIL'],
        ... })
    """
    # Convert to DataFrame if needed
    if isinstance(data, (dict, list)):
        df = pd.DataFrame(data)
    else:
        df = data

    if len(df) == 0:
        raise ValueError("Cannot seed table with empty data")

    duck_conn = getattr(target, "duck_conn", None)
    if duck_conn is None and hasattr(target, "register"):
        duck_conn = target

    if duck_conn is not None:
        return _seed_duckdb(duck_conn, table_name, df, drop_if_exists)
    return _seed_via_statements(target, table_name, df, drop_if_exists)


def _seed_duckdb(duck_conn, table_name: str, df: pd.DataFrame, drop_if_exists: bool) -> int:
    schema = _qualified_schema(table_name)
    if schema:
        duck_conn.execute(f"CREATE SCHEMA IF NOT EXISTS {schema}")
    if drop_if_exists:
        duck_conn.execute(f"DROP TABLE IF EXISTS {table_name}")

    duck_conn.register("_trinoduck_seed", df)
    try:
        duck_conn.execute(f"CREATE TABLE {table_name} AS SELECT * FROM _trinoduck_seed")
    finally:
        duck_conn.unregister("_trinoduck_seed")
    return len(df)


def _seed_via_statements(connection, table_name: str, df: pd.DataFrame, drop_if_exists: bool) -> int:
    cursor = connection.cursor()
    try:
        schema = _qualified_schema(table_name)
        if schema:
            cursor.execute(f"CREATE SCHEMA IF NOT EXISTS {schema}")
        if drop_if_exists:
            cursor.execute(f"DROP TABLE IF EXISTS {table_name}")

        # Build CREATE TABLE AS SELECT FROM VALUES
        rows = []
        for _, row in df.iterrows():
            values = ["NULL" if _is_missing(v) else format_literal(_python_value(v)) for v in row.tolist()]
            rows.append(f"({', '.join(values)})")

        columns = ", ".join(df.columns)
        values_rows = ",\n            ".join(rows)
        cursor.execute(
            f"""
            CREATE TABLE {table_name} AS
            SELECT * FROM (VALUES
                {values_rows}
            ) AS t({columns})
            """
        )
    finally:
        cursor.close()

    return len(df)
