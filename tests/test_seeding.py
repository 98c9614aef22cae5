"""Test data seeding utilities."""

import pytest

pd = pytest.importorskip("pandas")

from trinoduck import seed_table  # noqa: E402


def test_seed_table_from_dict(cursor):
    from trinoduck.server import shared_engine

    data = {
        "id": [1, 2, 3],
        "name": ["Alice", "Bob", "Carol"],
        "value": [100, 200, 300],
    }

    rows = seed_table(shared_engine, "tpch.seed_from_dict", data)

    assert rows == 3

    cursor.execute("SELECT COUNT(*) FROM seed_from_dict")
    assert cursor.fetchone()[0] == 3

    cursor.execute("SELECT * FROM seed_from_dict ORDER BY id")
    results = cursor.fetchall()
    assert results[0][1] == "Alice"
    assert results[1][2] == 200


def test_seed_table_from_dataframe(in_memory_duckdb_connection):
    df = pd.DataFrame(
        {
            "id": [1, 2],
            "name": ["Alice", "Bob"],
            "created": pd.to_datetime(["2024-01-01", "2024-01-02"]),
        }
    )

    rows = seed_table(in_memory_duckdb_connection, "staging.people", df)

    assert rows == 2
    assert in_memory_duckdb_connection.execute("SELECT count(*) FROM staging.people").fetchone()[0] == 2


def test_seed_table_through_connection(conn, cursor):
    rows = seed_table(
        conn,
        "tpch.seed_via_statements",
        [{"id": 1, "name": "O'Brien", "score": 1.5}, {"id": 2, "name": "Smith", "score": None}],
    )

    assert rows == 2

    cursor.execute("SELECT id, name, score FROM seed_via_statements ORDER BY id")
    assert cursor.fetchall() == [(1, "O'Brien", 1.5), (2, "Smith", None)]


def test_seed_table_replaces_existing(in_memory_duckdb_connection):
    seed_table(in_memory_duckdb_connection, "replaced", {"x": [1, 2, 3]})
    seed_table(in_memory_duckdb_connection, "replaced", {"x": [4]})

    assert in_memory_duckdb_connection.execute("SELECT x FROM replaced").fetchall() == [(4,)]


def test_seed_table_empty_data_raises(in_memory_duckdb_connection):
    with pytest.raises(ValueError, match="Cannot seed table with empty data"):
        seed_table(in_memory_duckdb_connection, "empty", {"x": []})
