import threading
from time import sleep
from typing import Any, Callable, Generator, Iterator

import duckdb
import pytest

import trinoduck
from trinoduck import Connection

# Conditional imports for server tests (optional dependencies)
try:
    import uvicorn
    from starlette.testclient import TestClient

    from trinoduck.server import app, shared_engine

    HAS_SERVER_DEPS = True
except ImportError:
    HAS_SERVER_DEPS = False


@pytest.fixture
def test_client() -> "TestClient":
    """An in-process client for the fake coordinator."""
    if not HAS_SERVER_DEPS:
        pytest.skip("Server dependencies (duckdb, sqlglot, starlette) not installed")
    shared_engine.duck_conn.execute("CREATE SCHEMA IF NOT EXISTS tpch")
    return TestClient(app)


@pytest.fixture
def conn(test_client: "TestClient") -> Generator[Connection, Any, None]:
    with trinoduck.connect(
        base_url="http://testserver",
        client=test_client,
        user="test",
        catalog="memory",
        schema="tpch",
    ) as conn:
        yield conn


@pytest.fixture
def cursor(conn: Connection) -> Iterator[trinoduck.Cursor]:
    with conn.cursor() as cur:
        yield cur


@pytest.fixture
def in_memory_duckdb_connection():
    """
    Provides an in-memory DuckDB connection for testing.
    """
    conn = duckdb.connect(":memory:")
    yield conn
    conn.close()


@pytest.fixture(scope="session")
def server(unused_tcp_port_factory: Callable[[], int]) -> Iterator[dict]:
    """Start a test server for the session and provide connection details."""
    if not HAS_SERVER_DEPS:
        pytest.skip("Server dependencies (uvicorn, starlette) not installed")

    port = unused_tcp_port_factory()
    config = uvicorn.Config(app, port=port, log_level="error")
    server = uvicorn.Server(config)
    thread = threading.Thread(target=server.run, name="Server", daemon=True)

    thread.start()

    # Wait until the server is fully started
    while not server.started:
        sleep(0.1)

    shared_engine.duck_conn.execute("CREATE SCHEMA IF NOT EXISTS tpch")

    # Provide connection details
    yield {
        "user": "duck",
        "host": "localhost",
        "port": port,
        "http_scheme": "http",
        "catalog": "memory",
        "schema": "tpch",
    }

    # Graceful shutdown
    server.should_exit = True
    thread.join()
