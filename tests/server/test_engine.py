"""Tests for statement execution on DuckDB."""

import pytest

try:
    from trinoduck.server.engine import Engine, EngineError, SessionContext

    HAS_SERVER_DEPS = True
except ImportError:
    HAS_SERVER_DEPS = False


pytestmark = pytest.mark.skipif(
    not HAS_SERVER_DEPS, reason="Server dependencies not installed"
)


@pytest.fixture
def engine():
    engine = Engine()
    engine.duck_conn.execute("CREATE SCHEMA sales")
    engine.duck_conn.execute("CREATE TABLE sales.orders AS SELECT * FROM (VALUES (1, 9.5), (2, 20.0)) AS t(id, total)")
    yield engine
    engine.close()


@pytest.fixture
def context() -> "SessionContext":
    return SessionContext(catalog="memory", schema="sales")


def test_select(engine, context) -> None:
    result = engine.execute("SELECT id FROM orders ORDER BY id", context)

    assert result.columns == [{"name": "id", "type": "integer"}]
    assert result.rows == [[1], [2]]
    assert result.update_type is None


def test_catalog_is_ignored(engine) -> None:
    result = engine.execute("SELECT count(*) AS n FROM memory.sales.orders", SessionContext())
    assert result.rows == [[2]]


def test_ctes_do_not_need_a_schema(engine) -> None:
    result = engine.execute("WITH t AS (SELECT 1 AS x) SELECT x FROM t", SessionContext())
    assert result.rows == [[1]]


def test_missing_schema(engine) -> None:
    with pytest.raises(EngineError) as exc_info:
        engine.execute("SELECT * FROM orders", SessionContext(catalog="memory"))

    assert exc_info.value.error_name == "MISSING_SCHEMA_NAME"
    assert exc_info.value.message == "line 1:1: Schema must be specified when session schema is not set"


def test_insert_reports_update_count(engine, context) -> None:
    result = engine.execute("INSERT INTO orders VALUES (3, 1.0), (4, 2.0)", context)

    assert result.update_type == "INSERT"
    assert result.update_count == 2
    assert result.rows == [[2]]


def test_ddl(engine, context) -> None:
    result = engine.execute("CREATE TABLE refunds (id INTEGER)", context)

    assert result.update_type == "CREATE TABLE"
    assert result.columns is None


def test_set_session(engine, context) -> None:
    result = engine.execute("SET SESSION query_max_run_time = '1h,2m'", context)

    assert result.update_type == "SET SESSION"
    assert result.headers == {"X-Trino-Set-Session": "query_max_run_time=1h%2C2m"}


def test_reset_session(engine, context) -> None:
    result = engine.execute("RESET SESSION query_max_run_time", context)
    assert result.headers == {"X-Trino-Clear-Session": "query_max_run_time"}


def test_use(engine) -> None:
    result = engine.execute("USE memory.sales", SessionContext())
    assert result.headers == {"X-Trino-Set-Schema": "sales", "X-Trino-Set-Catalog": "memory"}


def test_use_unknown_schema(engine) -> None:
    with pytest.raises(EngineError) as exc_info:
        engine.execute("USE memory.nope", SessionContext())
    assert exc_info.value.error_name == "SCHEMA_NOT_FOUND"


def test_set_role(engine, context) -> None:
    with pytest.raises(EngineError) as exc_info:
        engine.execute("SET ROLE dummy", context)

    payload = exc_info.value.to_json()
    assert payload["message"] == "line 1:1: Role 'dummy' does not exist"
    assert payload["failureInfo"]["type"] == "io.trino.spi.TrinoException"


def test_set_path_is_rejected(engine, context) -> None:
    with pytest.raises(EngineError) as exc_info:
        engine.execute("SET PATH memory.sales", context)

    assert str(exc_info.value) == "SET PATH not supported by client"
    assert exc_info.value.error_name == "NOT_SUPPORTED"


def test_show_session(engine) -> None:
    result = engine.execute("SHOW SESSION", SessionContext(properties={"b": "2", "a": "1"}))
    assert [row[:2] for row in result.rows] == [["a", "1"], ["b", "2"]]


def test_execute_prepared(engine, context) -> None:
    context.prepared_statements["q"] = "SELECT id FROM orders WHERE id = ?"

    result = engine.execute("EXECUTE q USING 2", context)
    assert result.rows == [[2]]


def test_execute_prepared_binds_in_textual_order(engine, context) -> None:
    context.prepared_statements["q"] = "SELECT ? - 1, ?"

    result = engine.execute("EXECUTE q USING 10, 100", context)
    assert result.rows == [[9, 100]]


def test_execute_with_wrong_parameter_count(engine, context) -> None:
    context.prepared_statements["q"] = "SELECT ?, ?"

    with pytest.raises(EngineError) as exc_info:
        engine.execute("EXECUTE q USING 1", context)
    assert exc_info.value.error_name == "INVALID_PARAMETER_USAGE"


def test_execute_unknown_statement(engine, context) -> None:
    with pytest.raises(EngineError) as exc_info:
        engine.execute("EXECUTE nope", context)
    assert exc_info.value.error_name == "NOT_FOUND"


def test_syntax_error(engine, context) -> None:
    with pytest.raises(EngineError) as exc_info:
        engine.execute("SELEC 1", context)
    assert exc_info.value.error_name == "SYNTAX_ERROR"
