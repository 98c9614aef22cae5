"""DuckDB-backed statement execution for the fake coordinator.

Statements arrive in the coordinator's SQL dialect, are transpiled to DuckDB
with sqlglot and executed on a shared DuckDB connection. Session statements
(``SET SESSION``, ``USE`` ...) are answered with the response headers a real
coordinator would send.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, cast
from urllib.parse import quote

import duckdb
import sqlglot
from sqlglot import exp

from .types import duckdb_type_to_signature, serialize_rowset

logger = logging.getLogger(__name__)

FAILURE_TYPE = "io.trino.spi.TrinoException"

_SET_SESSION_RE = re.compile(r"^SET\s+SESSION\s+([\w.]+)\s*=\s*(.+)$", re.IGNORECASE | re.DOTALL)
_RESET_SESSION_RE = re.compile(r"^RESET\s+SESSION\s+([\w.]+)$", re.IGNORECASE)
_USE_RE = re.compile(r"^USE\s+(?:(\w+)\.)?(\w+)$", re.IGNORECASE)
_SET_PATH_RE = re.compile(r"^SET\s+PATH\b", re.IGNORECASE)
_SET_ROLE_RE = re.compile(r"^SET\s+ROLE\s+(\w+)", re.IGNORECASE)
_SHOW_SESSION_RE = re.compile(r"^SHOW\s+SESSION$", re.IGNORECASE)
_EXECUTE_RE = re.compile(r"^EXECUTE\s+(\w+)(?:\s+USING\s+(.+))?$", re.IGNORECASE | re.DOTALL)


class EngineError(Exception):
    """A statement failure, reported to the client as a FAILED page."""

    def __init__(
        self,
        message: str,
        error_name: str = "GENERIC_USER_ERROR",
        error_code: int = 0,
        error_type: str = "USER_ERROR",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_name = error_name
        self.error_code = error_code
        self.error_type = error_type

    def to_json(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "errorCode": self.error_code,
            "errorName": self.error_name,
            "errorType": self.error_type,
            "failureInfo": {"type": FAILURE_TYPE, "message": self.message, "stack": []},
        }


@dataclass
class SessionContext:
    """Session state sent by the client with one request."""

    catalog: str | None = None
    schema: str | None = None
    properties: dict[str, str] = field(default_factory=dict)
    prepared_statements: dict[str, str] = field(default_factory=dict)


@dataclass
class ExecutionResult:
    columns: list[dict[str, str]] | None = None
    rows: list[list[Any]] = field(default_factory=list)
    update_type: str | None = None
    update_count: int | None = None
    headers: dict[str, str] = field(default_factory=dict)


def _unquote_value(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] == "'":
        return value[1:-1].replace("''", "'")
    return value


def _clean_message(e: Exception) -> str:
    # Remove ANSI formatting and DuckDB's multi-line hints
    text = str(e).replace("\x1b[4m", "").replace("\x1b[0m", "")
    return text.split("\n")[0]


class Engine:
    def __init__(self, db_file: str = ":memory:", timezone: str = "UTC"):
        """
        Initializes the DuckDB engine.

        Args:
            db_file: The DuckDB database file to use. Defaults to ':memory:' (transient).
            timezone: Session time zone for timestamp with time zone values.
        """
        self._db_file = db_file
        self._duck_conn = duckdb.connect(database=db_file)
        self._duck_conn.execute(f"SET GLOBAL TimeZone = '{timezone}'")
        self._register_runtime_tables()

    @property
    def duck_conn(self) -> duckdb.DuckDBPyConnection:
        return self._duck_conn

    def _register_runtime_tables(self) -> None:
        self._duck_conn.execute("CREATE SCHEMA IF NOT EXISTS runtime")
        self._duck_conn.execute(
            "CREATE OR REPLACE TABLE runtime.nodes AS SELECT "
            "'trinoduck' AS node_id, 'http://localhost' AS http_uri, "
            "'trinoduck' AS node_version, true AS coordinator, 'active' AS state"
        )

    def execute(self, sql: str, context: SessionContext) -> ExecutionResult:
        """Execute one statement.

        Raises:
            EngineError: The statement failed.
        """
        sql = sql.strip().rstrip(";").strip()

        session_result = self._execute_session_statement(sql, context)
        if session_result is not None:
            return session_result

        execute = _EXECUTE_RE.match(sql)
        if execute:
            expression = self._bind_prepared(execute.group(1), execute.group(2), context)
        else:
            expression = self._parse(sql)

        self._check_schema(expression, context)
        for table in expression.find_all(exp.Table):
            # Every catalog maps onto the one DuckDB database.
            if table.args.get("catalog"):
                table.set("catalog", None)

        return self._execute_expression(expression, context)

    def _parse(self, sql: str) -> exp.Expression:
        try:
            expression = sqlglot.parse_one(sql, read="trino")
        except sqlglot.errors.ParseError as e:
            raise EngineError(f"line 1:1: {_clean_message(e)}", "SYNTAX_ERROR", 1) from None
        if expression is None:
            raise EngineError("line 1:1: empty statement", "SYNTAX_ERROR", 1)
        return expression

    def _execute_session_statement(self, sql: str, context: SessionContext) -> ExecutionResult | None:
        if match := _SET_SESSION_RE.match(sql):
            name, value = match.group(1), _unquote_value(match.group(2))
            return ExecutionResult(
                update_type="SET SESSION",
                headers={"X-Trino-Set-Session": f"{name}={quote(value, safe='')}"},
            )

        if match := _RESET_SESSION_RE.match(sql):
            return ExecutionResult(
                update_type="RESET SESSION",
                headers={"X-Trino-Clear-Session": match.group(1)},
            )

        if match := _USE_RE.match(sql):
            catalog = match.group(1) or context.catalog
            schema = match.group(2)
            exists = self._duck_conn.execute(
                "SELECT count(*) FROM information_schema.schemata WHERE lower(schema_name) = lower(?)",
                [schema],
            ).fetchone()
            if not exists or not exists[0]:
                raise EngineError(f"Schema '{catalog}.{schema}' does not exist", "SCHEMA_NOT_FOUND", 47)
            headers = {"X-Trino-Set-Schema": schema}
            if catalog:
                headers["X-Trino-Set-Catalog"] = catalog
            return ExecutionResult(update_type="USE", headers=headers)

        if _SET_PATH_RE.match(sql):
            raise EngineError("SET PATH not supported by client", "NOT_SUPPORTED", 13)

        if match := _SET_ROLE_RE.match(sql):
            raise EngineError(f"line 1:1: Role '{match.group(1)}' does not exist", "ROLE_NOT_FOUND", 53)

        if _SHOW_SESSION_RE.match(sql):
            columns = ["Name", "Value", "Default", "Type", "Description"]
            rows = [[name, value, "", "varchar", ""] for name, value in sorted(context.properties.items())]
            return ExecutionResult(
                columns=[{"name": c, "type": "varchar"} for c in columns],
                rows=rows,
            )

        return None

    def _bind_prepared(self, name: str, using: str | None, context: SessionContext) -> exp.Expression:
        if name not in context.prepared_statements:
            raise EngineError(f"Prepared statement not found: {name}", "NOT_FOUND", 18)
        expression = self._parse(context.prepared_statements[name])

        values: list[exp.Expression] = []
        if using:
            select = self._parse(f"SELECT {using}")
            values = list(cast(exp.Select, select).expressions)

        # Pre-order walk keeps placeholders in textual order.
        placeholders = list(expression.find_all(exp.Placeholder, bfs=False))
        if len(placeholders) != len(values):
            raise EngineError(
                f"Incorrect number of parameters: expected {len(placeholders)} but found {len(values)}",
                "INVALID_PARAMETER_USAGE",
                59,
            )
        for placeholder, value in zip(placeholders, values):
            placeholder.replace(value.copy())
        return expression

    def _check_schema(self, expression: exp.Expression, context: SessionContext) -> None:
        if context.schema:
            return
        if isinstance(expression, (exp.Create, exp.Drop)) and str(expression.args.get("kind")).upper() == "SCHEMA":
            return
        ctes = {cte.alias_or_name.lower() for cte in expression.find_all(exp.CTE)}
        for table in expression.find_all(exp.Table):
            if not isinstance(table.this, exp.Identifier) or table.args.get("db"):
                continue
            if table.name.lower() in ctes:
                continue
            raise EngineError(
                "line 1:1: Schema must be specified when session schema is not set",
                "MISSING_SCHEMA_NAME",
                9,
            )

    def _execute_expression(self, expression: exp.Expression, context: SessionContext) -> ExecutionResult:
        duck_sql = expression.sql(dialect="duckdb")
        logger.info("Executing SQL: %s", duck_sql)

        cur = self._duck_conn.cursor()
        try:
            if context.schema:
                cur.execute(f"SET schema='{context.schema}'")
            cur.execute(duck_sql)

            if isinstance(expression, (exp.Insert, exp.Update, exp.Delete)):
                row = cur.fetchone()
                count = int(row[0]) if row else 0
                return ExecutionResult(
                    columns=[{"name": "rows", "type": "bigint"}],
                    rows=[[count]],
                    update_type=expression.key.upper(),
                    update_count=count,
                )

            if isinstance(expression, (exp.Create, exp.Drop, exp.Alter)):
                kind = str(expression.args.get("kind") or "").upper()
                return ExecutionResult(update_type=f"{expression.key.upper()} {kind}".strip())

            if not cur.description:
                return ExecutionResult()

            types = [duckdb_type_to_signature(d[1]) for d in cur.description]
            columns = [{"name": d[0], "type": t} for d, t in zip(cur.description, types)]
            return ExecutionResult(columns=columns, rows=serialize_rowset(types, cur.fetchall()))
        except duckdb.CatalogException as e:
            raise EngineError(_clean_message(e), "TABLE_NOT_FOUND", 46) from None
        except duckdb.BinderException as e:
            raise EngineError(_clean_message(e), "TYPE_MISMATCH", 58) from None
        except duckdb.ParserException as e:
            raise EngineError(_clean_message(e), "SYNTAX_ERROR", 1) from None
        except duckdb.Error as e:
            raise EngineError(_clean_message(e)) from None
        finally:
            cur.close()

    def close(self) -> None:
        """
        Close the shared DuckDB connection.
        """
        if self._duck_conn:
            self._duck_conn.close()
            self._duck_conn = None
