from collections.abc import Iterator
from types import TracebackType
from typing import TYPE_CHECKING, Any, Self, Sequence

from ..errors import InterfaceError, ProgrammingError
from ..protocol.cancellation import Cancellation
from ..types import TypedValue
from .rowtype import ColumnInfo, describe_as_column_info, describe_as_description

if TYPE_CHECKING:
    import pandas as pd

    from ..protocol.query import Query
    from .connection import Connection


class Cursor:
    def __init__(self, connection: "Connection", use_dict_result: bool = False) -> None:
        self._connection = connection
        self._use_dict_result = use_dict_result
        self._is_closed = False
        self._query: "Query | None" = None
        self._last_sql: str | None = None
        self._last_params: Sequence[Any] | None = None
        self.arraysize: int = 1

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def __iter__(self) -> Iterator[tuple | dict]:
        while (row := self.fetchone()) is not None:
            yield row

    @property
    def description(self) -> list[tuple] | None:
        if self._query is None or self._query.columns is None:
            return None
        return describe_as_description(self._query.columns)

    @property
    def column_info(self) -> list[ColumnInfo]:
        if self._query is None or self._query.columns is None:
            return []
        return describe_as_column_info(self._query.columns)

    def execute(
        self,
        command: str,
        params: Sequence[Any] | None = None,
        *,
        timeout: float | None = None,
        cancellation: Cancellation | None = None,
    ) -> Self:
        """Submit ``command`` and wait until its result set is described.

        Args:
            command: SQL text; ``?`` marks positional parameters.
            params: Positional parameter values.
            timeout: Deadline in seconds; defaults to the connection's
                ``query_timeout``.
            cancellation: External cancellation signal. Takes precedence over
                ``timeout``.
        """
        if self._is_closed:
            raise InterfaceError("Cursor is closed")
        if params is not None and isinstance(params, (str, bytes, dict)):
            raise ProgrammingError("params must be a sequence of positional values")

        if self._query is not None:
            self._query.close()

        if cancellation is None:
            if timeout is None:
                timeout = self._connection.query_timeout
            cancellation = Cancellation(timeout)

        self._last_sql = command
        self._last_params = params
        self._query = self._connection.new_query(cancellation)
        self._query.submit(command, params)
        self._query.describe()
        return self

    def executemany(self, command: str, seq_of_params: Sequence[Sequence[Any]], **kwargs: Any) -> Self:
        for params in seq_of_params:
            self.execute(command, params, **kwargs)
            self._drain()
        return self

    def _drain(self) -> None:
        query = self._require_query()
        while query.advance() is not None:
            pass

    def _require_query(self) -> "Query":
        if self._query is None:
            # Consistent with other DB-API cursors when nothing was executed
            raise TypeError("No open result set")
        return self._query

    def fetchone_typed(self) -> list[TypedValue] | None:
        """Fetch the next row as typed, null-aware values."""
        return self._require_query().advance()

    def fetchone(self) -> dict | tuple | None:
        row = self.fetchone_typed()
        if row is None:
            return None
        values = [v.to_python() for v in row]
        if self._use_dict_result:
            return {c.name: v for c, v in zip(self._query.columns or [], values)}
        return tuple(values)

    def fetchmany(self, size: int | None = None) -> list[tuple] | list[dict]:
        if size is None:
            size = self.arraysize
        rows = []
        while len(rows) < size and (row := self.fetchone()) is not None:
            rows.append(row)
        return rows

    def fetchall(self) -> list[tuple] | list[dict]:
        return list(self)

    def fetch_pandas_all(self, **kwargs: Any) -> "pd.DataFrame":
        """
        Fetch all remaining rows as a pandas DataFrame.

        Returns:
            pandas.DataFrame: All remaining rows as a DataFrame.
        """
        import pandas as pd

        query = self._require_query()
        rows = [[v.to_python() for v in row] for row in query]
        return pd.DataFrame(rows, columns=[c.name for c in query.columns or []])

    def cancel(self) -> None:
        """Cancel the running query. Safe to call from another thread."""
        if self._query is not None and self._query.cancellation is not None:
            self._query.cancellation.cancel()

    def setinputsizes(self, sizes: Any) -> None:
        pass

    def setoutputsize(self, size: Any, column: Any = None) -> None:
        pass

    def is_closed(self) -> bool:
        return self._is_closed

    def close(self) -> bool:
        if self.is_closed():
            return False
        if self._query is not None:
            self._query.close()
        self._last_sql = None
        self._last_params = None
        self._is_closed = True
        return True

    @property
    def rowcount(self) -> int:
        if self._query is None or self._query.update_count is None:
            return -1
        return self._query.update_count

    @property
    def query_id(self) -> str | None:
        return self._query.query_id if self._query else None

    @property
    def query(self) -> "Query | None":
        return self._query

    @property
    def stats(self) -> dict[str, Any]:
        return self._query.stats if self._query else {}

    @property
    def warnings(self) -> list[dict[str, Any]]:
        return self._query.warnings if self._query else []

    @property
    def update_type(self) -> str | None:
        return self._query.update_type if self._query else None

    @property
    def connection(self) -> "Connection":
        return self._connection
