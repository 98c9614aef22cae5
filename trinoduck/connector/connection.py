import logging
import os
from concurrent.futures import ThreadPoolExecutor
from types import TracebackType
from typing import Any, Mapping, Self

import httpx

from ..errors import InterfaceError, NotSupportedError
from ..protocol.cancellation import Cancellation, CancellationController
from ..protocol.headers import SessionHeaderManager, SessionState
from ..protocol.query import Query
from ..protocol.transport import HttpExecutor, TransportRegistry, default_registry
from .cursor import Cursor

logger = logging.getLogger(__name__)


def _env_float(name: str) -> float | None:
    value = os.getenv(name)
    return float(value) if value else None


class Connection:
    def __init__(
        self,
        host: str = "localhost",
        port: int = 8080,
        user: str | None = None,
        catalog: str | None = None,
        schema: str | None = None,
        source: str = "trinoduck",
        http_scheme: str = "http",
        base_url: str | None = None,
        session_properties: Mapping[str, Any] | None = None,
        time_zone: str | None = None,
        client_info: str | None = None,
        client_tags: list[str] | None = None,
        custom_client: str | None = None,
        registry: TransportRegistry | None = None,
        client: httpx.Client | None = None,
        query_timeout: float | None = None,
        max_attempts: int | None = None,
        session_properties_via_headers: bool = True,
    ) -> None:
        """
        Opens a connection to a coordinator.

        Args:
            host, port, http_scheme: Coordinator address, unless ``base_url`` is given.
            user: Value of the user header. Defaults to ``$USER``.
            catalog, schema: Initial session catalog and schema.
            session_properties: Initial session properties.
            custom_client: Name of an ``httpx.Client`` registered in ``registry``.
            registry: Registry to resolve ``custom_client``; the process-wide
                registry by default.
            client: An ``httpx.Client`` to use directly (not closed by us).
            query_timeout: Default deadline in seconds for every query. Defaults
                to ``$TRINODUCK_QUERY_TIMEOUT``; unset means no deadline.
            max_attempts: Attempts per request for retryable coordinator
                errors. Defaults to ``$TRINODUCK_MAX_RETRIES`` or 3.
            session_properties_via_headers: Apply session property changes the
                coordinator sends back as headers. When False they are reported
                as ``UnsupportedHeaderError``.
        """
        self._base_url = base_url or f"{http_scheme}://{host}:{port}"
        self._is_closed = False

        registry = registry or default_registry
        self._owns_client = False
        if client is None and custom_client:
            client = registry.get(custom_client)
        if client is None:
            client = httpx.Client(timeout=httpx.Timeout(30.0, read=None))
            self._owns_client = True
        self._client = client

        self.session = SessionState(
            user=user or os.getenv("USER") or "trinoduck",
            source=source,
            catalog=catalog,
            schema=schema,
            time_zone=time_zone,
            client_info=client_info,
            client_tags=list(client_tags or []),
            properties={k: str(v) for k, v in (session_properties or {}).items()},
        )
        self._header_manager = SessionHeaderManager(self.session, session_properties_via_headers)

        self.query_timeout = query_timeout if query_timeout is not None else _env_float("TRINODUCK_QUERY_TIMEOUT")
        if max_attempts is None:
            max_attempts = int(os.getenv("TRINODUCK_MAX_RETRIES", "3"))
        self._executor = HttpExecutor(client, max_attempts=max_attempts)
        self._pool = ThreadPoolExecutor(thread_name_prefix="trinoduck-fetch")
        self._controller = CancellationController(self._pool, self._delete)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def cursor(self, use_dict_result: bool = False) -> Cursor:
        """
        Returns a new Cursor object for executing queries.
        """
        if self._is_closed:
            raise InterfaceError("Connection is closed")

        return Cursor(connection=self, use_dict_result=use_dict_result)

    def new_query(self, cancellation: Cancellation | None = None) -> Query:
        """Create an unsubmitted query bound to this connection's session."""
        if self._is_closed:
            raise InterfaceError("Connection is closed")
        return Query(
            self._executor,
            self._header_manager,
            self._controller,
            self._base_url,
            cancellation=cancellation,
        )

    def commit(self) -> None:
        # Statements run in autocommit mode.
        pass

    def rollback(self) -> None:
        raise NotSupportedError("Transactions are not supported")

    def close(self) -> None:
        """
        Closes the connection.
        """
        if self._is_closed:
            return
        self._is_closed = True
        self._pool.shutdown(wait=False, cancel_futures=True)
        if self._owns_client:
            self._client.close()

    def is_closed(self) -> bool:
        return self._is_closed

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def catalog(self) -> str | None:
        return self.session.catalog

    @property
    def schema(self) -> str | None:
        return self.session.schema

    @property
    def session_properties(self) -> dict[str, str]:
        return dict(self.session.properties)

    def _delete(self, uri: str) -> None:
        response = self._client.delete(uri, headers=self._header_manager.request_headers())
        logger.debug("Cancel request to %s answered %s", uri, response.status_code)


def connect(*args: Any, **kwargs: Any) -> Connection:
    """Open a :class:`Connection`; see its constructor for the arguments."""
    return Connection(*args, **kwargs)
