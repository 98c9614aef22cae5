"""Session state and the request/response header protocol.

Session state is connection scoped: properties set by one statement are sent
with every later request on the same connection. The query id is query scoped
and never stored here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping
from urllib.parse import quote, unquote

from ..errors import UnsupportedHeaderError

logger = logging.getLogger(__name__)

USER_HEADER = "X-Trino-User"
SOURCE_HEADER = "X-Trino-Source"
CATALOG_HEADER = "X-Trino-Catalog"
SCHEMA_HEADER = "X-Trino-Schema"
SESSION_HEADER = "X-Trino-Session"
TIME_ZONE_HEADER = "X-Trino-Time-Zone"
CLIENT_INFO_HEADER = "X-Trino-Client-Info"
CLIENT_TAGS_HEADER = "X-Trino-Client-Tags"
PREPARED_STATEMENT_HEADER = "X-Trino-Prepared-Statement"

QUERY_ID_HEADER = "X-Trino-Query-Id"
SET_CATALOG_HEADER = "X-Trino-Set-Catalog"
SET_SCHEMA_HEADER = "X-Trino-Set-Schema"
SET_SESSION_HEADER = "X-Trino-Set-Session"
CLEAR_SESSION_HEADER = "X-Trino-Clear-Session"
UNSUPPORTED_HEADER = "X-Trino-Unsupported-Header"

# Recognized response headers this client does not implement.
UNSUPPORTED_RESPONSE_HEADERS = (
    "X-Trino-Set-Path",
    "X-Trino-Set-Role",
    "X-Trino-Set-Authorization-User",
    "X-Trino-Reset-Authorization-User",
    "X-Trino-Started-Transaction-Id",
    "X-Trino-Clear-Transaction-Id",
    "X-Trino-Added-Prepare",
    "X-Trino-Deallocated-Prepare",
)

DECIMAL_AS_DOUBLE_PROPERTY = "parse_decimal_literals_as_double"

USER_AGENT = "trinoduck"


@dataclass
class SessionState:
    """Connection-scoped settings carried on every request."""

    user: str
    source: str = USER_AGENT
    catalog: str | None = None
    schema: str | None = None
    time_zone: str | None = None
    client_info: str | None = None
    client_tags: list[str] = field(default_factory=list)
    properties: dict[str, str] = field(default_factory=dict)
    unsupported_headers: set[str] = field(default_factory=set)
    rejected_features: set[str] = field(default_factory=set)

    @property
    def decimal_as_double(self) -> bool:
        return self.properties.get(DECIMAL_AS_DOUBLE_PROPERTY, "false").strip().lower() == "true"


def format_session_properties(properties: Mapping[str, str]) -> str:
    return ",".join(f"{name}={quote(str(value), safe='')}" for name, value in properties.items())


def parse_session_properties(value: str) -> dict[str, str]:
    """Parse ``name=value,name=value`` as carried by the session header."""
    properties = {}
    for item in value.split(","):
        if not item.strip():
            continue
        name, sep, prop_value = item.partition("=")
        if not sep:
            raise ValueError(f"invalid session property: {item!r}")
        properties[name.strip()] = unquote(prop_value.strip())
    return properties


class SessionHeaderManager:
    """Builds request headers from and folds response headers into a session.

    Args:
        state: The connection's session state.
        properties_via_headers: When False, the coordinator asking the client
            to set or clear session properties is reported as
            :class:`UnsupportedHeaderError`.
    """

    def __init__(self, state: SessionState, properties_via_headers: bool = True) -> None:
        self.state = state
        self.properties_via_headers = properties_via_headers

    def request_headers(self, prepared_statement: str | None = None) -> dict[str, str]:
        state = self.state
        headers = {
            USER_HEADER: state.user,
            SOURCE_HEADER: state.source,
            "User-Agent": USER_AGENT,
        }
        if state.catalog:
            headers[CATALOG_HEADER] = state.catalog
        if state.schema:
            headers[SCHEMA_HEADER] = state.schema
        if state.time_zone:
            headers[TIME_ZONE_HEADER] = state.time_zone
        if state.client_info:
            headers[CLIENT_INFO_HEADER] = state.client_info
        if state.client_tags:
            headers[CLIENT_TAGS_HEADER] = ",".join(state.client_tags)
        if state.properties:
            headers[SESSION_HEADER] = format_session_properties(state.properties)
        if prepared_statement:
            headers[PREPARED_STATEMENT_HEADER] = prepared_statement
        return headers

    def apply_response(self, headers: Mapping[str, str]) -> str | None:
        """Fold one response's headers into the session.

        Returns:
            The query id reported in the headers, if any.

        Raises:
            UnsupportedHeaderError: The response carries a header this client
                does not implement.
        """
        for name in UNSUPPORTED_RESPONSE_HEADERS:
            value = headers.get(name)
            if value is not None:
                self.state.unsupported_headers.add(name)
                raise UnsupportedHeaderError(name, value)

        explicit = headers.get(UNSUPPORTED_HEADER)
        if explicit is not None:
            self.state.unsupported_headers.add(explicit)
            raise UnsupportedHeaderError(explicit)

        set_session = _header_values(headers, SET_SESSION_HEADER)
        clear_session = _header_values(headers, CLEAR_SESSION_HEADER)
        if (set_session or clear_session) and not self.properties_via_headers:
            header = SET_SESSION_HEADER if set_session else CLEAR_SESSION_HEADER
            self.state.rejected_features.add(header)
            raise UnsupportedHeaderError(header, (set_session or clear_session)[0])

        for value in set_session:
            for name, prop_value in parse_session_properties(value).items():
                logger.debug("Setting session property %s=%s", name, prop_value)
                self.state.properties[name] = prop_value
        for value in clear_session:
            for name in value.split(","):
                logger.debug("Clearing session property %s", name.strip())
                self.state.properties.pop(name.strip(), None)

        if (catalog := headers.get(SET_CATALOG_HEADER)) is not None:
            self.state.catalog = catalog or None
        if (schema := headers.get(SET_SCHEMA_HEADER)) is not None:
            self.state.schema = schema or None

        return headers.get(QUERY_ID_HEADER)


def _header_values(headers: Mapping[str, str], name: str) -> list[str]:
    get_list = getattr(headers, "get_list", None)
    if get_list is not None:
        return list(get_list(name, split_commas=False))
    value = headers.get(name)
    return [value] if value is not None else []
