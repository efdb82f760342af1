"""Client and tool handlers for querying GraphQL endpoints."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Mapping

import requests
from requests.structures import CaseInsensitiveDict

from diagmcp.tooldefs import ToolDefinition

logger = logging.getLogger(__name__)

TOOL_QUERY = "graphql_query"
TOOL_LIST_ENDPOINTS = "graphql_list_endpoints"

DEFAULT_ENDPOINT_NAME = "default"
MAX_RESPONSE_BYTES = 50 * 1024
TRUNCATION_NOTICE = "\n\n[Response truncated - exceeded 50KB limit]"

_ENV_PREFIX = "GRAPHQL_"
_URL_SUFFIX = "_URL"
_AUTH_URL_SUFFIX = "_AUTH_URL"
_HEADER_MARKER = "_HEADER_"
_DEFAULT_URL_KEY = "GRAPHQL_URL"
_TIMEOUT_SECONDS = 30.0

_NO_ENDPOINTS = (
    "no GraphQL endpoints configured. "
    "Set GRAPHQL_URL or GRAPHQL_<NAME>_URL environment variables"
)


class GraphQLRequestError(Exception):
    """Raised when a GraphQL request cannot be sent or returns an HTTP error."""


def _as_bytes(body: bytes | str) -> bytes:
    return body.encode("utf-8") if isinstance(body, str) else body


def truncate_response(body: bytes | str) -> str:
    """Return the body as text, cut to 50KB with a notice when it is longer."""
    raw = _as_bytes(body)
    if len(raw) <= MAX_RESPONSE_BYTES:
        return raw.decode("utf-8", errors="replace")
    return raw[:MAX_RESPONSE_BYTES].decode("utf-8", errors="replace") + TRUNCATION_NOTICE


def format_graphql_response(body: bytes | str) -> str:
    """Render a GraphQL response, putting any GraphQL errors first."""
    try:
        parsed = json.loads(_as_bytes(body))
    except ValueError:
        return truncate_response(body)
    if not isinstance(parsed, dict):
        return truncate_response(body)

    errors = parsed.get("errors")
    if isinstance(errors, list) and errors:
        messages = [
            str(item.get("message", "")) if isinstance(item, dict) else "" for item in errors
        ]
        summary = "GraphQL errors: " + "; ".join(messages)
        if "data" in parsed:
            return summary + "\n\nData:\n" + truncate_response(body)
        return summary

    return truncate_response(body)


class GraphQLClient:
    """Sends queries to one GraphQL endpoint."""

    def __init__(self, name: str, url: str, headers: Mapping[str, str] | None = None) -> None:
        if not url:
            raise ValueError(f'graphql URL is required for endpoint "{name}"')
        self.name = name
        self.url = url.rstrip("/")
        self.headers: dict[str, str] = dict(headers or {})
        self._session = requests.Session()

    def query(
        self,
        query: str,
        variables: Mapping[str, Any] | None = None,
        operation_name: str = "",
    ) -> str:
        """Run ``query`` and return the formatted response text."""
        payload: dict[str, Any] = {"query": query}
        if variables:
            payload["variables"] = dict(variables)
        if operation_name:
            payload["operationName"] = operation_name

        headers: CaseInsensitiveDict[str] = CaseInsensitiveDict(
            {"Content-Type": "application/json", "Accept": "application/json"}
        )
        headers.update(self.headers)

        logger.debug("making GraphQL request endpoint=%s url=%s", self.name, self.url)
        try:
            resp = self._session.post(
                self.url,
                data=json.dumps(payload),
                headers=headers,
                timeout=_TIMEOUT_SECONDS,
            )
        except requests.RequestException as exc:
            raise GraphQLRequestError(f"executing graphql request: {exc}") from exc

        if resp.status_code >= 400:
            raise GraphQLRequestError(
                f"graphql HTTP error (status {resp.status_code}): {truncate_response(resp.content)}"
            )
        return format_graphql_response(resp.content)


def collect_graphql_urls() -> dict[str, str]:
    """Map lower-case names to URLs from GRAPHQL_<NAME>_URL variables."""
    urls: dict[str, str] = {}
    for key, env_url in os.environ.items():
        if not (key.startswith(_ENV_PREFIX) and key.endswith(_URL_SUFFIX)):
            continue
        if key == _DEFAULT_URL_KEY:
            continue
        if _HEADER_MARKER in key or key.endswith(_AUTH_URL_SUFFIX):
            continue
        if len(key) <= len(_ENV_PREFIX) + len(_URL_SUFFIX):
            continue
        name = key[len(_ENV_PREFIX) : len(key) - len(_URL_SUFFIX)]
        if not name or name == "TOKEN" or not env_url:
            continue
        name = name.lower()
        logger.debug("Found GraphQL endpoint configuration name=%s url_key=%s", name, key)
        urls[name] = env_url
    return urls


def collect_graphql_headers(name: str = "") -> dict[str, str]:
    """Collect the bearer token and custom headers configured for an endpoint.

    The default endpoint (empty name) reads GRAPHQL_TOKEN and GRAPHQL_HEADER_*;
    a named one reads GRAPHQL_<NAME>_TOKEN and GRAPHQL_<NAME>_HEADER_*.
    """
    if name:
        upper = name.upper()
        token_key = f"GRAPHQL_{upper}_TOKEN"
        header_prefix = f"GRAPHQL_{upper}_HEADER_"
    else:
        token_key = "GRAPHQL_TOKEN"
        header_prefix = "GRAPHQL_HEADER_"

    headers: dict[str, str] = {}
    token = os.environ.get(token_key, "")
    if token:
        headers["Authorization"] = "Bearer " + token
        logger.debug("Found GraphQL bearer token token_key=%s", token_key)

    for key, value in os.environ.items():
        if not key.startswith(header_prefix):
            continue
        header = key[len(header_prefix) :]
        if not header or not value:
            continue
        header = header.replace("_", "-").lower()
        headers[header] = value
        logger.debug("Found GraphQL custom header header=%s", header)
    return headers


def _scan_named_clients() -> dict[str, GraphQLClient]:
    clients: dict[str, GraphQLClient] = {}
    for name, env_url in collect_graphql_urls().items():
        try:
            clients[name] = GraphQLClient(name, env_url, collect_graphql_headers(name))
        except ValueError as exc:
            logger.warning("Failed to initialize GraphQL client name=%s error=%s", name, exc)
    return clients


def load_graphql_clients() -> dict[str, GraphQLClient]:
    """Build clients from GRAPHQL_URL and every GRAPHQL_<NAME>_URL."""
    clients: dict[str, GraphQLClient] = {}

    default_url = os.environ.get(_DEFAULT_URL_KEY, "")
    if default_url:
        try:
            clients[DEFAULT_ENDPOINT_NAME] = GraphQLClient(
                DEFAULT_ENDPOINT_NAME, default_url, collect_graphql_headers("")
            )
        except ValueError as exc:
            logger.warning("Failed to initialize default GraphQL client error=%s", exc)

    for name, client in _scan_named_clients().items():
        if name == DEFAULT_ENDPOINT_NAME:
            continue
        clients[name] = client

    if clients:
        logger.info("GraphQL clients loaded count=%d endpoints=%s", len(clients), sorted(clients))
    else:
        logger.info("No GraphQL endpoints configured")
    return clients


def resolve_graphql_client(
    clients: Mapping[str, GraphQLClient], args: Mapping[str, Any]
) -> GraphQLClient:
    """Pick the client named by the ``endpoint`` argument, case-insensitively."""
    if not clients:
        raise ValueError(_NO_ENDPOINTS)

    name = args.get("endpoint")
    endpoint = name.lower() if isinstance(name, str) and name else DEFAULT_ENDPOINT_NAME

    try:
        return clients[endpoint]
    except KeyError:
        available = " ".join(sorted(clients))
        raise ValueError(
            f'graphql endpoint "{endpoint}" not configured. Available endpoints: [{available}]'
        ) from None


def execute_graphql_query(
    clients: Mapping[str, GraphQLClient], args: Mapping[str, Any]
) -> str:
    """Run the query given in ``args`` against the chosen endpoint."""
    client = resolve_graphql_client(clients, args)

    query = args.get("query")
    if not isinstance(query, str) or not query:
        raise ValueError("query parameter is required")

    raw_variables = args.get("variables")
    variables = raw_variables if isinstance(raw_variables, dict) else None

    operation_name = args.get("operation_name")
    if not isinstance(operation_name, str):
        operation_name = ""

    logger.info(
        "executing GraphQL query endpoint=%s url=%s has_variables=%s operation_name=%s",
        client.name,
        client.url,
        variables is not None,
        operation_name,
    )
    return client.query(query, variables, operation_name)


def list_graphql_endpoints(clients: Mapping[str, GraphQLClient]) -> str:
    """Return the configured endpoints as indented JSON, sorted by name."""
    if not clients:
        raise ValueError(_NO_ENDPOINTS)
    endpoints = [{"name": name, "url": client.url} for name, client in sorted(clients.items())]
    return json.dumps(endpoints, indent=2)


def graphql_tools() -> list[ToolDefinition]:
    """Return the definitions of the GraphQL tools."""
    return [
        ToolDefinition(
            name=TOOL_QUERY,
            description=(
                "Execute a GraphQL query against a configured endpoint. Supports any GraphQL "
                "API (Wiz, Hasura, GitHub, etc.). Use graphql_list_endpoints to see available "
                "endpoints."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "GraphQL query string"},
                    "variables": {
                        "type": "object",
                        "description": "GraphQL variables as key-value pairs (optional)",
                    },
                    "endpoint": {
                        "type": "string",
                        "description": (
                            "Named GraphQL endpoint to query (e.g., 'wiz', 'hasura'). Use "
                            "graphql_list_endpoints to see available endpoints. "
                            "Defaults to 'default'."
                        ),
                    },
                    "operation_name": {
                        "type": "string",
                        "description": (
                            "GraphQL operation name (optional, for multi-operation documents)"
                        ),
                    },
                },
                "required": ["query"],
            },
        ),
        ToolDefinition(
            name=TOOL_LIST_ENDPOINTS,
            description=(
                "List all configured GraphQL endpoints. Shows named endpoints available "
                "for querying."
            ),
            input_schema={"type": "object", "properties": {}},
        ),
    ]