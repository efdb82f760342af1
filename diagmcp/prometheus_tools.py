"""Tool definitions and handlers that expose Prometheus queries to clients."""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from diagmcp.prometheus import DEFAULT_ENDPOINT_NAME, PrometheusClient
from diagmcp.tooldefs import ToolDefinition

logger = logging.getLogger(__name__)

TOOL_QUERY = "prometheus_query"
TOOL_QUERY_RANGE = "prometheus_query_range"
TOOL_SERIES = "prometheus_series"
TOOL_LABEL_VALUES = "prometheus_label_values"
TOOL_LIST_ENDPOINTS = "prometheus_list_endpoints"

_NO_ENDPOINTS = (
    "no Prometheus endpoints configured. "
    "Set PROMETHEUS_URL or PROMETHEUS_<NAME>_URL environment variables"
)


def _string_items(value: Any) -> list[str]:
    """Keep the non-empty strings of a list argument, in order."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str) and item]


def parse_matchers_arg(args: Mapping[str, Any]) -> list[str]:
    """Return the series selectors given under ``match``.

    Raises ValueError when ``match`` is missing, not a list, empty, or holds
    no usable selector.
    """
    raw = args.get("match")
    if not isinstance(raw, list) or not raw:
        raise ValueError("match parameter is required and must be a non-empty array")
    matchers = _string_items(raw)
    if not matchers:
        raise ValueError("match must contain at least one valid series selector")
    return matchers


def resolve_prometheus_client(
    clients: Mapping[str, PrometheusClient], args: Mapping[str, Any]
) -> PrometheusClient:
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
            f'prometheus endpoint "{endpoint}" not configured. '
            f"Available endpoints: [{available}]"
        ) from None


def execute_label_values(
    clients: Mapping[str, PrometheusClient], args: Mapping[str, Any]
) -> str:
    """Look up the values of a label and return them as indented JSON."""
    client = resolve_prometheus_client(clients, args)

    label = args.get("label")
    if not isinstance(label, str) or not label:
        raise ValueError("label parameter is required")

    matchers = _string_items(args.get("match"))

    logger.info(
        "executing Prometheus label values query label=%s matchers=%s endpoint=%s",
        label,
        matchers,
        client.base_url,
    )

    result = client.label_values(label, matchers)
    result.endpoint = client.base_url
    return json.dumps(result.to_dict(), indent=2)


def list_prometheus_endpoints(clients: Mapping[str, PrometheusClient]) -> str:
    """Return the configured endpoints as indented JSON, sorted by name."""
    if not clients:
        raise ValueError(_NO_ENDPOINTS)
    endpoints = [
        {"name": name, "base_url": client.base_url} for name, client in sorted(clients.items())
    ]
    return json.dumps(endpoints, indent=2)


def _string_prop(description: str) -> dict[str, Any]:
    return {"type": "string", "description": description}


def _array_prop(description: str) -> dict[str, Any]:
    return {"type": "array", "description": description, "items": {"type": "string"}}


_ENDPOINT_PROP = _string_prop("Named Prometheus endpoint to query. Defaults to 'default'.")


def prometheus_tools() -> list[ToolDefinition]:
    """Return the definitions of every Prometheus tool."""
    return [
        ToolDefinition(
            name=TOOL_QUERY,
            description=(
                "Execute an instant PromQL query against a Prometheus-compatible endpoint. "
                "Returns the current value of a metric expression. Works with Prometheus, "
                "Thanos Query, Cortex, Mimir, and VictoriaMetrics."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "query": _string_prop(
                        "PromQL query string. Example: 'up{job=\"prometheus\"}'"
                    ),
                    "time": _string_prop(
                        "Evaluation time as RFC3339 timestamp or relative duration "
                        "(e.g., '5m', '1h'). Defaults to now."
                    ),
                    "endpoint": _string_prop(
                        "Named Prometheus endpoint to query (e.g., 'prod', 'dev'). Use "
                        "prometheus_list_endpoints to see available endpoints. "
                        "Defaults to 'default'."
                    ),
                },
                "required": ["query"],
            },
        ),
        ToolDefinition(
            name=TOOL_QUERY_RANGE,
            description=(
                "Execute a range PromQL query against a Prometheus-compatible endpoint. "
                "Returns metric values over a time range. Ideal for graphing and trend analysis."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "query": _string_prop(
                        "PromQL query string. Example: 'rate(http_requests_total[5m])'"
                    ),
                    "start": _string_prop(
                        "Start time as relative duration (e.g., '1h', '24h', '7d') "
                        "or RFC3339 timestamp"
                    ),
                    "end": _string_prop(
                        "End time as 'now' or RFC3339 timestamp. Defaults to now."
                    ),
                    "step": _string_prop(
                        "Query resolution step (e.g., '15s', '1m', '5m'). Auto-calculated "
                        "if omitted to target ~250 data points."
                    ),
                    "endpoint": dict(_ENDPOINT_PROP),
                },
                "required": ["query", "start"],
            },
        ),
        ToolDefinition(
            name=TOOL_SERIES,
            description=(
                "Find time series matching label selectors. Useful for discovering what "
                "metrics exist for a given job, namespace, or set of labels."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "match": _array_prop(
                        "Series selectors to match. Example: "
                        "['{job=\"prometheus\"}', '{__name__=~\"http_.*\"}']"
                    ),
                    "start": _string_prop(
                        "Start time as relative duration or RFC3339 timestamp (optional)"
                    ),
                    "end": _string_prop("End time as 'now' or RFC3339 timestamp (optional)"),
                    "endpoint": dict(_ENDPOINT_PROP),
                },
                "required": ["match"],
            },
        ),
        ToolDefinition(
            name=TOOL_LABEL_VALUES,
            description=(
                "Get all values for a given label name. Useful for discovering available "
                "targets, namespaces, jobs, or other label values. Supports optional series "
                "selectors to narrow results."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "label": _string_prop(
                        "Label name to get values for. Example: 'namespace', 'job', '__name__'"
                    ),
                    "match": _array_prop(
                        "Optional series selectors to filter label values. "
                        "Example: ['{job=\"prometheus\"}']"
                    ),
                    "endpoint": dict(_ENDPOINT_PROP),
                },
                "required": ["label"],
            },
        ),
        ToolDefinition(
            name=TOOL_LIST_ENDPOINTS,
            description=(
                "List all configured Prometheus-compatible endpoints. Shows named endpoints "
                "available for querying metrics."
            ),
            input_schema={"type": "object", "properties": {}},
        ),
    ]