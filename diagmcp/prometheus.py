"""Client for Prometheus-compatible HTTP query APIs."""

from __future__ import annotations

import dataclasses
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

DEFAULT_PROMETHEUS_ENDPOINT = "http://thanos-query.monitoring.svc.cluster.local:9090"
DEFAULT_ENDPOINT_NAME = "default"

_ENV_PREFIX = "PROMETHEUS_"
_URL_SUFFIX = "_URL"
_DEFAULT_URL_KEY = "PROMETHEUS_URL"
_TIMEOUT_SECONDS = 30.0
_STATUS_SUCCESS = "success"
_TARGET_DATA_POINTS = 250
_MIN_STEP_SECONDS = 15


class PrometheusError(Exception):
    """Raised when a Prometheus API call fails or returns an error."""


@dataclass
class VectorResult:
    """One sample of an instant query: labels and a [timestamp, value] pair."""

    metric: dict[str, str] = field(default_factory=dict)
    value: list[Any] = field(default_factory=list)


@dataclass
class MatrixResult:
    """One series of a range query: labels and a list of [timestamp, value] pairs."""

    metric: dict[str, str] = field(default_factory=dict)
    values: list[list[Any]] = field(default_factory=list)


@dataclass
class PrometheusQueryResult:
    """The outcome of a query, ready to be rendered as JSON."""

    status: str = ""
    result_type: str = ""
    result: Any = None
    warnings: list[str] = field(default_factory=list)
    query: str = ""
    endpoint: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"status": self.status}
        if self.result_type:
            out["resultType"] = self.result_type
        out["result"] = _plain(self.result)
        if self.warnings:
            out["warnings"] = list(self.warnings)
        if self.query:
            out["query"] = self.query
        if self.endpoint:
            out["endpoint"] = self.endpoint
        return out


def _plain(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


def _decode_object(body: bytes | str, context: str) -> dict[str, Any]:
    try:
        data = json.loads(body)
    except ValueError as exc:
        raise PrometheusError(f"{context}: {exc}") from exc
    if not isinstance(data, dict):
        raise PrometheusError(f"{context}: expected a JSON object")
    return data


def _check_status(api: dict[str, Any], kind: str) -> None:
    if api.get("status") != _STATUS_SUCCESS:
        raise PrometheusError(
            f"prometheus {kind} error: {api.get('errorType', '')}: {api.get('error', '')}"
        )


def _require_data(api: dict[str, Any], context: str) -> Any:
    if "data" not in api:
        raise PrometheusError(f"{context}: unexpected end of JSON input")
    return api["data"]


def _list_of(value: Any, context: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise PrometheusError(f"{context}: expected a JSON array")
    return value


def _vector(item: Any) -> VectorResult:
    if not isinstance(item, dict):
        raise PrometheusError("unmarshaling vector result: expected a JSON object")
    return VectorResult(metric=dict(item.get("metric") or {}), value=list(item.get("value") or []))


def _matrix(item: Any) -> MatrixResult:
    if not isinstance(item, dict):
        raise PrometheusError("unmarshaling matrix result: expected a JSON object")
    values = [list(pair) for pair in item.get("values") or []]
    return MatrixResult(metric=dict(item.get("metric") or {}), values=values)


def parse_prometheus_response(body: bytes | str) -> PrometheusQueryResult:
    """Parse a /query or /query_range response into a query result."""
    api = _decode_object(body, "unmarshaling prometheus response")
    _check_status(api, "query")

    data = _require_data(api, "unmarshaling prometheus data")
    if not isinstance(data, dict):
        raise PrometheusError("unmarshaling prometheus data: expected a JSON object")

    result = PrometheusQueryResult(
        status=api["status"],
        result_type=data.get("resultType", ""),
        warnings=list(api.get("warnings") or []),
    )

    raw = data.get("result")
    if result.result_type == "vector":
        result.result = [_vector(item) for item in _list_of(raw, "unmarshaling vector result")]
    elif result.result_type == "matrix":
        result.result = [_matrix(item) for item in _list_of(raw, "unmarshaling matrix result")]
    else:
        result.result = raw
    return result


def format_prometheus_time(t: datetime) -> str:
    """Format a time as a Unix timestamp with millisecond precision."""
    return f"{t.timestamp():.3f}"


def format_step(step: timedelta) -> str:
    """Format a step as whole seconds; non-positive steps become 15s."""
    seconds = int(step.total_seconds())
    if seconds <= 0:
        return f"{_MIN_STEP_SECONDS}s"
    return f"{seconds}s"


def calculate_auto_step(start: datetime, end: datetime) -> timedelta:
    """Pick a step giving about 250 points over the range, at least 15 seconds."""
    range_seconds = int((end - start).total_seconds())
    if range_seconds <= 0:
        return timedelta(seconds=_MIN_STEP_SECONDS)
    return timedelta(seconds=max(range_seconds // _TARGET_DATA_POINTS, _MIN_STEP_SECONDS))


class PrometheusClient:
    """Queries one Prometheus-compatible endpoint."""

    def __init__(self, base_url: str) -> None:
        if not base_url:
            raise ValueError("prometheus base URL is required")
        self.base_url = base_url.rstrip("/")
        self._session = requests.Session()

    def _get(self, endpoint: str, params: list[tuple[str, str]]) -> bytes:
        logger.debug("making Prometheus API request endpoint=%s", endpoint)
        try:
            resp = self._session.get(
                self.base_url + endpoint,
                params=params or None,
                headers={"Accept": "application/json"},
                timeout=_TIMEOUT_SECONDS,
            )
        except requests.RequestException as exc:
            raise PrometheusError(f"executing request: {exc}") from exc
        if resp.status_code >= 400:
            raise PrometheusError(f"prometheus API error (status {resp.status_code}): {resp.text}")
        return resp.content

    def query(self, query: str, query_time: datetime | None = None) -> PrometheusQueryResult:
        """Run an instant query, optionally at a given evaluation time."""
        params = [("query", query)]
        if query_time is not None:
            params.append(("time", format_prometheus_time(query_time)))
        result = parse_prometheus_response(self._get("/api/v1/query", params))
        result.query = query
        return result

    def query_range(
        self, query: str, start: datetime, end: datetime, step: timedelta
    ) -> PrometheusQueryResult:
        """Run a range query between ``start`` and ``end``."""
        params = [
            ("query", query),
            ("start", format_prometheus_time(start)),
            ("end", format_prometheus_time(end)),
            ("step", format_step(step)),
        ]
        result = parse_prometheus_response(self._get("/api/v1/query_range", params))
        result.query = query
        return result

    def series(
        self,
        matchers: Iterable[str],
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> PrometheusQueryResult:
        """Find the label sets of series matching any of ``matchers``."""
        params = [("match[]", m) for m in matchers]
        if start is not None:
            params.append(("start", format_prometheus_time(start)))
        if end is not None:
            params.append(("end", format_prometheus_time(end)))

        api = _decode_object(self._get("/api/v1/series", params), "unmarshaling series response")
        _check_status(api, "series")
        data = _require_data(api, "unmarshaling series data")
        series = _list_of(data, "unmarshaling series data")
        if not all(isinstance(item, dict) for item in series):
            raise PrometheusError("unmarshaling series data: expected JSON objects")
        return PrometheusQueryResult(
            status=api["status"],
            result=[dict(item) for item in series],
            warnings=list(api.get("warnings") or []),
        )

    def label_values(
        self, label_name: str, matchers: Iterable[str] | None = None
    ) -> PrometheusQueryResult:
        """List the values of one label, optionally limited by series selectors."""
        params = [("match[]", m) for m in matchers or []]
        endpoint = f"/api/v1/label/{quote(label_name, safe='$&+:=@')}/values"

        api = _decode_object(self._get(endpoint, params), "unmarshaling label values response")
        _check_status(api, "label values")
        data = _require_data(api, "unmarshaling label values data")
        values = _list_of(data, "unmarshaling label values data")
        if not all(isinstance(item, str) for item in values):
            raise PrometheusError("unmarshaling label values data: expected strings")
        return PrometheusQueryResult(
            status=api["status"],
            result=list(values),
            warnings=list(api.get("warnings") or []),
        )


def scan_prometheus_env_vars() -> dict[str, PrometheusClient]:
    """Build clients from PROMETHEUS_<NAME>_URL variables, keyed by lower-case name."""
    clients: dict[str, PrometheusClient] = {}
    for key, env_url in os.environ.items():
        if not (key.startswith(_ENV_PREFIX) and key.endswith(_URL_SUFFIX)):
            continue
        if key == _DEFAULT_URL_KEY:
            continue
        name = key[len(_ENV_PREFIX) : len(key) - len(_URL_SUFFIX)]
        if not name or not env_url:
            continue
        name = name.lower()
        logger.debug("Found Prometheus endpoint configuration name=%s url_key=%s", name, key)
        try:
            clients[name] = PrometheusClient(env_url)
        except ValueError as exc:
            logger.warning("Failed to initialize Prometheus client name=%s error=%s", name, exc)
    return clients


def load_prometheus_clients() -> dict[str, PrometheusClient]:
    """Build clients from PROMETHEUS_URL and every PROMETHEUS_<NAME>_URL."""
    clients: dict[str, PrometheusClient] = {}

    default_url = os.environ.get(_DEFAULT_URL_KEY, "")
    if default_url:
        try:
            clients[DEFAULT_ENDPOINT_NAME] = PrometheusClient(default_url)
        except ValueError as exc:
            logger.warning("Failed to initialize default Prometheus client error=%s", exc)

    for name, client in scan_prometheus_env_vars().items():
        if name == DEFAULT_ENDPOINT_NAME:
            continue
        clients[name] = client

    if clients:
        logger.info(
            "Prometheus clients loaded count=%d endpoints=%s", len(clients), sorted(clients)
        )
    else:
        logger.info("No Prometheus endpoints configured")
    return clients