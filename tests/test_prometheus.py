import re
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlsplit

import pytest
import responses

from diagmcp.prometheus import (
    MatrixResult,
    PrometheusClient,
    PrometheusError,
    PrometheusQueryResult,
    VectorResult,
    calculate_auto_step,
    format_prometheus_time,
    format_step,
    load_prometheus_clients,
    parse_prometheus_response,
    scan_prometheus_env_vars,
)

BASE = "http://prometheus.example.com:9090"


@pytest.fixture
def mocked():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


@pytest.fixture
def clean_env(monkeypatch):
    import os

    for key in list(os.environ):
        if key.startswith("PROMETHEUS_"):
            monkeypatch.delenv(key, raising=False)
    return monkeypatch


def _query_of(call):
    return parse_qs(urlsplit(call.request.url).query)


# --- client construction ---------------------------------------------------


@pytest.mark.parametrize(
    "base_url",
    ["http://prometheus.example.com:9090", "http://prometheus.example.com:9090/"],
)
def test_new_client_trims_trailing_slash(base_url):
    client = PrometheusClient(base_url)
    assert client.base_url == "http://prometheus.example.com:9090"
    assert not client.base_url.endswith("/")


def test_new_client_empty_url():
    with pytest.raises(ValueError, match="base URL is required"):
        PrometheusClient("")


# --- instant queries -------------------------------------------------------


def test_query_vector(mocked):
    mocked.add(
        responses.GET,
        BASE + "/api/v1/query",
        json={
            "status": "success",
            "data": {
                "resultType": "vector",
                "result": [
                    {"metric": {"__name__": "up", "job": "prometheus"}, "value": [1704067200, "1"]}
                ],
            },
        },
    )
    result = PrometheusClient(BASE).query("up")

    assert result.status == "success"
    assert result.result_type == "vector"
    assert result.query == "up"
    assert isinstance(result.result, list)
    assert len(result.result) == 1
    assert isinstance(result.result[0], VectorResult)
    assert result.result[0].metric["__name__"] == "up"
    assert result.result[0].metric["job"] == "prometheus"
    assert urlsplit(mocked.calls[0].request.url).path == "/api/v1/query"
    assert _query_of(mocked.calls[0])["query"] == ["up"]


def test_query_with_time(mocked):
    mocked.add(
        responses.GET,
        BASE + "/api/v1/query",
        json={"status": "success", "data": {"resultType": "vector", "result": []}},
    )
    query_time = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    result = PrometheusClient(BASE).query("up", query_time)

    assert result.status == "success"
    assert _query_of(mocked.calls[0])["time"] == ["1704110400.000"]


def test_query_api_error(mocked):
    mocked.add(
        responses.GET,
        BASE + "/api/v1/query",
        json={"status": "error", "errorType": "bad_data", "error": "invalid expression"},
    )
    with pytest.raises(PrometheusError) as excinfo:
        PrometheusClient(BASE).query("invalid{")
    assert "bad_data" in str(excinfo.value)
    assert "invalid expression" in str(excinfo.value)


def test_query_http_error(mocked):
    mocked.add(responses.GET, BASE + "/api/v1/query", body="Internal Server Error", status=500)
    with pytest.raises(PrometheusError, match="status 500"):
        PrometheusClient(BASE).query("up")


def test_query_invalid_json(mocked):
    mocked.add(responses.GET, BASE + "/api/v1/query", body="not json", status=200)
    with pytest.raises(PrometheusError, match="unmarshaling prometheus response"):
        PrometheusClient(BASE).query("up")


def test_query_with_warnings(mocked):
    mocked.add(
        responses.GET,
        BASE + "/api/v1/query",
        json={
            "status": "success",
            "warnings": ["query exceeded max time"],
            "data": {"resultType": "vector", "result": []},
        },
    )
    result = PrometheusClient(BASE).query("up")
    assert len(result.warnings) == 1
    assert "exceeded max time" in result.warnings[0]


# --- range queries ---------------------------------------------------------


def test_query_range_matrix(mocked):
    mocked.add(
        responses.GET,
        BASE + "/api/v1/query_range",
        json={
            "status": "success",
            "data": {
                "resultType": "matrix",
                "result": [
                    {
                        "metric": {"__name__": "up", "job": "prometheus"},
                        "values": [[1704067200, "1"], [1704067215, "1"], [1704067230, "0"]],
                    }
                ],
            },
        },
    )
    end = datetime.now(timezone.utc)
    start = end - timedelta(hours=1)
    result = PrometheusClient(BASE).query_range("up", start, end, timedelta(seconds=15))

    assert result.status == "success"
    assert result.result_type == "matrix"
    assert isinstance(result.result[0], MatrixResult)
    assert result.result[0].metric["__name__"] == "up"
    assert len(result.result[0].values) == 3

    params = _query_of(mocked.calls[0])
    assert params["query"] == ["up"]
    assert params["step"] == ["15s"]
    assert params["start"][0]
    assert params["end"][0]


def test_query_range_api_error(mocked):
    mocked.add(
        responses.GET,
        BASE + "/api/v1/query_range",
        json={
            "status": "error",
            "errorType": "bad_data",
            "error": "end timestamp must not be before start time",
        },
    )
    now = datetime.now(timezone.utc)
    with pytest.raises(PrometheusError, match="end timestamp must not be before start time"):
        PrometheusClient(BASE).query_range("up", now, now - timedelta(hours=1), timedelta(seconds=15))


# --- series ----------------------------------------------------------------


def test_series_success(mocked):
    mocked.add(
        responses.GET,
        BASE + "/api/v1/series",
        json={
            "status": "success",
            "data": [
                {"__name__": "up", "job": "prometheus", "instance": "localhost:9090"},
                {
                    "__name__": "scrape_duration_seconds",
                    "job": "prometheus",
                    "instance": "localhost:9090",
                },
            ],
        },
    )
    result = PrometheusClient(BASE).series(['{job="prometheus"}'])

    assert result.status == "success"
    assert len(result.result) == 2
    assert result.result[0]["__name__"] == "up"
    assert '{job="prometheus"}' in _query_of(mocked.calls[0])["match[]"]


def test_series_with_time_range(mocked):
    mocked.add(responses.GET, BASE + "/api/v1/series", json={"status": "success", "data": []})
    end = datetime.now(timezone.utc)
    start = end - timedelta(hours=1)
    result = PrometheusClient(BASE).series(['{job="test"}'], start, end)

    params = _query_of(mocked.calls[0])
    assert params["start"][0]
    assert params["end"][0]
    assert result.result == []


def test_series_error(mocked):
    mocked.add(
        responses.GET,
        BASE + "/api/v1/series",
        json={"status": "error", "errorType": "bad_data", "error": "invalid match[] selector"},
    )
    with pytest.raises(PrometheusError, match="series error"):
        PrometheusClient(BASE).series(["invalid{"])


# --- label values ----------------------------------------------------------


def test_label_values_success(mocked):
    mocked.add(
        responses.GET,
        BASE + "/api/v1/label/job/values",
        json={"status": "success", "data": ["prometheus", "node-exporter", "alertmanager"]},
    )
    result = PrometheusClient(BASE).label_values("job")

    assert result.status == "success"
    assert len(result.result) == 3
    assert "prometheus" in result.result
    assert urlsplit(mocked.calls[0].request.url).path == "/api/v1/label/job/values"


def test_label_values_with_matchers(mocked):
    mocked.add(
        responses.GET,
        BASE + "/api/v1/label/namespace/values",
        json={"status": "success", "data": ["default", "kube-system"]},
    )
    result = PrometheusClient(BASE).label_values("namespace", ['{job="kube-state-metrics"}'])

    assert len(result.result) == 2
    assert '{job="kube-state-metrics"}' in _query_of(mocked.calls[0])["match[]"]


def test_label_values_error_and_escaping(mocked):
    mocked.add(
        responses.GET,
        re.compile(re.escape(BASE) + r"/api/v1/label/.*"),
        json={"status": "error", "errorType": "bad_data", "error": "invalid label name"},
    )
    with pytest.raises(PrometheusError, match="label values error"):
        PrometheusClient(BASE).label_values("invalid label")
    assert "/api/v1/label/invalid%20label/values" in mocked.calls[0].request.url


# --- helpers ---------------------------------------------------------------


@pytest.mark.parametrize(
    "range_dur, expected_min, expected_max",
    [
        (timedelta(hours=1), 14, 15),
        (timedelta(hours=24), 345, 346),
        (timedelta(days=7), 2419, 2420),
        (timedelta(minutes=5), 15, 15),
        (timedelta(0), 15, 15),
        (timedelta(hours=-1), 15, 15),
    ],
)
def test_calculate_auto_step(range_dur, expected_min, expected_max):
    end = datetime.now(timezone.utc)
    start = end - range_dur
    step = calculate_auto_step(start, end)
    assert timedelta(seconds=expected_min) <= step <= timedelta(seconds=expected_max)


def test_format_prometheus_time():
    ts = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    assert "1704110400" in format_prometheus_time(ts)


@pytest.mark.parametrize(
    "duration, expected",
    [
        (timedelta(seconds=15), "15s"),
        (timedelta(minutes=1), "60s"),
        (timedelta(minutes=5), "300s"),
        (timedelta(0), "15s"),
        (timedelta(seconds=-1), "15s"),
    ],
)
def test_format_step(duration, expected):
    assert format_step(duration) == expected


def test_parse_vector_result():
    body = b"""{
        "status": "success",
        "data": {
            "resultType": "vector",
            "result": [{"metric": {"__name__": "up"}, "value": [1704067200, "1"]}]
        }
    }"""
    result = parse_prometheus_response(body)
    assert result.status == "success"
    assert result.result_type == "vector"
    assert len(result.result) == 1
    assert isinstance(result.result[0], VectorResult)


def test_parse_matrix_result():
    body = b"""{
        "status": "success",
        "data": {
            "resultType": "matrix",
            "result": [{"metric": {"__name__": "up"},
                        "values": [[1704067200, "1"], [1704067215, "1"]]}]
        }
    }"""
    result = parse_prometheus_response(body)
    assert result.result_type == "matrix"
    assert len(result.result) == 1
    assert len(result.result[0].values) == 2


def test_parse_error_response():
    body = b'{"status": "error", "errorType": "bad_data", "error": "invalid query"}'
    with pytest.raises(PrometheusError) as excinfo:
        parse_prometheus_response(body)
    assert "bad_data" in str(excinfo.value)
    assert "invalid query" in str(excinfo.value)


def test_parse_invalid_json():
    with pytest.raises(PrometheusError, match="unmarshaling prometheus response"):
        parse_prometheus_response(b"not json")


def test_parse_scalar_kept_raw():
    body = b'{"status": "success", "data": {"resultType": "scalar", "result": [1704067200, "42"]}}'
    result = parse_prometheus_response(body)
    assert result.result_type == "scalar"
    assert result.result == [1704067200, "42"]


def test_query_result_to_dict():
    body = b"""{
        "status": "success",
        "data": {
            "resultType": "vector",
            "result": [{"metric": {"__name__": "up"}, "value": [1704067200, "1"]}]
        }
    }"""
    result = parse_prometheus_response(body)
    result.query = "up"
    out = result.to_dict()
    assert out == {
        "status": "success",
        "resultType": "vector",
        "result": [{"metric": {"__name__": "up"}, "value": [1704067200, "1"]}],
        "query": "up",
    }


def test_query_result_to_dict_keeps_null_result():
    out = PrometheusQueryResult(status="success").to_dict()
    assert out == {"status": "success", "result": None}


# --- environment loading ---------------------------------------------------


def test_load_no_env_vars(clean_env):
    clean_env.setenv("PROMETHEUS_URL", "")
    assert load_prometheus_clients() == {}


def test_load_default_url_only(clean_env):
    clean_env.setenv("PROMETHEUS_URL", "http://localhost:9090")
    clients = load_prometheus_clients()
    assert list(clients) == ["default"]
    assert clients["default"].base_url == "http://localhost:9090"


def test_load_named_endpoints(clean_env):
    clean_env.setenv("PROMETHEUS_URL", "http://default:9090")
    clean_env.setenv("PROMETHEUS_PROD_URL", "http://prod:9090")
    clean_env.setenv("PROMETHEUS_DEV_URL", "http://dev:9090")
    clients = load_prometheus_clients()
    assert set(clients) == {"default", "prod", "dev"}
    assert clients["prod"].base_url == "http://prod:9090"
    assert clients["dev"].base_url == "http://dev:9090"


def test_load_case_normalization(clean_env):
    clean_env.setenv("PROMETHEUS_MYENDPOINT_URL", "http://myendpoint:9090")
    clients = load_prometheus_clients()
    assert "myendpoint" in clients
    assert clients["myendpoint"].base_url == "http://myendpoint:9090"


def test_scan_skips_default_url(clean_env):
    clean_env.setenv("PROMETHEUS_URL", "http://default:9090")
    clean_env.setenv("PROMETHEUS_PROD_URL", "http://prod:9090")
    clients = scan_prometheus_env_vars()
    assert list(clients) == ["prod"]
    assert "default" not in clients