# diagmcp

Clients for three kinds of diagnostic backends, plus tool definitions and
handlers that take loosely-typed argument dictionaries (as an assistant or
automation layer would send them) and return JSON text.

- **Grafana** (`diagmcp.grafana`, `diagmcp.grafana_models`): list, fetch,
  create, update and delete dashboards, and build whole dashboards from a
  list of queries against PostgreSQL/MySQL, Prometheus, CloudWatch or
  Infinity datasources.
- **Prometheus-compatible APIs** (`diagmcp.prometheus`,
  `diagmcp.prometheus_tools`): instant queries, range queries, series
  discovery and label values against Prometheus, Thanos Query, Cortex,
  Mimir or VictoriaMetrics.
- **GraphQL** (`diagmcp.graphql`): run queries against one or more named
  endpoints configured from the environment.

## Installation

```
pip install diagmcp
```

For running the test suite:

```
pip install "diagmcp[test]"
pytest
```

## Grafana

```python
from diagmcp.grafana import GrafanaClient
from diagmcp.grafana_models import PanelQueryConfig

client = GrafanaClient("https://grafana.example.com", "placeholder")

for entry in client.list_dashboards():
    print(entry.uid, entry.title)

uid = client.create_dashboard_from_queries(
    "Service Health",
    [
        PanelQueryConfig(
            title="Requests",
            query="rate(http_requests_total[5m])",
            panel_type="timeseries",
            datasource_type="prometheus",
            datasource_uid="prometheus-uid",
        ),
        PanelQueryConfig(
            title="Open connections",
            query="SELECT COUNT(*) FROM pg_stat_activity",
            panel_type="stat",
            datasource_type="postgres",
            datasource_uid="postgres-uid",
        ),
    ],
    "",
)
```

`GrafanaClient` sends the API key as a bearer token. Its methods:

- `list_dashboards()` returns a list of `DashboardSearchResult`.
- `get_dashboard(uid)` returns a `DashboardGetResponse` holding the
  `Dashboard` and its `folder_uid`.
- `create_dashboard(dashboard, folder_uid, message)` saves a new dashboard
  (its `id` and `version` are reset to 0) and returns the new UID.
- `update_dashboard(dashboard, folder_uid, message)` overwrites an existing
  dashboard, keeping it in the given folder.
- `delete_dashboard(uid)` deletes a dashboard.
- `build_panel_target(query_config)` builds the query `Target` for one
  `PanelQueryConfig`, filling in defaults per datasource type (for Infinity:
  type `json`, source `url`, parser `backend`, format `table`, method `GET`,
  or `POST` for GraphQL, and an `application/json` content type when a body
  is given).
- `create_dashboard_from_queries(title, queries, folder_uid)` and
  `create_dashboard_from_sql(title, queries, datasource_uid)` build a whole
  dashboard and return its UID.

Panels are laid out two per row, each 12 grid units wide and 8 high, and get
default options for their panel type through `apply_panel_options` (stat,
gauge, timeseries, heatmap, table, piechart, bargauge). The models in
`diagmcp.grafana_models` convert to and from the API's JSON with `to_dict()`
and `from_dict()`.

A missing base URL or API key raises `ValueError`; failed requests and
unreadable responses raise `GrafanaError`.

## Prometheus

```python
from datetime import datetime, timedelta, timezone

from diagmcp.prometheus import PrometheusClient, load_prometheus_clients

client = PrometheusClient("http://localhost:9090")
result = client.query("up", None)
print(result.result_type, result.result)

end = datetime.now(timezone.utc)
ranged = client.query_range("up", end - timedelta(hours=1), end, timedelta(seconds=15))
print(ranged.to_dict())
```

`PrometheusClient` offers `query`, `query_range`, `series` and
`label_values`; each returns a `PrometheusQueryResult` whose `result` is a
list of `VectorResult` or `MatrixResult` for vector and matrix queries, a
list of label dictionaries for `series`, a list of strings for
`label_values`, and the raw decoded JSON otherwise. Helpers
`format_prometheus_time`, `format_step` and `calculate_auto_step` (about 250
points over the range, never below 15 seconds) are also available.

`load_prometheus_clients()` reads `PROMETHEUS_URL` (the `default` endpoint)
and any `PROMETHEUS_<NAME>_URL` variables (endpoint `<name>`, lower-cased).

`diagmcp.prometheus_tools` works on such a mapping of clients:

- `prometheus_tools()` returns the `ToolDefinition`s of the five Prometheus
  tools; `ToolDefinition.to_dict()` gives their JSON shape.
- `resolve_prometheus_client(clients, args)` picks the endpoint named by
  `args["endpoint"]`, case-insensitively, defaulting to `default`.
- `parse_matchers_arg(args)` validates the `match` list.
- `execute_label_values(clients, args)` and
  `list_prometheus_endpoints(clients)` return indented JSON.

Bad arguments raise `ValueError`; API and HTTP failures raise
`PrometheusError`.

## GraphQL

Configure endpoints through the environment:

| Variable | Meaning |
| --- | --- |
| `GRAPHQL_URL` | URL of the `default` endpoint |
| `GRAPHQL_TOKEN` | bearer token for the default endpoint |
| `GRAPHQL_HEADER_<KEY>` | extra header for the default endpoint |
| `GRAPHQL_<NAME>_URL` | URL of endpoint `<name>` |
| `GRAPHQL_<NAME>_TOKEN` | bearer token for endpoint `<name>` |
| `GRAPHQL_<NAME>_HEADER_<KEY>` | extra header for endpoint `<name>` |

Header keys are lower-cased with underscores turned into hyphens.

```python
from diagmcp.graphql import execute_graphql_query, load_graphql_clients

clients = load_graphql_clients()
print(execute_graphql_query(clients, {"query": "{ viewer { id } }"}))
```

`list_graphql_endpoints(clients)` returns the endpoints as JSON, and
`graphql_tools()` returns the tool definitions. Responses larger than 50KB
are truncated; GraphQL errors in a response are summarised at the top of the
returned text. Bad arguments raise `ValueError`; HTTP failures raise
`GraphQLRequestError`.

## What this package does not do

- It has no command and no server: nothing here listens for requests or
  speaks a tool protocol. The tool definitions and handlers are meant to be
  called from your own program.
- Of the Prometheus tools, only label values and endpoint listing have
  ready-made handlers. The instant query, range query and series tools are
  defined but have no handler taking an argument dictionary; call
  `PrometheusClient.query`, `query_range` and `series` directly.
- GraphQL endpoints authenticate only with a static bearer token or custom
  headers; there is no OAuth2 token exchange.