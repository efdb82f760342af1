"""Client for the Grafana HTTP API: dashboard listing, retrieval and authoring."""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable

import requests

from diagmcp.grafana_models import (
    FORMAT_TABLE,
    FORMAT_TIME_SERIES,
    INFINITY_DATASOURCE,
    Dashboard,
    DashboardGetResponse,
    DashboardSearchResult,
    GridPos,
    InfinityURLOptions,
    Panel,
    PanelQueryConfig,
    SQLPanelConfig,
    Target,
    apply_panel_options,
)

logger = logging.getLogger(__name__)

_TIMEOUT_SECONDS = 30.0
_PANELS_PER_ROW = 2
_PANEL_WIDTH = 24 // _PANELS_PER_ROW
_PANEL_HEIGHT = 8


class GrafanaError(Exception):
    """Raised when a Grafana API call fails or returns something unusable."""


def _grid_pos(index: int) -> GridPos:
    row, col = divmod(index, _PANELS_PER_ROW)
    return GridPos(h=_PANEL_HEIGHT, w=_PANEL_WIDTH, x=col * _PANEL_WIDTH, y=row * _PANEL_HEIGHT)


def _new_dashboard(title: str, tags: list[str]) -> Dashboard:
    return Dashboard(
        title=title,
        tags=tags,
        editable=True,
        panels=[],
        time={"from": "now-6h", "to": "now"},
    )


class GrafanaClient:
    """Talks to one Grafana instance using a bearer API key."""

    def __init__(self, base_url: str, api_key: str) -> None:
        if not base_url:
            raise ValueError("grafana base URL is required")
        if not api_key:
            raise ValueError("grafana API key is required")
        self.base_url = base_url
        self.api_key = api_key
        self._session = requests.Session()

    def _request(self, method: str, endpoint: str, body: dict[str, Any] | None = None) -> str:
        url = self.base_url + endpoint
        headers = {
            "Authorization": "Bearer " + self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        data = json.dumps(body) if body is not None else None
        logger.debug("making Grafana API request method=%s endpoint=%s", method, endpoint)
        try:
            resp = self._session.request(
                method, url, headers=headers, data=data, timeout=_TIMEOUT_SECONDS
            )
        except requests.RequestException as exc:
            raise GrafanaError(f"executing request: {exc}") from exc
        text = resp.text
        if resp.status_code >= 400:
            raise GrafanaError(f"grafana API error (status {resp.status_code}): {text}")
        return text

    def _call(self, context: str, method: str, endpoint: str, body: dict[str, Any] | None = None) -> str:
        try:
            return self._request(method, endpoint, body)
        except GrafanaError as exc:
            raise GrafanaError(f"{context}: {exc}") from exc

    @staticmethod
    def _decode(text: str, context: str) -> Any:
        try:
            return json.loads(text)
        except ValueError as exc:
            raise GrafanaError(f"{context}: {exc}") from exc

    def list_dashboards(self) -> list[DashboardSearchResult]:
        """Return every dashboard the API key can see."""
        text = self._call("listing dashboards", "GET", "/api/search?type=dash-db")
        data = self._decode(text, "unmarshaling dashboard list")
        if data is None:
            data = []
        if not isinstance(data, list):
            raise GrafanaError("unmarshaling dashboard list: expected a JSON array")
        dashboards = [DashboardSearchResult.from_dict(item) for item in data]
        logger.info("listed dashboards count=%d", len(dashboards))
        return dashboards

    def get_dashboard(self, uid: str) -> DashboardGetResponse:
        """Fetch a dashboard by UID together with its folder UID."""
        text = self._call(f"getting dashboard {uid}", "GET", f"/api/dashboards/uid/{uid}")
        data = self._decode(text, "unmarshaling dashboard")
        if not isinstance(data, dict):
            raise GrafanaError("unmarshaling dashboard: expected a JSON object")
        meta = data.get("meta") or {}
        result = DashboardGetResponse(
            dashboard=Dashboard.from_dict(data.get("dashboard") or {}),
            folder_uid=meta.get("folderUid", ""),
        )
        logger.info(
            "retrieved dashboard uid=%s title=%s folderUid=%s",
            uid,
            result.dashboard.title,
            result.folder_uid,
        )
        return result

    @staticmethod
    def _save_request(dashboard: Dashboard, folder_uid: str, message: str, overwrite: bool) -> dict[str, Any]:
        request: dict[str, Any] = {"dashboard": dashboard.to_dict()}
        if message:
            request["message"] = message
        request["overwrite"] = overwrite
        if folder_uid:
            request["folderUid"] = folder_uid
        return request

    def create_dashboard(self, dashboard: Dashboard, folder_uid: str = "", message: str = "") -> str:
        """Create ``dashboard`` as a new dashboard and return its UID."""
        dashboard.id = 0
        dashboard.version = 0
        request = self._save_request(dashboard, folder_uid, message, overwrite=False)
        text = self._call("creating dashboard", "POST", "/api/dashboards/db", request)
        data = self._decode(text, "unmarshaling create response")
        if not isinstance(data, dict):
            raise GrafanaError("unmarshaling create response: expected a JSON object")
        uid = data.get("uid", "")
        logger.info(
            "created dashboard uid=%s title=%s url=%s", uid, dashboard.title, data.get("url", "")
        )
        return uid

    def update_dashboard(self, dashboard: Dashboard, folder_uid: str = "", message: str = "") -> None:
        """Overwrite an existing dashboard, keeping it in ``folder_uid``."""
        request = self._save_request(dashboard, folder_uid, message, overwrite=True)
        self._call("updating dashboard", "POST", "/api/dashboards/db", request)
        logger.info(
            "updated dashboard uid=%s title=%s folderUid=%s",
            dashboard.uid,
            dashboard.title,
            folder_uid,
        )

    def delete_dashboard(self, uid: str) -> None:
        """Delete the dashboard with the given UID."""
        self._call(f"deleting dashboard {uid}", "DELETE", f"/api/dashboards/uid/{uid}")
        logger.info("deleted dashboard uid=%s", uid)

    def build_panel_target(self, query_config: PanelQueryConfig) -> Target:
        """Build the query target for a panel according to its datasource type."""
        target = Target(
            ref_id="A",
            datasource={"type": query_config.datasource_type, "uid": query_config.datasource_uid},
        )
        kind = query_config.datasource_type
        if kind in ("postgres", "mysql"):
            target.raw_sql = query_config.query
            target.format = query_config.format or FORMAT_TABLE
        elif kind == "prometheus":
            target.expr = query_config.query
            target.format = FORMAT_TIME_SERIES
            if query_config.legend:
                target.alias = query_config.legend
            if query_config.interval:
                target.interval_ms = 1000
        elif kind == "cloudwatch":
            target.format = FORMAT_TIME_SERIES
            target.query = query_config.query
        elif kind == INFINITY_DATASOURCE:
            self._fill_infinity_target(target, query_config)
        else:
            target.query = query_config.query
        return target

    @staticmethod
    def _fill_infinity_target(target: Target, cfg: PanelQueryConfig) -> None:
        target.infinity_type = cfg.infinity_query_type or "json"
        target.source = cfg.infinity_source or "url"
        target.parser = cfg.infinity_parser or "backend"
        target.format = cfg.format or FORMAT_TABLE
        target.url = cfg.infinity_url
        target.root_selector = cfg.infinity_root_selector
        target.columns = list(cfg.infinity_columns)

        method = cfg.infinity_method
        if not method:
            method = "POST" if target.infinity_type == "graphql" else "GET"
        options = InfinityURLOptions(method=method)
        if cfg.infinity_body:
            options.body = cfg.infinity_body
            options.body_type = "raw"
            options.body_content_type = "application/json"
        target.url_options = options

    def create_dashboard_from_queries(
        self, title: str, queries: Iterable[PanelQueryConfig], folder_uid: str = ""
    ) -> str:
        """Create a dashboard with one panel per query, two panels to a row."""
        dashboard = _new_dashboard(title, ["auto-generated", "mcp"])
        for index, cfg in enumerate(queries):
            panel = Panel(
                id=index + 1,
                type=cfg.panel_type,
                title=cfg.title,
                grid_pos=_grid_pos(index),
                targets=[self.build_panel_target(cfg)],
                datasource={"type": cfg.datasource_type, "uid": cfg.datasource_uid},
                description=cfg.description,
            )
            apply_panel_options(panel, cfg.panel_type)
            dashboard.panels.append(panel)
        return self.create_dashboard(dashboard, folder_uid, f"Auto-generated dashboard: {title}")

    def create_dashboard_from_sql(
        self, title: str, queries: Iterable[SQLPanelConfig], datasource_uid: str
    ) -> str:
        """Create a dashboard of PostgreSQL panels, one per SQL query."""
        dashboard = _new_dashboard(title, ["auto-generated", "sql"])
        for index, cfg in enumerate(queries):
            datasource = {"type": "postgres", "uid": datasource_uid}
            panel = Panel(
                id=index + 1,
                type=cfg.panel_type,
                title=cfg.title,
                grid_pos=_grid_pos(index),
                targets=[
                    Target(
                        ref_id="A",
                        raw_sql=cfg.sql,
                        format=FORMAT_TABLE,
                        datasource=dict(datasource),
                    )
                ],
                datasource=datasource,
                description=cfg.description,
            )
            apply_panel_options(panel, cfg.panel_type)
            dashboard.panels.append(panel)
        return self.create_dashboard(dashboard, "", f"Auto-generated dashboard: {title}")