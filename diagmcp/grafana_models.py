"""Data models for Grafana dashboards, panels and query targets.

Each model converts to and from the JSON shape used by the Grafana HTTP API.
Optional fields are left out of the JSON when they are empty, zero or false.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

FORMAT_TABLE = "table"
FORMAT_TIME_SERIES = "time_series"
INFINITY_DATASOURCE = "yesoreyeram-infinity-datasource"


def _put(out: dict[str, Any], key: str, value: Any) -> None:
    """Store ``value`` under ``key`` unless it is empty, zero or false."""
    if value:
        out[key] = value


@dataclass
class GridPos:
    """Position and size of a panel in the dashboard grid."""

    h: int = 0
    w: int = 0
    x: int = 0
    y: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"h": self.h, "w": self.w, "x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> GridPos:
        data = data or {}
        return cls(
            h=data.get("h", 0),
            w=data.get("w", 0),
            x=data.get("x", 0),
            y=data.get("y", 0),
        )


@dataclass
class InfinityKeyValuePair:
    """A header or query parameter for the Infinity datasource."""

    key: str = ""
    value: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InfinityKeyValuePair:
        return cls(key=data.get("key", ""), value=data.get("value", ""))


@dataclass
class InfinityColumn:
    """Maps a field of an Infinity response to a table column."""

    selector: str = ""
    text: str = ""
    type: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"selector": self.selector, "text": self.text, "type": self.type}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InfinityColumn:
        return cls(
            selector=data.get("selector", ""),
            text=data.get("text", ""),
            type=data.get("type", ""),
        )


@dataclass
class InfinityURLOptions:
    """HTTP request options for the Infinity datasource."""

    method: str = ""
    body: str = ""
    body_type: str = ""
    body_content_type: str = ""
    headers: list[InfinityKeyValuePair] = field(default_factory=list)
    params: list[InfinityKeyValuePair] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        _put(out, "method", self.method)
        _put(out, "data", self.body)
        _put(out, "body_type", self.body_type)
        _put(out, "body_content_type", self.body_content_type)
        _put(out, "headers", [h.to_dict() for h in self.headers])
        _put(out, "params", [p.to_dict() for p in self.params])
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InfinityURLOptions:
        return cls(
            method=data.get("method", ""),
            body=data.get("data", ""),
            body_type=data.get("body_type", ""),
            body_content_type=data.get("body_content_type", ""),
            headers=[InfinityKeyValuePair.from_dict(h) for h in data.get("headers") or []],
            params=[InfinityKeyValuePair.from_dict(p) for p in data.get("params") or []],
        )


@dataclass
class Target:
    """A query target of a panel."""

    ref_id: str = ""
    datasource: dict[str, Any] | None = None
    raw_sql: str = ""
    expr: str = ""
    query: str = ""
    format: str = ""
    hide: bool = False
    alias: str = ""
    interval_ms: int = 0
    max_data_points: int = 0
    infinity_type: str = ""
    source: str = ""
    url: str = ""
    url_options: InfinityURLOptions | None = None
    root_selector: str = ""
    columns: list[InfinityColumn] = field(default_factory=list)
    parser: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"refId": self.ref_id}
        _put(out, "datasource", self.datasource)
        _put(out, "rawSql", self.raw_sql)
        _put(out, "expr", self.expr)
        _put(out, "query", self.query)
        _put(out, "format", self.format)
        _put(out, "hide", self.hide)
        _put(out, "alias", self.alias)
        _put(out, "intervalMs", self.interval_ms)
        _put(out, "maxDataPoints", self.max_data_points)
        _put(out, "type", self.infinity_type)
        _put(out, "source", self.source)
        _put(out, "url", self.url)
        if self.url_options is not None:
            out["url_options"] = self.url_options.to_dict()
        _put(out, "root_selector", self.root_selector)
        _put(out, "columns", [c.to_dict() for c in self.columns])
        _put(out, "parser", self.parser)
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Target:
        url_options = data.get("url_options")
        return cls(
            ref_id=data.get("refId", ""),
            datasource=data.get("datasource"),
            raw_sql=data.get("rawSql", ""),
            expr=data.get("expr", ""),
            query=data.get("query", ""),
            format=data.get("format", ""),
            hide=data.get("hide", False),
            alias=data.get("alias", ""),
            interval_ms=data.get("intervalMs", 0),
            max_data_points=data.get("maxDataPoints", 0),
            infinity_type=data.get("type", ""),
            source=data.get("source", ""),
            url=data.get("url", ""),
            url_options=InfinityURLOptions.from_dict(url_options) if url_options is not None else None,
            root_selector=data.get("root_selector", ""),
            columns=[InfinityColumn.from_dict(c) for c in data.get("columns") or []],
            parser=data.get("parser", ""),
        )


@dataclass
class Panel:
    """A panel in a Grafana dashboard."""

    id: int = 0
    grid_pos: GridPos = field(default_factory=GridPos)
    type: str = ""
    title: str = ""
    targets: list[Target] = field(default_factory=list)
    field_config: dict[str, Any] | None = None
    options: dict[str, Any] | None = None
    transparent: bool = False
    datasource: dict[str, Any] | None = None
    description: str = ""
    transformations: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "gridPos": self.grid_pos.to_dict(),
            "type": self.type,
            "title": self.title,
            "targets": [t.to_dict() for t in self.targets],
        }
        _put(out, "fieldConfig", self.field_config)
        _put(out, "options", self.options)
        _put(out, "transparent", self.transparent)
        _put(out, "datasource", self.datasource)
        _put(out, "description", self.description)
        _put(out, "transformations", self.transformations)
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Panel:
        return cls(
            id=data.get("id", 0),
            grid_pos=GridPos.from_dict(data.get("gridPos")),
            type=data.get("type", ""),
            title=data.get("title", ""),
            targets=[Target.from_dict(t) for t in data.get("targets") or []],
            field_config=data.get("fieldConfig"),
            options=data.get("options"),
            transparent=data.get("transparent", False),
            datasource=data.get("datasource"),
            description=data.get("description", ""),
            transformations=list(data.get("transformations") or []),
        )


@dataclass
class Dashboard:
    """A Grafana dashboard."""

    title: str = ""
    id: int = 0
    uid: str = ""
    tags: list[str] = field(default_factory=list)
    timezone: str = ""
    schema_version: int = 0
    version: int = 0
    panels: list[Panel] = field(default_factory=list)
    templating: dict[str, Any] | None = None
    time: dict[str, Any] | None = None
    editable: bool = False
    style: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        _put(out, "id", self.id)
        _put(out, "uid", self.uid)
        out["title"] = self.title
        _put(out, "tags", list(self.tags))
        _put(out, "timezone", self.timezone)
        _put(out, "schemaVersion", self.schema_version)
        _put(out, "version", self.version)
        _put(out, "panels", [p.to_dict() for p in self.panels])
        _put(out, "templating", self.templating)
        _put(out, "time", self.time)
        out["editable"] = self.editable
        _put(out, "style", self.style)
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Dashboard:
        return cls(
            title=data.get("title", ""),
            id=data.get("id", 0),
            uid=data.get("uid", ""),
            tags=list(data.get("tags") or []),
            timezone=data.get("timezone", ""),
            schema_version=data.get("schemaVersion", 0),
            version=data.get("version", 0),
            panels=[Panel.from_dict(p) for p in data.get("panels") or []],
            templating=data.get("templating"),
            time=data.get("time"),
            editable=data.get("editable", False),
            style=data.get("style", ""),
        )


@dataclass
class DashboardGetResponse:
    """A dashboard together with the UID of the folder holding it."""

    dashboard: Dashboard
    folder_uid: str = ""


@dataclass
class DashboardSearchResult:
    """One entry of a dashboard search."""

    id: int = 0
    uid: str = ""
    title: str = ""
    uri: str = ""
    url: str = ""
    type: str = ""
    tags: list[str] = field(default_factory=list)
    is_starred: bool = False
    folder_id: int = 0
    folder_uid: str = ""
    folder_title: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DashboardSearchResult:
        return cls(
            id=data.get("id", 0),
            uid=data.get("uid", ""),
            title=data.get("title", ""),
            uri=data.get("uri", ""),
            url=data.get("url", ""),
            type=data.get("type", ""),
            tags=list(data.get("tags") or []),
            is_starred=data.get("isStarred", False),
            folder_id=data.get("folderId", 0),
            folder_uid=data.get("folderUid", ""),
            folder_title=data.get("folderTitle", ""),
        )


@dataclass
class PanelQueryConfig:
    """Settings for building a panel from a query of any supported datasource."""

    title: str = ""
    query: str = ""
    panel_type: str = ""
    description: str = ""
    datasource_type: str = ""
    datasource_uid: str = ""
    legend: str = ""
    format: str = ""
    interval: str = ""
    step: str = ""
    region: str = ""
    namespace: str = ""
    metric_name: str = ""
    statistics: list[str] = field(default_factory=list)
    dimensions: dict[str, str] = field(default_factory=dict)
    infinity_query_type: str = ""
    infinity_parser: str = ""
    infinity_source: str = ""
    infinity_url: str = ""
    infinity_method: str = ""
    infinity_body: str = ""
    infinity_root_selector: str = ""
    infinity_columns: list[InfinityColumn] = field(default_factory=list)


@dataclass
class SQLPanelConfig:
    """Settings for building a panel from a SQL query."""

    title: str = ""
    sql: str = ""
    panel_type: str = ""
    description: str = ""


def _reduce_last_not_null() -> dict[str, Any]:
    return {"values": False, "calcs": ["lastNotNull"]}


def apply_panel_options(panel: Panel, panel_type: str) -> None:
    """Set the default options (and field config) for a panel of ``panel_type``.

    Unknown panel types leave the panel untouched.
    """
    if panel_type == "stat":
        panel.options = {
            "reduceOptions": _reduce_last_not_null(),
            "orientation": "auto",
            "textMode": "auto",
            "colorMode": "value",
        }
    elif panel_type == "gauge":
        panel.options = {
            "reduceOptions": _reduce_last_not_null(),
            "orientation": "auto",
            "showThresholdLabels": False,
            "showThresholdMarkers": True,
        }
        panel.field_config = {
            "defaults": {
                "min": 0,
                "max": 100,
                "unit": "percent",
                "thresholds": {
                    "mode": "absolute",
                    "steps": [
                        {"color": "green", "value": None},
                        {"color": "yellow", "value": 60},
                        {"color": "red", "value": 80},
                    ],
                },
            },
        }
    elif panel_type == "timeseries":
        panel.options = {
            "legend": {
                "displayMode": "list",
                "placement": "bottom",
                "showLegend": True,
            },
            "tooltip": {"mode": "single", "sort": "none"},
        }
        panel.field_config = {
            "defaults": {
                "unit": "short",
                "custom": {
                    "drawStyle": "line",
                    "lineInterpolation": "linear",
                    "lineWidth": 1,
                    "fillOpacity": 10,
                },
            },
        }
    elif panel_type == "heatmap":
        panel.options = {
            "calculate": False,
            "cellGap": 2,
            "color": {"scheme": "Spectral", "mode": "spectrum"},
        }
    elif panel_type == "table":
        panel.options = {"showHeader": True, "sortBy": []}
    elif panel_type == "piechart":
        panel.options = {
            "reduceOptions": _reduce_last_not_null(),
            "pieType": "pie",
            "displayLabels": ["name", "percent"],
        }
    elif panel_type == "bargauge":
        panel.options = {
            "reduceOptions": _reduce_last_not_null(),
            "orientation": "horizontal",
            "displayMode": "gradient",
            "showUnfilled": True,
        }