"""Clients and tool handlers for Grafana dashboards, Prometheus-compatible APIs and GraphQL endpoints."""

__version__ = "0.1.0"