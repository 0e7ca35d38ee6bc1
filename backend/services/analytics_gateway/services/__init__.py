"""
Service-Level Components for the Analytics Gateway.

This package contains components that talk to external services. Currently it
holds the reverse proxy to the shared Grafana instance.
"""

from .dashboard_proxy import DashboardProxy, ProxyDirective, build_proxy_directive, rewrite_path

__all__ = ["DashboardProxy", "ProxyDirective", "build_proxy_directive", "rewrite_path"]
