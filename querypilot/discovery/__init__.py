"""
Schema discovery engine.

Foreign-key graph, join-path search, compass and keyword search over a
data source. The service lives in ``querypilot.discovery.service``.
"""

from querypilot.discovery.errors import (
    DataSourceNotFoundError,
    DiscoveryError,
    NoPathFoundError,
    UnknownColumnError,
    UnknownTableError,
)
from querypilot.discovery.graph import ForeignKey, SchemaGraph, build_schema_graph

__all__ = [
    "DataSourceNotFoundError",
    "DiscoveryError",
    "ForeignKey",
    "NoPathFoundError",
    "SchemaGraph",
    "UnknownColumnError",
    "UnknownTableError",
    "build_schema_graph",
]
