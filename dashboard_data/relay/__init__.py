"""
Relay (proxy) pool used when direct network access is blocked.
"""
from .endpoints import RelayEndpoint, RelayStyle, build_endpoints, infer_style
from .pool import (
    HEALTH_CHECK_INTERVAL_SECONDS,
    PROBE_TARGET,
    PROBE_TIMEOUT_SECONDS,
    RelayPool,
)

__all__ = [
    "RelayEndpoint",
    "RelayStyle",
    "build_endpoints",
    "infer_style",
    "HEALTH_CHECK_INTERVAL_SECONDS",
    "PROBE_TARGET",
    "PROBE_TIMEOUT_SECONDS",
    "RelayPool",
]
