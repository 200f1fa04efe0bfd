"""
TTL cache shared by the weather, forecast and feed domains.
"""
from .core import CacheEntry, CacheSource, DataDomain
from .ttl_policies import (
    CLEANUP_HORIZON_SECONDS,
    SENSITIVE_PARAMS,
    TTL_CONFIG,
    domain_prefix,
    make_cache_key,
    ttl_for_domain,
)
from .store import MISS, CacheStore

__all__ = [
    # Core types
    "CacheEntry",
    "CacheSource",
    "DataDomain",
    # TTL policies
    "CLEANUP_HORIZON_SECONDS",
    "SENSITIVE_PARAMS",
    "TTL_CONFIG",
    "domain_prefix",
    "make_cache_key",
    "ttl_for_domain",
    # Store
    "MISS",
    "CacheStore",
]
