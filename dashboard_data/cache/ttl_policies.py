"""
TTL configuration and cache key construction.
"""
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from .core import DataDomain


# TTL Configuration by domain (in seconds)
TTL_CONFIG: Dict[DataDomain, int] = {
    DataDomain.WEATHER: 600,      # 10 minutes
    DataDomain.FORECAST: 600,     # 10 minutes
    DataDomain.FEED: 1800,        # 30 minutes
}

# Entries older than this are purged regardless of their own TTL
CLEANUP_HORIZON_SECONDS = 3600

# Parameters never allowed into a cache key
SENSITIVE_PARAMS = frozenset({
    "appid",
    "api_key",
    "apikey",
    "key",
    "token",
    "access_token",
    "password",
    "secret",
    "credentials",
})


def ttl_for_domain(
    domain: DataDomain,
    overrides: Optional[Mapping[DataDomain, int]] = None,
) -> int:
    """
    Get the TTL for a data domain.

    Args:
        domain: The data domain
        overrides: Per-domain TTLs taking precedence over the defaults

    Returns:
        TTL in seconds
    """
    if overrides and domain in overrides:
        return overrides[domain]
    return TTL_CONFIG[domain]


def make_cache_key(
    domain: Union[DataDomain, str],
    params: Mapping[str, Any],
    sensitive: Iterable[str] = SENSITIVE_PARAMS,
) -> str:
    """
    Build a deterministic cache key.

    Format is "<domain>:<k1>=<v1>;<k2>=<v2>" with parameters sorted by name.
    None values and sensitive parameters (credentials) are left out.

    >>> make_cache_key(DataDomain.WEATHER, {"loc": "paris", "appid": "s3cret"})
    'weather:loc=paris'
    """
    prefix = domain.value if isinstance(domain, DataDomain) else str(domain)
    excluded = {name.lower() for name in sensitive}
    parts = [
        f"{k}={v}"
        for k, v in sorted(params.items())
        if v is not None and k.lower() not in excluded
    ]
    return f"{prefix}:{';'.join(parts)}"


def domain_prefix(domain: Union[DataDomain, str]) -> str:
    """Key prefix matching every entry of a domain, for targeted clearing."""
    prefix = domain.value if isinstance(domain, DataDomain) else str(domain)
    return f"{prefix}:"
