"""
Relay endpoint definitions and their URL conventions.

Each public relay embeds the target URL differently, and one of them wraps
the body in a JSON envelope, so the rule travels with the endpoint.
"""
import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional
from urllib.parse import quote


class RelayStyle(Enum):
    """How a relay expects the target URL and how it returns the body."""
    ENCODED_QUERY = "encoded_query"   # prefix + percent-encoded target
    JSON_ENVELOPE = "json_envelope"   # as above, body is {"contents": "..."}
    RAW_PREFIX = "raw_prefix"         # prefix + target verbatim


def infer_style(url_template: str) -> RelayStyle:
    """Guess the convention from a well-known relay URL."""
    lowered = url_template.lower()
    if "allorigins" in lowered:
        return RelayStyle.JSON_ENVELOPE
    if "corsproxy.io" in lowered or lowered.endswith("="):
        return RelayStyle.ENCODED_QUERY
    return RelayStyle.RAW_PREFIX


@dataclass
class RelayEndpoint:
    """
    A relay with its health state.

    healthy starts False: nothing is known until the first check, and the
    pool falls back to the primary in that case.
    """
    url_template: str
    style: RelayStyle
    healthy: bool = False
    last_checked: Optional[datetime] = None

    @classmethod
    def from_url(cls, url_template: str, style: Optional[RelayStyle] = None) -> "RelayEndpoint":
        return cls(url_template=url_template, style=style or infer_style(url_template))

    @property
    def name(self) -> str:
        return self.url_template

    def wrap(self, target_url: str) -> str:
        """Compose the relayed URL for a target."""
        if self.style in (RelayStyle.ENCODED_QUERY, RelayStyle.JSON_ENVELOPE):
            return f"{self.url_template}{quote(target_url, safe='')}"
        return f"{self.url_template}{target_url}"

    def unwrap(self, body: str) -> str:
        """
        Extract the raw target body from a relay response.

        A JSON_ENVELOPE body that is not an envelope is returned as-is.
        """
        if self.style is not RelayStyle.JSON_ENVELOPE:
            return body
        try:
            envelope = json.loads(body)
        except ValueError:
            return body
        if isinstance(envelope, dict) and isinstance(envelope.get("contents"), str):
            return envelope["contents"]
        return body


def build_endpoints(primary_url: str, fallback_urls: List[str]) -> List[RelayEndpoint]:
    """Primary first, then fallbacks in configured order; duplicates dropped."""
    seen = set()
    endpoints = []
    for url in [primary_url, *fallback_urls]:
        if not url or url in seen:
            continue
        seen.add(url)
        endpoints.append(RelayEndpoint.from_url(url))
    return endpoints
