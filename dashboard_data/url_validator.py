"""
Feed URL validation with correction hints for the UI.
"""
import re
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urlparse

from dashboard_data.errors import InvalidUrl

_BASIC_URL = re.compile(r"^https?://.+\..+", re.IGNORECASE)
_STRICT_URL = re.compile(
    r"^https?://(www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b"
    r"([-a-zA-Z0-9()@:%_+.~#?&/=;]*)$",
    re.IGNORECASE,
)

MAX_CORRECTIONS = 3


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    error: Optional[str] = None
    suggestion: Optional[str] = None
    corrections: List[str] = field(default_factory=list)

    def raise_if_invalid(self, url: str) -> None:
        if not self.is_valid:
            raise InvalidUrl(
                url, error=self.error, suggestion=self.suggestion, corrections=self.corrections
            )


def validate_feed_url(url: str) -> ValidationResult:
    """
    Check a feed URL's format.

    Rejects empty input, a missing http(s) scheme (offering both as
    corrections) and malformed hosts (offering typo fixes).
    """
    candidate = (url or "").strip()
    if not candidate:
        return ValidationResult(
            False,
            error="URL cannot be empty",
            suggestion="Please enter a valid RSS feed URL",
        )

    if not candidate.lower().startswith(("http://", "https://")):
        return ValidationResult(
            False,
            error="URL must start with http:// or https://",
            suggestion="Add http:// or https:// at the beginning",
            corrections=[f"https://{candidate}", f"http://{candidate}"],
        )

    if not _BASIC_URL.match(candidate):
        return ValidationResult(
            False,
            error="Invalid URL format",
            suggestion="Please check the URL format",
            corrections=suggest_corrections(candidate),
        )

    if not _STRICT_URL.match(candidate) or not urlparse(candidate).hostname:
        return ValidationResult(
            False,
            error="URL contains invalid characters or format",
            suggestion="Please verify the URL is correct",
            corrections=suggest_corrections(candidate),
        )

    return ValidationResult(True)


def suggest_corrections(url: str) -> List[str]:
    """Fixes for common typos, at most MAX_CORRECTIONS."""
    fixed = url.strip()
    corrections = []
    if fixed.startswith("htttp://"):
        corrections.append(fixed.replace("htttp://", "http://", 1))
    if fixed.startswith("htttps://"):
        corrections.append(fixed.replace("htttps://", "https://", 1))
    if "ww." in fixed and "www." not in fixed:
        corrections.append(fixed.replace("ww.", "www.", 1))
    if "///" in fixed:
        corrections.append(fixed.replace("///", "//"))
    if " " in fixed:
        corrections.append(fixed.replace(" ", ""))
    if fixed.startswith("http://"):
        corrections.append(fixed.replace("http://", "https://", 1))
    return corrections[:MAX_CORRECTIONS]


def extract_host(url: str) -> Optional[str]:
    return urlparse(url).hostname
