"""
Thin HTTP layer over requests.

Maps transport failures onto the fetch error taxonomy and streams bodies so
a cancelled consumer stops the download between chunks.
"""
import codecs
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from dashboard_data.cancellation import CancelToken
from dashboard_data.errors import (
    FetchTimeout,
    IncompatibleResponse,
    NetworkError,
    RelayBlocked,
    ServerError,
)

logger = logging.getLogger("http_client")

DEFAULT_TIMEOUT = 30
CHUNK_SIZE = 16 * 1024

XML_DECLARED_ENCODING = re.compile(rb"<\?xml[^>]*encoding=[\"']([A-Za-z0-9._-]+)[\"']")


def body_encoding(content_type: str, body: bytes, fallback: Optional[str] = None) -> str:
    """
    Pick the codec for a response body.

    requests reports ISO-8859-1 for any text/* response without a charset, so
    its guess is only used when the Content-Type names one. Otherwise an XML
    declaration wins, then UTF-8.
    """
    if "charset=" in content_type.lower() and fallback:
        candidate = fallback
    else:
        match = XML_DECLARED_ENCODING.search(body[:512])
        candidate = match.group(1).decode("ascii") if match else "utf-8"
    try:
        return codecs.lookup(candidate).name
    except LookupError:
        logger.debug(f"Unknown encoding '{candidate}', decoding as utf-8")
        return "utf-8"


@dataclass
class HttpResponse:
    """A fully read successful response."""
    url: str
    status_code: int
    text: str
    headers: Dict[str, str]

    def json(self) -> Any:
        return json.loads(self.text)


class HttpClient:
    """
    Shared requests.Session with the dashboard's User-Agent.

    Usage:
        http = HttpClient(user_agent="ModernDashboard/1.0")
        text = http.get_text("https://example.com/feed.xml", timeout=30).text
    """

    def __init__(
        self,
        user_agent: str = "ModernDashboard/1.0",
        session: Optional[requests.Session] = None,
    ):
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": user_agent})

    def get_text(
        self,
        url: str,
        timeout: float = DEFAULT_TIMEOUT,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> HttpResponse:
        """
        GET a URL and read the whole body.

        Raises:
            FetchCancelled: cancel_token was cancelled before or during the read
            RelayBlocked: status 403/405, typical of a sandbox restriction
            ServerError: any other status >= 400
            FetchTimeout / NetworkError: transport failures
        """
        token = cancel_token or CancelToken()
        token.raise_if_cancelled()

        try:
            response = self._session.get(
                url,
                headers=headers,
                params=params,
                timeout=timeout,
                stream=True,
            )
        except requests.Timeout:
            raise FetchTimeout(url, timeout)
        except requests.ConnectionError as e:
            raise NetworkError(url, details=str(e))
        except requests.RequestException as e:
            raise NetworkError(url, details=str(e))

        try:
            if response.status_code in (403, 405):
                raise RelayBlocked(url, response.status_code)
            if response.status_code >= 400:
                raise ServerError(url, response.status_code, response.reason)

            chunks = []
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                token.raise_if_cancelled()
                chunks.append(chunk)
            token.raise_if_cancelled()

            body = b"".join(chunks)
            encoding = body_encoding(
                response.headers.get("Content-Type", ""), body, response.encoding
            )
            text = body.decode(encoding, errors="replace")
        except requests.Timeout:
            raise FetchTimeout(url, timeout)
        except requests.RequestException as e:
            raise NetworkError(url, details=str(e))
        finally:
            response.close()

        return HttpResponse(
            url=url,
            status_code=response.status_code,
            text=text,
            headers=dict(response.headers),
        )

    def get_json(
        self,
        url: str,
        timeout: float = DEFAULT_TIMEOUT,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> Any:
        """GET a URL and decode its JSON body. Non-JSON bodies raise IncompatibleResponse."""
        response = self.get_text(
            url, timeout=timeout, headers=headers, params=params, cancel_token=cancel_token
        )
        try:
            return response.json()
        except ValueError as e:
            raise IncompatibleResponse(url, details=f"Invalid JSON: {e}")

    def probe(self, url: str, timeout: float) -> bool:
        """
        Lightweight reachability check.

        Returns:
            True only for a success status within the timeout; never raises
        """
        try:
            response = self._session.get(url, timeout=timeout, stream=True)
            response.close()
            return 200 <= response.status_code < 300
        except requests.RequestException as e:
            logger.debug(f"Probe failed for {url}: {e}")
            return False

    def close(self) -> None:
        self._session.close()
