"""
HTTP client shared by the Plex and TMDB integrations.

Requests go through urllib with a per-attempt timeout and a constant backoff
retry loop. The caller's CancelToken is checked before each attempt and caps
the socket timeout so a cancelled run does not wait on a slow server.
"""

import random
import time
from dataclasses import dataclass, field
from http.client import HTTPException
from typing import Dict, List, Optional, Tuple
from urllib.error import HTTPError
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit
from urllib.request import Request, urlopen

from .cancellation import CancelToken
from .constants import (
    logger,
    HTTP_BACKOFF_SECONDS,
    HTTP_MAX_JITTER_SECONDS,
    HTTP_USER_AGENT,
    REDACTED_QUERY_PARAMS,
)
from .errors import HTTPRequestError


@dataclass
class HTTPResponse:
    status: int
    body: bytes = b''
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def content_type(self) -> str:
        for key, value in self.headers.items():
            if key.lower() == 'content-type':
                return value.split(';')[0].strip().lower()
        return ''


def redact_url(url: str) -> str:
    """Hide credentials carried in query parameters."""
    parts = urlsplit(url)
    if not parts.query:
        return url
    query = [
        (k, '[REDACTED]' if k in REDACTED_QUERY_PARAMS else v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(query)))


def build_url(base: str, path: str, params: Optional[List[Tuple[str, str]]] = None) -> str:
    """Join ``path`` onto ``base`` and append query ``params`` in order."""
    url = base.rstrip('/') + '/' + path.lstrip('/')
    if params:
        url += ('&' if '?' in url else '?') + urlencode(params)
    return url


class HTTPClient:
    """GET with timeout and retries; 5xx and connection errors are retried."""

    def __init__(self, timeout: float, max_retries: int):
        self.timeout = timeout
        self.max_retries = max_retries

    def get(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        token: Optional[CancelToken] = None,
    ) -> HTTPResponse:
        request_headers = {'User-Agent': HTTP_USER_AGENT}
        request_headers.update(headers or {})
        safe_url = redact_url(url)
        last_error: Optional[BaseException] = None

        for attempt in range(self.max_retries + 1):
            if token is not None:
                token.check()
            if attempt > 0:
                delay = HTTP_BACKOFF_SECONDS + random.uniform(0, HTTP_MAX_JITTER_SECONDS)
                if token is not None:
                    token.sleep(delay)
                else:
                    time.sleep(delay)

            timeout = self.timeout
            if token is not None and token.remaining() is not None:
                timeout = max(0.001, min(timeout, token.remaining()))

            try:
                with urlopen(Request(url, headers=request_headers, method='GET'), timeout=timeout) as resp:
                    response = HTTPResponse(resp.status, resp.read(), dict(resp.headers.items()))
            except HTTPError as e:
                response = HTTPResponse(e.code, e.read() or b'', dict(e.headers.items()) if e.headers else {})
            except (HTTPException, OSError) as e:
                # Connection failures, timeouts and truncated bodies
                logger.debug(f"HTTP_REQUEST method=GET url={safe_url} error={e} attempt={attempt + 1}")
                last_error = e
                continue

            logger.debug(f"HTTP_REQUEST method=GET url={safe_url} status={response.status} attempt={attempt + 1}")
            if response.status >= 500:
                last_error = HTTPRequestError(f"server error {response.status}", status=response.status)
                continue
            return response

        if token is not None:
            token.check()
        raise HTTPRequestError(
            f"GET {safe_url} failed after {self.max_retries + 1} attempts",
            cause=last_error,
        )