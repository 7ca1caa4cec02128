"""HTTP fetcher for remote targets.

Provides:
- ETag checks via HEAD (with a streamed GET fallback)
- Full content downloads
- Cache defeating on every request (query parameter + no-cache headers)
- Session pooling with urllib3 retries

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry as URLRetry

from etag_runner import __version__
from etag_runner.updater.state import normalize_etag

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

# Servers that refuse HEAD; checked again with a GET whose body is never read.
HEAD_UNSUPPORTED = (405, 501)

DEFAULT_USER_AGENT = f"etag-runner/{__version__}"


class FetchError(Exception):
    """Raised when a download fails at the transport or HTTP level."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class CheckResult:
    """Outcome of a metadata-only check."""

    ok: bool
    etag: Optional[str] = None
    status_code: Optional[int] = None
    error: Optional[str] = None


@dataclass
class FetchedContent:
    """Body and version token from a successful download."""

    content: bytes
    etag: Optional[str] = None
    status_code: int = 200


def cache_busting_params(now: Optional[float] = None) -> Dict[str, int]:
    """Build the query parameters that defeat intermediate caches."""
    if now is None:
        now = time.time()
    return {"t": int(now)}


class RetryStrategy:
    """Retry behavior for check and download requests."""

    def __init__(self, max_retries: int = 2, backoff_factor: float = 0.5,
                 status_forcelist: Optional[List[int]] = None):
        """Initialize retry strategy.

        Args:
            max_retries: Maximum number of retry attempts
            backoff_factor: Exponential backoff multiplier
            status_forcelist: HTTP status codes to retry on
                            (default: [429, 500, 502, 503, 504])
        """
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.status_forcelist = status_forcelist or [429, 500, 502, 503, 504]

    def get_retry_object(self) -> URLRetry:
        # raise_on_status=False: exhausted retries hand back the last response
        return URLRetry(
            total=self.max_retries,
            backoff_factor=self.backoff_factor,
            status_forcelist=self.status_forcelist,
            allowed_methods=["GET", "HEAD"],
            raise_on_status=False,
        )


class Fetcher:
    """Issues ETag checks and downloads for one or more URLs."""

    def __init__(
        self,
        timeout: float = 15,
        retry_strategy: Optional[RetryStrategy] = None,
        session: Optional[requests.Session] = None,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        """Initialize fetcher.

        Args:
            timeout: Per-request timeout in seconds
            retry_strategy: RetryStrategy to use (default: standard strategy)
            session: Pre-built session, mainly for tests
            user_agent: User-Agent header sent with every request
        """
        self.timeout = timeout
        self.retry_strategy = retry_strategy or RetryStrategy()
        self.user_agent = user_agent
        self._session = session

    @property
    def session(self) -> requests.Session:
        """Get or create the HTTP session with retries mounted."""
        if self._session is None:
            self._session = requests.Session()
            adapter = HTTPAdapter(max_retries=self.retry_strategy.get_retry_object())
            self._session.mount("http://", adapter)
            self._session.mount("https://", adapter)
        return self._session

    def _headers(self) -> Dict[str, str]:
        headers = dict(NO_CACHE_HEADERS)
        headers["User-Agent"] = self.user_agent
        return headers

    def check(self, url: str, now: Optional[float] = None) -> CheckResult:
        """Fetch only the response headers for url and extract the ETag.

        Never raises for network problems; failures come back as
        CheckResult(ok=False) so the caller can decide what to do.
        """
        params = cache_busting_params(now)
        try:
            response = self.session.head(
                url,
                params=params,
                headers=self._headers(),
                timeout=self.timeout,
                allow_redirects=True,
            )
            response.close()
            if response.status_code in HEAD_UNSUPPORTED:
                logger.debug(f"HEAD not supported ({response.status_code}), checking with GET")
                response = self.session.get(
                    url,
                    params=params,
                    headers=self._headers(),
                    timeout=self.timeout,
                    stream=True,
                )
                response.close()
        except requests.RequestException as e:
            return CheckResult(ok=False, error=str(e))

        if not response.ok:
            return CheckResult(
                ok=False,
                status_code=response.status_code,
                error=f"HTTP {response.status_code}",
            )

        return CheckResult(
            ok=True,
            etag=normalize_etag(response.headers.get("ETag")),
            status_code=response.status_code,
        )

    def download(self, url: str, now: Optional[float] = None) -> FetchedContent:
        """Download the full body of url.

        Raises:
            FetchError: On transport errors or non-2xx responses.
        """
        try:
            response = self.session.get(
                url,
                params=cache_busting_params(now),
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise FetchError(str(e)) from e

        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            raise FetchError(str(e), status_code=response.status_code) from e

        return FetchedContent(
            content=response.content,
            etag=normalize_etag(response.headers.get("ETag")),
            status_code=response.status_code,
        )

    def close(self) -> None:
        """Close the session and release resources."""
        if self._session:
            self._session.close()
            self._session = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
