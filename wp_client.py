"""
WordPress REST client for the catalog migrator.

This module wraps a single ``requests`` session shared by the export and
import sides of a run. Credentials are chosen per request by matching the
URL against the export and import site base URLs, transient network
failures are retried with capped exponential backoff, and list endpoints
are walked page by page.
"""

import logging
import random
import time
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from requests.auth import HTTPBasicAuth
from urllib3.util.retry import Retry

from config_loader import get_nested
from errors import HttpError, TransientConnectionError, ValidationError, MigrationError
from models import SiteProfile

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    requests.exceptions.ChunkedEncodingError,
)

UNKNOWN_SITE_NAME = "Unknown Site"


class WooClient:
    """Authenticated JSON client with retry logic and pagination."""

    DEFAULT_TIMEOUT = 30
    DEFAULT_UPLOAD_TIMEOUT = 60
    DEFAULT_MAX_RETRIES = 3
    DEFAULT_RETRY_BACKOFF = 1.0
    DEFAULT_RETRY_JITTER = 1.0
    DEFAULT_MAX_BACKOFF = 15.0
    DEFAULT_PER_PAGE = 100

    def __init__(
        self,
        export_site: Optional[SiteProfile] = None,
        import_site: Optional[SiteProfile] = None,
        timeout: float = DEFAULT_TIMEOUT,
        upload_timeout: float = DEFAULT_UPLOAD_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_backoff_factor: float = DEFAULT_RETRY_BACKOFF,
        retry_jitter: float = DEFAULT_RETRY_JITTER,
        max_backoff: float = DEFAULT_MAX_BACKOFF,
        per_page: int = DEFAULT_PER_PAGE,
        verify_ssl: bool = True,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the client.

        Args:
            export_site: Site whose credentials apply to export URLs
            import_site: Site whose credentials apply to import URLs (and the default)
            timeout: Request timeout in seconds
            upload_timeout: Timeout used for media uploads
            max_retries: Total attempts for a request hitting transient errors
            retry_backoff_factor: Base delay for exponential backoff
            retry_jitter: Upper bound of random jitter added to each delay
            max_backoff: Cap on the delay between two attempts
            per_page: Page size used by fetch_all_pages
            verify_ssl: Whether to verify SSL certificates
            session: Pre-built session (tests inject fakes here)
        """
        self.export_site = export_site
        self.import_site = import_site
        self.timeout = timeout
        self.upload_timeout = upload_timeout
        self.max_retries = max(1, max_retries)
        self.retry_backoff_factor = retry_backoff_factor
        self.retry_jitter = retry_jitter
        self.max_backoff = max_backoff
        self.per_page = per_page
        self.verify_ssl = verify_ssl

        if session is None:
            session = requests.Session()
            # Gateway errors on idempotent calls are retried by urllib3;
            # connection-level failures go through fetch_json's own loop.
            retry_strategy = Retry(
                total=self.max_retries - 1,
                connect=0,
                read=0,
                backoff_factor=retry_backoff_factor,
                status_forcelist=[502, 503, 504],
                raise_on_status=False
            )
            adapter = HTTPAdapter(max_retries=retry_strategy)
            session.mount('http://', adapter)
            session.mount('https://', adapter)
        self.session = session
        self.session.headers.update({'Accept': 'application/json'})

        logger.debug(
            f"Initialized WooClient (export={export_site.base_url if export_site else None}, "
            f"import={import_site.base_url if import_site else None})"
        )

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        export_site: Optional[SiteProfile] = None,
        import_site: Optional[SiteProfile] = None,
        session: Optional[requests.Session] = None
    ) -> 'WooClient':
        """Build a client from the ``advanced`` and ``migration`` config sections."""
        return cls(
            export_site=export_site,
            import_site=import_site,
            timeout=get_nested(config, 'advanced.request_timeout', cls.DEFAULT_TIMEOUT),
            upload_timeout=get_nested(config, 'advanced.upload_timeout', cls.DEFAULT_UPLOAD_TIMEOUT),
            max_retries=get_nested(config, 'advanced.max_retries', cls.DEFAULT_MAX_RETRIES),
            retry_backoff_factor=get_nested(config, 'advanced.retry_backoff_factor', cls.DEFAULT_RETRY_BACKOFF),
            retry_jitter=get_nested(config, 'advanced.retry_jitter', cls.DEFAULT_RETRY_JITTER),
            max_backoff=get_nested(config, 'advanced.max_backoff', cls.DEFAULT_MAX_BACKOFF),
            per_page=get_nested(config, 'migration.per_page', cls.DEFAULT_PER_PAGE),
            verify_ssl=get_nested(config, 'advanced.verify_ssl', True),
            session=session,
        )

    def credentials_for(self, url: str) -> Optional[SiteProfile]:
        """
        Select the site whose credentials apply to ``url``.

        Export credentials are used for URLs under the export base URL,
        import credentials for everything else.
        """
        if self.export_site and url.startswith(self.export_site.base_url):
            return self.export_site
        if self.import_site and url.startswith(self.import_site.base_url):
            return self.import_site
        return self.import_site or self.export_site

    def backoff_delay(self, attempt: int) -> float:
        """Delay before retrying after the given (1-based) failed attempt."""
        delay = self.retry_backoff_factor * (2 ** (attempt - 1))
        delay += random.uniform(0, self.retry_jitter)
        return min(delay, self.max_backoff)

    def fetch_json(
        self,
        url: str,
        method: str = 'GET',
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        data: Any = None,
        files: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None
    ) -> Any:
        """
        Issue an authenticated request and return the decoded body.

        Args:
            url: Absolute URL
            method: HTTP method
            json: JSON payload
            params: Query parameters
            headers: Extra headers; an explicit Authorization header wins
            data: Raw form payload
            files: Files for multipart uploads
            timeout: Per-call timeout override

        Returns:
            Parsed JSON (or raw text for non-JSON bodies, ``{}`` for empty ones)

        Raises:
            HttpError: For non-2xx responses
            TransientConnectionError: When every attempt hit a network failure
        """
        request_headers = dict(headers or {})
        auth = None
        if 'Authorization' not in request_headers:
            site = self.credentials_for(url)
            if site and site.username and site.password:
                auth = HTTPBasicAuth(site.username, site.password)

        response = self._send(
            method,
            url,
            params=params,
            json=json,
            data=data,
            files=files,
            headers=request_headers or None,
            auth=auth,
            timeout=timeout or self.timeout,
        )
        return self._handle_response(response, method, url)

    def fetch_all_pages(self, url: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Fetch every page of a list endpoint.

        Pages are requested with ``page`` and ``per_page`` until an empty page
        comes back. Results are concatenated in arrival order without
        de-duplication. Any page failure propagates.

        Args:
            url: List endpoint URL (may already carry a query string)
            params: Extra query parameters

        Returns:
            All items across pages
        """
        items: List[Dict[str, Any]] = []
        page = 1
        logger.info(f"Fetching data from {url}")

        while True:
            page_params = dict(params or {})
            page_params.update({'page': page, 'per_page': self.per_page})
            logger.debug(f"Fetching page {page}")

            batch = self.fetch_json(url, params=page_params)
            if not isinstance(batch, list):
                raise ValidationError(f"Expected a list from {url} page {page}, got {type(batch).__name__}")
            if not batch:
                break

            items.extend(batch)
            page += 1

        logger.debug(f"Fetched {len(items)} items in {page - 1} pages from {url}")
        return items

    def get_site_name(self, base_url: str) -> str:
        """Read the site title from ``/wp-json``; never raises."""
        try:
            response = self.fetch_json(f"{base_url.rstrip('/')}/wp-json")
        except (MigrationError, requests.RequestException) as e:
            logger.warning(f"Could not fetch site name: {e}")
            return UNKNOWN_SITE_NAME

        if isinstance(response, dict) and response.get('name'):
            return response['name']
        return UNKNOWN_SITE_NAME

    def download(self, url: str, timeout: Optional[float] = None) -> bytes:
        """
        Download a public file (no credentials attached).

        Raises:
            HttpError: For non-2xx responses
            TransientConnectionError: When every attempt hit a network failure
        """
        response = self._send('GET', url, timeout=timeout or self.timeout, headers={'Accept': '*/*'})
        if not 200 <= response.status_code < 300:
            raise HttpError(response.status_code, url, response.text[:500] if response.text else None)
        return response.content

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        """Send a request, retrying transient failures and 429 responses."""
        last_error: Optional[Exception] = None

        for attempt in range(1, self.max_retries + 1):
            logger.debug(f"{method} {url} (attempt {attempt}/{self.max_retries})")
            try:
                response = self.session.request(
                    method=method,
                    url=url,
                    verify=self.verify_ssl,
                    **kwargs
                )
            except TRANSIENT_ERRORS as e:
                last_error = e
                if attempt >= self.max_retries:
                    break
                delay = self.backoff_delay(attempt)
                logger.warning(
                    f"Transient error on {method} {url}: {e}. "
                    f"Retrying in {delay:.1f}s ({attempt}/{self.max_retries})"
                )
                time.sleep(delay)
                continue

            # Handle rate limiting (429) with the server's Retry-After hint
            if response.status_code == 429 and attempt < self.max_retries:
                retry_after = response.headers.get('Retry-After', '1')
                try:
                    wait_time = min(float(retry_after), self.max_backoff)
                except ValueError:
                    wait_time = 1.0
                logger.warning(f"Rate limited (429). Retrying after {wait_time}s")
                time.sleep(wait_time)
                continue

            return response

        raise TransientConnectionError(url, self.max_retries, last_error)

    @staticmethod
    def _handle_response(response: requests.Response, method: str, url: str) -> Any:
        logger.debug(f"Response status: {response.status_code}")

        if not 200 <= response.status_code < 300:
            try:
                body = response.json()
            except ValueError:
                body = response.text
            logger.debug(f"{method} {url} failed with {response.status_code}: {body}")
            raise HttpError(response.status_code, url, body)

        if response.status_code == 204 or not response.content:
            return {}

        try:
            return response.json()
        except ValueError:
            return response.text


__all__ = ['WooClient', 'TRANSIENT_ERRORS', 'UNKNOWN_SITE_NAME']
