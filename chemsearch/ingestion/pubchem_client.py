"""
PubChem PUG REST client with retry, rate limiting, and caching.

Only transient failures (timeouts, connection errors, HTTP 429 and 5xx)
are retried, with capped, jittered exponential backoff. 400 and 404
are terminal and reported as "not found" (None).
"""
import random
import time
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import requests
import requests_cache
from loguru import logger
from ratelimit import limits, sleep_and_retry


PUBCHEM_BASE_URL = "https://pubchem.ncbi.nlm.nih.gov/rest/pug"

# PubChem asks anonymous clients to stay under 5 requests per second
CALLS_PER_SECOND = 5

TERMINAL_STATUS_CODES = (400, 404)


class APIError(Exception):
    """Custom exception for API-related errors."""

    pass


class RetryableAPIError(APIError):
    """Transient failure worth retrying (timeout, 429, 5xx)."""

    pass


def exponential_backoff_retry(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    jitter: float = 1.0,
) -> Callable:
    """
    Decorator for exponential backoff retry logic.

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Initial delay in seconds
        max_delay: Maximum delay between retries (before jitter)
        jitter: Upper bound of the random delay added to each wait

    Returns:
        Decorated function that retries on RetryableAPIError
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except RetryableAPIError as e:
                    if attempt == max_retries:
                        logger.error(f"Max retries ({max_retries}) exceeded: {e}")
                        raise

                    delay = min(base_delay * (2**attempt), max_delay) + random.uniform(0, jitter)
                    logger.warning(
                        f"Attempt {attempt + 1} failed: {e}. Retrying in {delay:.1f}s..."
                    )
                    time.sleep(delay)

        return wrapper

    return decorator


@sleep_and_retry
@limits(calls=CALLS_PER_SECOND, period=1)
def _rate_limited_get(session: requests.Session, url: str, timeout: float) -> requests.Response:
    """Issue a GET, sleeping as needed to stay under the PubChem rate limit."""
    return session.get(url, timeout=timeout)


class PubChemClient:
    """
    Fetches raw compound records from PubChem.

    Provides:
    - Session management with connection pooling
    - Response caching to disk
    - Rate limiting
    - Retry with capped, jittered exponential backoff
    """

    def __init__(
        self,
        base_url: str = PUBCHEM_BASE_URL,
        cache_dir: Optional[Path] = None,
        cache_expire_after: int = 86400,  # 24 hours
        timeout: float = 30,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
    ):
        """
        Initialize the client.

        Args:
            base_url: PUG REST root URL
            cache_dir: Directory for the HTTP response cache
            cache_expire_after: Cache expiration time in seconds
            timeout: Request timeout in seconds
            max_retries: Maximum retry attempts for transient failures
            base_delay: First backoff delay in seconds
            max_delay: Backoff cap in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        cache_dir = Path(cache_dir) if cache_dir else Path("data/raw/pubchem")
        cache_dir.mkdir(parents=True, exist_ok=True)
        self.cache_dir = cache_dir

        self.session = requests_cache.CachedSession(
            cache_name=str(cache_dir / "http_cache"),
            backend="sqlite",
            expire_after=cache_expire_after,
            allowable_methods=["GET"],
            allowable_codes=[200],
            stale_if_error=True,
        )
        self.session.headers.update(
            {
                "User-Agent": "ChemSearch/1.0",
                "Accept": "application/json",
            }
        )

        self._request_with_retry = exponential_backoff_retry(
            max_retries=max_retries, base_delay=base_delay, max_delay=max_delay
        )(self._make_request)

        logger.info(f"Initialized PubChem client with cache at {cache_dir}")

    def compound_url(self, cid: int) -> str:
        return f"{self.base_url}/compound/cid/{cid}/record/JSON"

    def fetch_compound(self, cid: int) -> Optional[Dict[str, Any]]:
        """
        Fetch the full PC_Compounds record for a CID.

        Args:
            cid: PubChem compound identifier

        Returns:
            Parsed JSON, or None if PubChem has no such compound

        Raises:
            RetryableAPIError: If transient failures outlast the retries
            APIError: On other request failures
        """
        return self._request_with_retry(self.compound_url(cid))

    def _make_request(self, url: str) -> Optional[Dict[str, Any]]:
        """
        Make one HTTP GET with error classification.

        Returns:
            Parsed JSON, or None for terminal 400/404 responses

        Raises:
            RetryableAPIError: On timeouts, connection errors, 429 and 5xx
            APIError: On other failures
        """
        try:
            response = _rate_limited_get(self.session, url, self.timeout)
        except requests.Timeout as e:
            raise RetryableAPIError(f"Request timeout for {url}: {e}")
        except requests.ConnectionError as e:
            raise RetryableAPIError(f"Connection failed for {url}: {e}")
        except requests.RequestException as e:
            raise APIError(f"Request failed for {url}: {e}")

        if getattr(response, "from_cache", False):
            logger.debug(f"Cache hit for {url}")

        status = response.status_code
        if status in TERMINAL_STATUS_CODES:
            logger.debug(f"No record at {url} (HTTP {status})")
            return None
        if status == 429 or status >= 500:
            raise RetryableAPIError(f"HTTP error {status} for {url}")
        if status >= 400:
            raise APIError(f"HTTP error {status} for {url}")

        return self._parse_json_response(response)

    def _parse_json_response(self, response: requests.Response) -> Optional[Dict[str, Any]]:
        try:
            return response.json()
        except ValueError as e:  # json.JSONDecodeError and requests' subclass
            raise APIError(f"Invalid JSON from {response.url}: {e}")

    def clear_cache(self):
        """Clear the HTTP cache."""
        self.session.cache.clear()
        logger.info("Cleared PubChem response cache")

    def close(self):
        """Close the session and cleanup resources."""
        self.session.close()
        logger.debug("Closed PubChem client session")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
