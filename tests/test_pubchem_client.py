"""
Tests for the PubChem client.

Tests:
- URL construction and successful fetches
- Terminal 400/404 responses reported as not found
- Retries with backoff only for timeouts, 429 and 5xx
- Backoff delay growth and capping
"""

from unittest.mock import Mock, patch

import pytest
import requests

from chemsearch.ingestion.pubchem_client import (
    APIError,
    PubChemClient,
    RetryableAPIError,
    exponential_backoff_retry,
)
from tests.fixtures.test_data import ASPIRIN_PC_COMPOUNDS


SLEEP = "chemsearch.ingestion.pubchem_client.time.sleep"
UNIFORM = "chemsearch.ingestion.pubchem_client.random.uniform"


def make_response(status_code=200, payload=None):
    response = Mock()
    response.status_code = status_code
    response.from_cache = False
    response.url = "https://pubchem.test/compound"
    response.json.return_value = payload
    return response


@pytest.fixture
def client(temp_dir):
    client = PubChemClient(cache_dir=temp_dir / "cache", max_retries=3)
    yield client
    client.close()


@pytest.fixture(autouse=True)
def unthrottled():
    """Bypass the process-wide rate limiter so call and sleep counts are exact."""
    with patch(
        "chemsearch.ingestion.pubchem_client._rate_limited_get",
        side_effect=lambda session, url, timeout: session.get(url, timeout=timeout),
    ):
        yield


# ============================================================================
# FETCH TESTS
# ============================================================================

class TestFetchCompound:
    """Tests for fetch_compound."""

    def test_compound_url(self, client):
        assert client.compound_url(2244) == (
            "https://pubchem.ncbi.nlm.nih.gov/rest/pug/compound/cid/2244/record/JSON"
        )

    def test_success(self, client):
        with patch.object(client.session, "get") as mock_get:
            mock_get.return_value = make_response(200, ASPIRIN_PC_COMPOUNDS)

            data = client.fetch_compound(2244)

            assert data == ASPIRIN_PC_COMPOUNDS
            mock_get.assert_called_once_with(client.compound_url(2244), timeout=30)

    @pytest.mark.parametrize("status", [400, 404])
    def test_terminal_status_is_not_found(self, client, status):
        """Test 400/404 return None without retrying."""
        with patch.object(client.session, "get") as mock_get, patch(SLEEP) as mock_sleep:
            mock_get.return_value = make_response(status)

            assert client.fetch_compound(99999999) is None
            assert mock_get.call_count == 1
            mock_sleep.assert_not_called()

    def test_other_client_error_not_retried(self, client):
        with patch.object(client.session, "get") as mock_get, patch(SLEEP):
            mock_get.return_value = make_response(403)

            with pytest.raises(APIError) as exc_info:
                client.fetch_compound(2244)

            assert not isinstance(exc_info.value, RetryableAPIError)
            assert mock_get.call_count == 1

    def test_invalid_json(self, client):
        with patch.object(client.session, "get") as mock_get:
            response = make_response(200)
            response.json.side_effect = ValueError("Expecting value")
            mock_get.return_value = response

            with pytest.raises(APIError, match="Invalid JSON"):
                client.fetch_compound(2244)


# ============================================================================
# RETRY TESTS
# ============================================================================

class TestRetries:
    """Only transient failures are retried."""

    @pytest.mark.parametrize("status", [429, 500, 503])
    def test_transient_status_retried(self, client, status):
        with patch.object(client.session, "get") as mock_get, patch(SLEEP) as mock_sleep:
            mock_get.side_effect = [
                make_response(status),
                make_response(200, ASPIRIN_PC_COMPOUNDS),
            ]

            assert client.fetch_compound(2244) == ASPIRIN_PC_COMPOUNDS
            assert mock_get.call_count == 2
            assert mock_sleep.call_count == 1

    def test_timeout_retried(self, client):
        with patch.object(client.session, "get") as mock_get, patch(SLEEP):
            mock_get.side_effect = [
                requests.Timeout("read timed out"),
                make_response(200, ASPIRIN_PC_COMPOUNDS),
            ]

            assert client.fetch_compound(2244) == ASPIRIN_PC_COMPOUNDS
            assert mock_get.call_count == 2

    def test_connection_error_retried(self, client):
        with patch.object(client.session, "get") as mock_get, patch(SLEEP):
            mock_get.side_effect = [
                requests.ConnectionError("reset"),
                make_response(404),
            ]

            assert client.fetch_compound(2244) is None
            assert mock_get.call_count == 2

    def test_retries_exhausted(self, client):
        with patch.object(client.session, "get") as mock_get, patch(SLEEP) as mock_sleep:
            mock_get.return_value = make_response(500)

            with pytest.raises(RetryableAPIError):
                client.fetch_compound(2244)

            assert mock_get.call_count == 4
            assert mock_sleep.call_count == 3

    def test_other_request_errors_not_retried(self, client):
        with patch.object(client.session, "get") as mock_get, patch(SLEEP):
            mock_get.side_effect = requests.TooManyRedirects("loop")

            with pytest.raises(APIError):
                client.fetch_compound(2244)

            assert mock_get.call_count == 1


class TestBackoff:
    """Tests for exponential_backoff_retry."""

    def test_delays_double_and_cap(self):
        @exponential_backoff_retry(max_retries=4, base_delay=1.0, max_delay=3.0, jitter=0.5)
        def always_busy():
            raise RetryableAPIError("HTTP error 503")

        with patch(SLEEP) as mock_sleep, patch(UNIFORM, return_value=0.25) as mock_uniform:
            with pytest.raises(RetryableAPIError):
                always_busy()

        delays = [call.args[0] for call in mock_sleep.call_args_list]
        assert delays == [1.25, 2.25, 3.25, 3.25]
        mock_uniform.assert_called_with(0, 0.5)

    def test_non_retryable_passes_through(self):
        calls = []

        @exponential_backoff_retry(max_retries=3)
        def forbidden():
            calls.append(1)
            raise APIError("HTTP error 403")

        with patch(SLEEP) as mock_sleep:
            with pytest.raises(APIError):
                forbidden()

        assert len(calls) == 1
        mock_sleep.assert_not_called()

    def test_success_after_failure(self):
        outcomes = [RetryableAPIError("busy"), "ok"]

        @exponential_backoff_retry(max_retries=2, base_delay=0.1)
        def flaky():
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        with patch(SLEEP):
            assert flaky() == "ok"


# ============================================================================
# SESSION TESTS
# ============================================================================

class TestSession:
    """Tests for session lifecycle."""

    def test_context_manager_closes_session(self, temp_dir):
        client = PubChemClient(cache_dir=temp_dir / "cache")
        with patch.object(client.session, "close") as mock_close:
            with client:
                pass
            mock_close.assert_called_once()
        client.close()

    def test_clear_cache(self, client):
        with patch.object(client.session.cache, "clear") as mock_clear:
            client.clear_cache()

        mock_clear.assert_called_once()

    def test_cache_directory_created(self, temp_dir):
        client = PubChemClient(cache_dir=temp_dir / "nested" / "cache")
        try:
            assert (temp_dir / "nested" / "cache").is_dir()
            assert client.session.headers["Accept"] == "application/json"
        finally:
            client.close()
