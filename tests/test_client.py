"""
API client tests.

Every failure mode must come back as an ApiOutcome, never an exception:
- 2xx JSON           -> Success
- non-2xx            -> HttpError (error.message, else reason phrase)
- transport failure  -> NetworkError
- 2xx non-JSON       -> NetworkError
"""

import json

import httpx
import pytest

from datafast_mcp.client import DataFastClient
from datafast_mcp.credentials import CredentialContext, credential_from_value
from datafast_mcp.models import HttpError, NetworkError, Success


def make_client(handler, base_url="https://datafa.st"):
    return DataFastClient(base_url=base_url, transport=httpx.MockTransport(handler))


@pytest.fixture
def cred():
    return CredentialContext(api_key="df_test_key_abcdef")


class TestSuccess:
    """2xx responses."""

    @pytest.mark.asyncio
    async def test_post_returns_parsed_body(self, cred):
        """JSON body of a 200 comes back as Success.body."""
        client = make_client(lambda request: httpx.Response(200, json={"message": "ok", "event_id": "e1"}))

        outcome = await client.call("/api/v1/goals", "POST", cred, {"name": "signup"})

        assert isinstance(outcome, Success)
        assert outcome.body == {"message": "ok", "event_id": "e1"}

    @pytest.mark.asyncio
    async def test_url_is_base_plus_suffix(self, cred):
        """Trailing slash on base_url is dropped; suffix appended as-is."""
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            return httpx.Response(200, json={})

        client = make_client(handler, base_url="https://api.example.test/")
        await client.call("/api/v1/visitors/v1", "GET", cred)

        assert seen["url"] == "https://api.example.test/api/v1/visitors/v1"

    @pytest.mark.asyncio
    async def test_bearer_and_json_headers_on_post(self, cred):
        """POST carries Authorization and Content-Type; body is JSON."""
        seen = {}

        def handler(request):
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"message": "created"})

        client = make_client(handler)
        outcome = await client.call("/api/v1/payments", "POST", cred, {"amount": 29.99})

        assert isinstance(outcome, Success)
        assert seen["headers"]["authorization"] == "Bearer df_test_key_abcdef"
        assert seen["headers"]["content-type"] == "application/json"
        assert seen["body"] == {"amount": 29.99}

    @pytest.mark.asyncio
    async def test_get_has_no_content_type(self, cred):
        """No body, no Content-Type header."""
        seen = {}

        def handler(request):
            seen["headers"] = request.headers
            seen["method"] = request.method
            return httpx.Response(200, json={"status": "success"})

        client = make_client(handler)
        await client.call("/api/v1/visitors/v1", "GET", cred)

        assert seen["method"] == "GET"
        assert "content-type" not in seen["headers"]
        assert seen["headers"]["authorization"] == "Bearer df_test_key_abcdef"

    @pytest.mark.asyncio
    async def test_non_json_success_body_is_network_error(self, cred):
        """A 2xx that isn't JSON is an upstream defect, surfaced as NetworkError."""
        client = make_client(lambda request: httpx.Response(200, text="<html>maintenance</html>"))

        outcome = await client.call("/api/v1/goals", "POST", cred, {})

        assert isinstance(outcome, NetworkError)
        assert "Invalid JSON" in outcome.message


class TestHttpErrors:
    """Non-2xx responses."""

    @pytest.mark.asyncio
    async def test_error_message_from_json_body(self, cred):
        """{"error": {"message"}} wins when present."""
        client = make_client(lambda request: httpx.Response(
            400, json={"error": {"message": "Transaction ID already exists"}}
        ))

        outcome = await client.call("/api/v1/payments", "POST", cred, {})

        assert outcome == HttpError(status=400, message="Transaction ID already exists")

    @pytest.mark.asyncio
    async def test_falls_back_to_reason_phrase_on_html(self, cred):
        """Unparseable error body -> HTTP status text."""
        client = make_client(lambda request: httpx.Response(500, text="<h1>oops</h1>"))

        outcome = await client.call("/api/v1/payments", "POST", cred, {})

        assert isinstance(outcome, HttpError)
        assert outcome.status == 500
        assert outcome.message == "Internal Server Error"

    @pytest.mark.asyncio
    async def test_falls_back_when_error_field_missing(self, cred):
        """JSON without error.message also falls back to status text."""
        client = make_client(lambda request: httpx.Response(404, json={"detail": "nope"}))

        outcome = await client.call("/api/v1/visitors/x", "GET", cred)

        assert outcome == HttpError(status=404, message="Not Found")

    @pytest.mark.asyncio
    async def test_unauthorized(self, cred):
        client = make_client(lambda request: httpx.Response(401, json={"error": {"message": "Invalid API key"}}))

        outcome = await client.call("/api/v1/goals", "POST", cred, {})

        assert outcome == HttpError(status=401, message="Invalid API key")


class TestNetworkErrors:
    """No response at all."""

    @pytest.mark.asyncio
    async def test_connect_error(self, cred):
        def handler(request):
            raise httpx.ConnectError("Connection refused", request=request)

        outcome = await make_client(handler).call("/api/v1/goals", "POST", cred, {})

        assert outcome == NetworkError(message="Connection refused")

    @pytest.mark.asyncio
    async def test_timeout(self, cred):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        outcome = await make_client(handler).call("/api/v1/visitors/v1", "GET", cred)

        assert isinstance(outcome, NetworkError)
        assert "timed out" in outcome.message

    @pytest.mark.asyncio
    async def test_exactly_one_attempt(self, cred):
        """No retries: a failure is reported after a single request."""
        attempts = []

        def handler(request):
            attempts.append(request)
            raise httpx.ConnectError("down", request=request)

        await make_client(handler).call("/api/v1/goals", "POST", cred, {})

        assert len(attempts) == 1


class TestCredentialHeader:
    """The key travels in the Authorization header, which only carries ASCII."""

    def test_non_ascii_key_rejected(self):
        with pytest.raises(ValueError, match="ASCII"):
            CredentialContext(api_key="clé_ü")

    def test_non_ascii_value_is_no_credential(self):
        assert credential_from_value("clé_ü") is None

    @pytest.mark.asyncio
    async def test_ascii_key_reaches_the_wire(self, cred):
        seen = []

        def handler(request):
            seen.append(request.headers["authorization"])
            return httpx.Response(200, json={"ok": True})

        outcome = await make_client(handler).call("/api/v1/goals", "POST", cred, {"a": 1})

        assert isinstance(outcome, Success)
        assert seen == ["Bearer df_test_key_abcdef"]


class TestValidation:

    @pytest.mark.asyncio
    async def test_rejects_unsupported_method(self, cred):
        client = make_client(lambda request: httpx.Response(200, json={}))

        with pytest.raises(ValueError, match="Unsupported method"):
            await client.call("/api/v1/goals", "DELETE", cred)
