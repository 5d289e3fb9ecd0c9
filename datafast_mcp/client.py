"""
DataFast API Client - the single door to https://datafa.st.

Every outbound request goes through DataFastClient.call(), which never
raises for HTTP or network problems. Instead it returns an ApiOutcome:

    Success(body)              2xx with a JSON body
    HttpError(status, message) non-2xx; message from {"error": {"message"}}
                               or, failing that, the HTTP reason phrase
    NetworkError(message)      no response at all (DNS, connect, timeout)
                               or a 2xx whose body is not JSON

Each call is made exactly once. No retries, no caching, no shared pool.
"""

import logging
import sys
from typing import Any, Optional

import httpx

from datafast_mcp.config import DEFAULT_BASE_URL
from datafast_mcp.credentials import CredentialContext
from datafast_mcp.models import ApiOutcome, HttpError, NetworkError, Success

# Setup structured logging
logger = logging.getLogger("datafast_mcp.client")
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

PAYMENTS_PATH = "/api/v1/payments"
GOALS_PATH = "/api/v1/goals"
VISITORS_PATH = "/api/v1/visitors"

ALLOWED_METHODS = ("GET", "POST")


class DataFastClient:
    """Thin async wrapper over the DataFast REST API.

    Usage:
        client = DataFastClient()
        outcome = await client.call("/api/v1/goals", "POST", credential, {"name": "signup", ...})
        if isinstance(outcome, Success):
            print(outcome.body["message"])
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: API root, without trailing slash.
            timeout: Seconds before httpx gives up on connect/read/write.
            transport: Optional httpx transport (tests inject httpx.MockTransport).
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def url_for(self, path_suffix: str) -> str:
        return f"{self.base_url}{path_suffix}"

    async def call(
        self,
        path_suffix: str,
        method: str,
        credential: CredentialContext,
        body: Optional[dict] = None,
    ) -> ApiOutcome:
        """Perform one request and classify the result.

        Args:
            path_suffix: Absolute path appended to base_url, e.g. "/api/v1/goals"
            method: "GET" or "POST"
            credential: Bearer credential for the Authorization header
            body: JSON body (POST only). Sent as-is; callers drop absent fields.

        Returns:
            Success, HttpError or NetworkError. Never raises for I/O failures.
        """
        method = method.upper()
        if method not in ALLOWED_METHODS:
            raise ValueError(f"Unsupported method: {method}")

        headers = {
            "Authorization": credential.authorization_header(),
            "Accept": "application/json",
        }
        if body is not None:
            headers["Content-Type"] = "application/json"

        url = self.url_for(path_suffix)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, url, headers=headers, json=body)
        except httpx.RequestError as e:
            message = str(e) or type(e).__name__
            logger.warning(f"{method} {path_suffix} failed before a response: {message}")
            return NetworkError(message=message)

        if not response.is_success:
            message = _extract_error_message(response)
            logger.warning(f"{method} {path_suffix} -> {response.status_code}: {message}")
            return HttpError(status=response.status_code, message=message)

        try:
            payload = response.json()
        except ValueError as e:
            logger.error(f"{method} {path_suffix} -> {response.status_code} with non-JSON body")
            return NetworkError(message=f"Invalid JSON in response from DataFast API: {e}")

        logger.info(f"{method} {path_suffix} -> {response.status_code}")
        return Success(body=payload)


def _extract_error_message(response: httpx.Response) -> str:
    """Best-effort error text: {"error": {"message"}} first, then the status line."""
    try:
        data: Any = response.json()
    except ValueError:
        data = None

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])

    return response.reason_phrase or f"HTTP {response.status_code}"
