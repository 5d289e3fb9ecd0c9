"""
Shared test fixtures - a DataFast API that answers from a script.

StubClient stands in for DataFastClient: it records every call and replies
with pre-queued ApiOutcomes, so handler tests never touch the network.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from datafast_mcp.credentials import CredentialContext
from datafast_mcp.models import HttpError, NetworkError, Success


class StubClient:
    """Records calls; returns queued outcomes in order."""

    def __init__(self, *outcomes, base_url: str = "https://datafa.st"):
        self.base_url = base_url
        self.outcomes = list(outcomes)
        self.calls = []

    async def call(self, path_suffix, method, credential, body=None):
        self.calls.append({
            "path": path_suffix,
            "method": method,
            "credential": credential,
            "body": body,
        })
        if not self.outcomes:
            raise AssertionError(f"Unexpected API call: {method} {path_suffix}")
        return self.outcomes.pop(0)

    @property
    def call_count(self):
        return len(self.calls)


def text_of(result) -> str:
    """All text blocks of an envelope, joined."""
    return "\n".join(block.text for block in result.content)


@pytest.fixture
def credential():
    return CredentialContext(api_key="df_live_9f8e7d6c5b4a")


@pytest.fixture
def stub_client():
    """Factory: stub_client(Success(...), HttpError(...), ...)."""
    def _make(*outcomes):
        return StubClient(*outcomes)
    return _make


@pytest.fixture
def goal_ok():
    return Success(body={"message": "Goal created", "event_id": "evt_1"})


@pytest.fixture
def payment_ok():
    return Success(body={"message": "Payment recorded", "transaction_id": "txn_123"})


@pytest.fixture
def bot_visitor_error():
    return HttpError(status=400, message="Visitor is flagged as bot")


@pytest.fixture
def no_pageviews_error():
    return HttpError(status=404, message="Visitor not found")


@pytest.fixture
def network_down():
    return NetworkError(message="[Errno -2] Name or service not known")


@pytest.fixture
def visitor_payload():
    """A real-looking GET /api/v1/visitors/{id} response."""
    return {
        "status": "success",
        "data": {
            "visitorId": "3cff4252-fa96-4cec-8a8b-4e1e5a2e1a5f",
            "identity": {
                "country": "United States",
                "countryCode": "US",
                "city": "San Francisco",
                "device": {"type": "desktop"},
                "browser": {"name": "Chrome", "version": "138.0"},
                "os": {"name": "Mac OS"},
                "viewport": {"width": 1440, "height": 900},
                "params": {"ref": "producthunt"},
            },
            "activity": {
                "visitCount": 4,
                "pageViewCount": 17,
                "firstVisitAt": "2025-01-10T14:30:00.000Z",
                "timeSinceFirstVisit": 3 * 24 * 60 * 60 * 1000,
                "currentUrl": "https://example.com/pricing",
                "completedCustomGoals": [
                    {"name": "signup", "completedAt": "2025-01-11T09:00:00.000Z"},
                    {"name": "initiate_checkout", "completedAt": "2025-01-12T09:00:00.000Z"},
                ],
            },
            "prediction": {
                "score": 85,
                "conversionRate": 0.1234,
                "expectedValue": 29.99,
                "confidence": 0.856,
            },
        },
    }
