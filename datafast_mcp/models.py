"""
Data models - what comes back from the DataFast API.

ApiOutcome is a tagged union: every client call yields exactly one of
Success, HttpError or NetworkError. Visitor responses are parsed into
dataclasses whose fields are all Optional; DataFast omits whole sections
(no prediction for existing customers, no identity for some imports) and
renderers must cope.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union


@dataclass(frozen=True)
class Success:
    """2xx response with a parsed JSON body."""

    body: Any

    ok = True


@dataclass(frozen=True)
class HttpError:
    """Non-2xx response. message is best-effort (error.message or reason phrase)."""

    status: int
    message: str

    ok = False


@dataclass(frozen=True)
class NetworkError:
    """No usable HTTP response: DNS, connect, timeout, or unparseable 2xx body."""

    message: str

    ok = False


ApiOutcome = Union[Success, HttpError, NetworkError]


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _as_number(value: Any) -> Optional[float]:
    # bool is an int subclass; never treat it as a metric
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _as_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


@dataclass
class VisitorIdentity:
    city: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None
    device_type: Optional[str] = None
    browser_name: Optional[str] = None
    browser_version: Optional[str] = None
    os_name: Optional[str] = None
    viewport_width: Optional[float] = None
    viewport_height: Optional[float] = None
    traffic_source: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict) -> "VisitorIdentity":
        device = _as_dict(data.get("device"))
        browser = _as_dict(data.get("browser"))
        os_info = _as_dict(data.get("os"))
        viewport = _as_dict(data.get("viewport"))

        traffic_source = None
        params = data.get("params")
        if isinstance(params, dict):
            traffic_source = _as_str(params.get("ref")) or _as_str(params.get("utm_source")) or "Direct"

        return cls(
            city=_as_str(data.get("city")),
            country=_as_str(data.get("country")),
            country_code=_as_str(data.get("countryCode")),
            device_type=_as_str(device.get("type")),
            browser_name=_as_str(browser.get("name")),
            browser_version=_as_str(browser.get("version")),
            os_name=_as_str(os_info.get("name")),
            viewport_width=_as_number(viewport.get("width")),
            viewport_height=_as_number(viewport.get("height")),
            traffic_source=traffic_source,
        )


@dataclass
class VisitorActivity:
    visit_count: Optional[float] = None
    pageview_count: Optional[float] = None
    first_visit_at: Any = None
    time_since_first_visit_ms: Optional[float] = None
    current_url: Optional[str] = None
    completed_goals: list[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict) -> "VisitorActivity":
        goals = []
        for goal in data.get("completedCustomGoals") or []:
            if isinstance(goal, dict) and goal.get("name"):
                goals.append(str(goal["name"]))
            elif isinstance(goal, str):
                goals.append(goal)

        return cls(
            visit_count=_as_number(data.get("visitCount")),
            pageview_count=_as_number(data.get("pageViewCount")),
            first_visit_at=data.get("firstVisitAt"),
            time_since_first_visit_ms=_as_number(data.get("timeSinceFirstVisit")),
            current_url=_as_str(data.get("currentUrl")),
            completed_goals=goals,
        )


@dataclass
class VisitorPrediction:
    score: Optional[float] = None
    conversion_rate: Optional[float] = None
    expected_value: Optional[float] = None
    confidence: Optional[float] = None

    @classmethod
    def from_api(cls, data: dict) -> "VisitorPrediction":
        return cls(
            score=_as_number(data.get("score")),
            conversion_rate=_as_number(data.get("conversionRate")),
            expected_value=_as_number(data.get("expectedValue")),
            confidence=_as_number(data.get("confidence")),
        )


@dataclass
class VisitorRecord:
    """Visitor as returned by GET /api/v1/visitors/{id} (the `data` object)."""

    visitor_id: str
    identity: Optional[VisitorIdentity] = None
    activity: Optional[VisitorActivity] = None
    prediction: Optional[VisitorPrediction] = None

    @classmethod
    def from_api(cls, data: dict, fallback_id: str = "") -> "VisitorRecord":
        identity = data.get("identity")
        activity = data.get("activity")
        prediction = data.get("prediction")
        return cls(
            visitor_id=_as_str(data.get("visitorId")) or fallback_id,
            identity=VisitorIdentity.from_api(identity) if isinstance(identity, dict) else None,
            activity=VisitorActivity.from_api(activity) if isinstance(activity, dict) else None,
            prediction=VisitorPrediction.from_api(prediction) if isinstance(prediction, dict) else None,
        )


def parse_visitor_response(body: Any, fallback_id: str = "") -> Optional[VisitorRecord]:
    """Extract the visitor from a {status, data} envelope.

    Returns None unless status == "success" and data is an object.
    """
    if not isinstance(body, dict):
        return None
    data = body.get("data")
    if body.get("status") != "success" or not isinstance(data, dict):
        return None
    return VisitorRecord.from_api(data, fallback_id=fallback_id)


@dataclass
class GoalResult:
    """Outcome of one item in a batch goal request."""

    goal_name: str
    visitor_id: str
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
