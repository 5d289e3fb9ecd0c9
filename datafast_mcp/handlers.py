"""
Tool Handlers - What happens when the assistant presses a button.

Every handler has the same shape:

    async def handler(arguments, credential, client) -> CallToolResult

arguments are already validated against the tool's schema, so required
fields are present and typed. Handlers turn ApiOutcomes into envelopes and
never let an HTTP or network failure escape as an exception.

Envelope flag policy:
- single-call tools: isError iff the API call failed
- batch_create_goals: never isError; per-goal results carry the failures
- create_revenue_goal: isError only if the goal itself failed; a failed
  revenue payment after a successful goal is reported in the text
"""

import logging
import math
import sys
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import quote

from mcp.types import CallToolResult

from datafast_mcp.client import GOALS_PATH, PAYMENTS_PATH, VISITORS_PATH, DataFastClient
from datafast_mcp.credentials import CredentialContext
from datafast_mcp.envelope import (
    describe_failure,
    failure_status,
    format_confidence,
    format_count,
    format_money,
    format_rate,
    render,
    text_result,
    with_hints,
)
from datafast_mcp.guides import get_guide
from datafast_mcp.models import (
    ApiOutcome,
    GoalResult,
    Success,
    VisitorActivity,
    VisitorIdentity,
    VisitorPrediction,
    VisitorRecord,
    parse_visitor_response,
)

# Setup structured logging
logger = logging.getLogger("datafast_mcp.handlers")
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

Handler = Callable[[dict, CredentialContext, DataFastClient], Awaitable[CallToolResult]]

LOW_SCORE_THRESHOLD = 30
HIGH_SCORE_THRESHOLD = 70
MS_PER_DAY = 1000 * 60 * 60 * 24

PAYMENT_HINTS = [
    "Duplicate transaction_id (each payment must have a unique ID)",
    "Invalid currency code (use a 3-letter ISO code like USD, EUR, GBP)",
    "Missing required field (amount, currency, transaction_id, datafast_visitor_id)",
    "Invalid or unknown datafast_visitor_id",
]

NETWORK_HINT = "Could not reach the DataFast API. Check connectivity and try again."

LOW_CONVERSION_TEXT = (
    "💡 Recommendation: Low conversion likelihood. Nurture this visitor with "
    "educational content before pitching an offer."
)
HIGH_CONVERSION_TEXT = (
    "💡 Recommendation: High conversion likelihood! This visitor is a strong "
    "candidate for a targeted offer or personal outreach."
)
PREDICTION_UNAVAILABLE_TEXT = (
    "🎯 Prediction: Not available (visitor might be a customer or revenue "
    "attribution isn't set up)"
)


def _goal_failure_note(status: Optional[int]) -> Optional[str]:
    if status == 400:
        return "Note: This might be because the visitor is bot-flagged or has no pageviews"
    if status == 404:
        return "Note: This might be because the visitor has no prior pageviews"
    return None


def _goal_failure_text(outcome: ApiOutcome) -> str:
    text = describe_failure(outcome)
    note = _goal_failure_note(failure_status(outcome))
    if note:
        text += f" ({note})"
    elif failure_status(outcome) is None:
        text += f"\n\n{NETWORK_HINT}"
    return text


def _render_goal_failure(outcome: ApiOutcome) -> str:
    return f"❌ {_goal_failure_text(outcome)}"


async def _post_goal(
    client: DataFastClient,
    credential: CredentialContext,
    visitor_id: str,
    name: str,
    metadata: Optional[dict] = None,
) -> ApiOutcome:
    body: dict[str, Any] = {"datafast_visitor_id": visitor_id, "name": name}
    if metadata:
        body["metadata"] = metadata
    return await client.call(GOALS_PATH, "POST", credential, body)


async def _get_visitor(
    client: DataFastClient,
    credential: CredentialContext,
    visitor_id: str,
) -> ApiOutcome:
    return await client.call(f"{VISITORS_PATH}/{quote(visitor_id, safe='')}", "GET", credential)


# =============================================================================
# create_payment
# =============================================================================

def build_payment_body(arguments: dict) -> dict:
    """Outbound body for POST /api/v1/payments.

    Optional fields are omitted entirely when absent, never sent as null.
    Empty strings count as absent. renewal and refunded default to False
    and are always sent.
    """
    body: dict[str, Any] = {
        "amount": arguments["amount"],
        "currency": arguments["currency"],
        "transaction_id": arguments["transaction_id"],
        "datafast_visitor_id": arguments["datafast_visitor_id"],
    }
    for key in ("email", "name", "customer_id", "timestamp"):
        if arguments.get(key):
            body[key] = arguments[key]
    for key in ("renewal", "refunded"):
        body[key] = bool(arguments.get(key))
    return body


async def create_payment(
    arguments: dict,
    credential: CredentialContext,
    client: DataFastClient,
) -> CallToolResult:
    body = build_payment_body(arguments)
    logger.info(f"[create_payment] transaction={body['transaction_id']} "
                f"amount={format_money(body['amount'])} {body['currency']}")

    outcome = await client.call(PAYMENTS_PATH, "POST", credential, body)

    def on_success(result: Any) -> str:
        result = result if isinstance(result, dict) else {}
        return (
            "✅ Payment recorded successfully!\n"
            f"Message: {result.get('message', 'N/A')}\n"
            f"Transaction ID: {result.get('transaction_id') or body['transaction_id']}\n"
            f"Amount: {format_money(body['amount'])} {body['currency']}"
        )

    def on_failure(failed: ApiOutcome) -> str:
        hints = PAYMENT_HINTS if failure_status(failed) is not None else [NETWORK_HINT]
        return with_hints(f"❌ {describe_failure(failed)}", hints)

    return render(outcome, on_success, on_failure)


# =============================================================================
# create_goal
# =============================================================================

def _render_goal_success(result: Any) -> str:
    result = result if isinstance(result, dict) else {}
    return (
        "✅ Goal created successfully!\n"
        f"Message: {result.get('message', 'N/A')}\n"
        f"Event ID: {result.get('event_id') or 'N/A'}"
    )


async def create_goal(
    arguments: dict,
    credential: CredentialContext,
    client: DataFastClient,
) -> CallToolResult:
    visitor_id = arguments["datafast_visitor_id"]
    name = arguments["name"]
    logger.info(f"[create_goal] goal={name} visitor={visitor_id}")

    outcome = await _post_goal(client, credential, visitor_id, name, arguments.get("metadata"))
    return render(outcome, _render_goal_success, _render_goal_failure)


# =============================================================================
# get_visitor_data
# =============================================================================

def _or_unknown(value: Any) -> str:
    return "Unknown" if value is None else str(value)


def _format_first_visit(value: Any) -> str:
    if value is None:
        return "Unknown"
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            moment = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return str(value)
        return moment.strftime("%Y-%m-%d %H:%M:%S UTC")
    try:
        moment = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return str(value)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
        return moment.strftime("%Y-%m-%d %H:%M:%S UTC")
    return moment.strftime("%Y-%m-%d %H:%M:%S")


def _render_identity(identity: VisitorIdentity) -> list[str]:
    location = f"{_or_unknown(identity.city)}, {_or_unknown(identity.country)}"
    if identity.country_code:
        location += f" ({identity.country_code})"

    browser = " ".join(p for p in (identity.browser_name, identity.browser_version) if p) or "Unknown browser"
    device = f"{_or_unknown(identity.device_type)} - {browser} on {_or_unknown(identity.os_name)}"

    lines = [f"🌍 Location: {location}", f"🖥️ Device: {device}"]
    if identity.viewport_width is not None and identity.viewport_height is not None:
        lines.append(
            f"📐 Viewport: {format_count(identity.viewport_width)}x{format_count(identity.viewport_height)}"
        )
    if identity.traffic_source:
        lines.append(f"🔗 Traffic Source: {identity.traffic_source}")
    return lines


def _render_activity(activity: VisitorActivity) -> list[str]:
    lines = [
        "📈 Activity:",
        f"   • Visits: {format_count(activity.visit_count)}",
        f"   • Pageviews: {format_count(activity.pageview_count)}",
        f"   • First visit: {_format_first_visit(activity.first_visit_at)}",
    ]
    if activity.time_since_first_visit_ms is not None:
        days = math.floor(activity.time_since_first_visit_ms / MS_PER_DAY + 0.5)
        lines.append(f"   • Time since first visit: {days} days")
    if activity.current_url:
        lines.append(f"   • Current URL: {activity.current_url}")
    if activity.completed_goals:
        lines.append(f"   • Completed goals: {', '.join(activity.completed_goals)}")
    return lines


def conversion_recommendation(score: Optional[float]) -> Optional[str]:
    """Qualitative advice from the prediction score (0-100)."""
    if score is None:
        return None
    if score < LOW_SCORE_THRESHOLD:
        return LOW_CONVERSION_TEXT
    if score > HIGH_SCORE_THRESHOLD:
        return HIGH_CONVERSION_TEXT
    return None


def _render_prediction(prediction: Optional[VisitorPrediction]) -> list[str]:
    if prediction is None:
        return [PREDICTION_UNAVAILABLE_TEXT]

    lines = ["🎯 Prediction:"]
    if prediction.score is not None:
        lines.append(f"   • Conversion score: {format_count(prediction.score)}/100")
    if prediction.conversion_rate is not None:
        lines.append(f"   • Conversion rate: {format_rate(prediction.conversion_rate)}")
    if prediction.expected_value is not None:
        lines.append(f"   • Expected value: ${format_money(prediction.expected_value)}")
    if prediction.confidence is not None:
        lines.append(f"   • Confidence: {format_confidence(prediction.confidence)}")

    recommendation = conversion_recommendation(prediction.score)
    if recommendation:
        lines.append("")
        lines.append(recommendation)
    return lines


def render_visitor(visitor: VisitorRecord) -> str:
    """Full human-readable visitor report."""
    lines = [f"📊 Visitor Data for ID: {visitor.visitor_id}", ""]
    if visitor.identity is not None:
        lines.extend(_render_identity(visitor.identity))
        lines.append("")
    if visitor.activity is not None:
        lines.extend(_render_activity(visitor.activity))
        lines.append("")
    lines.extend(_render_prediction(visitor.prediction))
    return "\n".join(lines)


def _render_visitor_failure(outcome: ApiOutcome) -> str:
    text = f"❌ {describe_failure(outcome)}"
    status = failure_status(outcome)
    if status == 400:
        text += " (Note: This might be because the visitor is detected as a bot)"
    elif status == 404:
        text += " (Note: This visitor has no pageviews yet)"
    elif status is None:
        text += f"\n\n{NETWORK_HINT}"
    return text


async def get_visitor_data(
    arguments: dict,
    credential: CredentialContext,
    client: DataFastClient,
) -> CallToolResult:
    visitor_id = arguments["datafast_visitor_id"]
    logger.info(f"[get_visitor_data] visitor={visitor_id}")

    outcome = await _get_visitor(client, credential, visitor_id)

    def on_success(body: Any) -> str:
        visitor = parse_visitor_response(body, fallback_id=visitor_id)
        if visitor is None:
            logger.warning(f"[get_visitor_data] unexpected response shape for visitor={visitor_id}")
            return "Unexpected response format from DataFast API"
        return render_visitor(visitor)

    return render(outcome, on_success, _render_visitor_failure)


# =============================================================================
# validate_visitor
# =============================================================================

async def validate_visitor(
    arguments: dict,
    credential: CredentialContext,
    client: DataFastClient,
) -> CallToolResult:
    visitor_id = arguments["datafast_visitor_id"]
    logger.info(f"[validate_visitor] visitor={visitor_id}")

    outcome = await _get_visitor(client, credential, visitor_id)

    def on_success(_body: Any) -> str:
        return f"✅ Visitor {visitor_id} is valid and can be used for goals and payments."

    def on_failure(failed: ApiOutcome) -> str:
        status = failure_status(failed)
        if status == 400:
            reason = "detected as a bot or malformed ID"
        elif status == 404:
            reason = "no pageviews yet"
        elif status is None:
            return f"❌ Could not validate visitor {visitor_id}: {describe_failure(failed)}\n\n{NETWORK_HINT}"
        else:
            reason = "validation failed"
        return f"❌ Visitor {visitor_id} is invalid: {reason} ({describe_failure(failed)})"

    return render(outcome, on_success, on_failure)


# =============================================================================
# batch_create_goals
# =============================================================================

def _goal_success_message(body: Any) -> str:
    body = body if isinstance(body, dict) else {}
    message = body.get("message") or "Goal created"
    if body.get("event_id"):
        message += f" (event {body['event_id']})"
    return message


def render_batch_report(results: list[GoalResult]) -> str:
    successful = sum(1 for r in results if r.success)
    failed = len(results) - successful

    lines = [
        "📦 Batch goal creation complete",
        f"Total: {len(results)}",
        f"✅ Successful: {successful}",
        f"❌ Failed: {failed}",
        "",
    ]
    for i, result in enumerate(results, 1):
        marker = "✅" if result.success else "❌"
        detail = result.message if result.success else result.error
        lines.append(f"{i}. {marker} {result.goal_name} (visitor {result.visitor_id}): {detail}")
    return "\n".join(lines)


async def batch_create_goals(
    arguments: dict,
    credential: CredentialContext,
    client: DataFastClient,
) -> CallToolResult:
    goals = arguments["goals"]
    logger.info(f"[batch_create_goals] {len(goals)} goals")

    results: list[GoalResult] = []
    # Sequential and in order; one failure never stops the rest
    for goal in goals:
        visitor_id = goal["datafast_visitor_id"]
        name = goal["name"]
        outcome = await _post_goal(client, credential, visitor_id, name, goal.get("metadata"))
        if isinstance(outcome, Success):
            results.append(GoalResult(
                goal_name=name,
                visitor_id=visitor_id,
                success=True,
                message=_goal_success_message(outcome.body),
            ))
        else:
            error = describe_failure(outcome)
            note = _goal_failure_note(failure_status(outcome))
            results.append(GoalResult(
                goal_name=name,
                visitor_id=visitor_id,
                success=False,
                error=f"{error} ({note})" if note else error,
            ))

    failed = sum(1 for r in results if not r.success)
    if failed:
        logger.warning(f"[batch_create_goals] {failed}/{len(results)} goals failed")

    return text_result(render_batch_report(results))


# =============================================================================
# create_revenue_goal
# =============================================================================

def revenue_transaction_id(goal_name: str, now_ms: Optional[int] = None) -> str:
    """goal_<goal_name>_<epoch ms>: unique without caller input."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"goal_{goal_name}_{now_ms}"


async def create_revenue_goal(
    arguments: dict,
    credential: CredentialContext,
    client: DataFastClient,
) -> CallToolResult:
    visitor_id = arguments["datafast_visitor_id"]
    goal_name = arguments["goal_name"]
    amount = arguments["amount"]
    currency = arguments["currency"]
    amount_text = format_money(amount)

    metadata = {
        "revenue_amount": amount_text,
        "currency": currency,
        **(arguments.get("metadata") or {}),
    }

    logger.info(f"[create_revenue_goal] goal={goal_name} visitor={visitor_id} amount={amount_text} {currency}")
    goal_outcome = await _post_goal(client, credential, visitor_id, goal_name, metadata)

    if not isinstance(goal_outcome, Success):
        text = f"❌ Revenue goal creation failed: {_goal_failure_text(goal_outcome)}"
        text += "\n\nNo revenue was recorded."
        return text_result(text, is_error=True)

    goal_body = goal_outcome.body if isinstance(goal_outcome.body, dict) else {}
    lines = [
        "✅ Revenue goal created successfully!",
        f"Goal: {goal_name}",
        f"Message: {goal_body.get('message', 'N/A')}",
        f"Event ID: {goal_body.get('event_id') or 'N/A'}",
        "",
    ]

    transaction_id = revenue_transaction_id(goal_name)
    payment_outcome = await client.call(PAYMENTS_PATH, "POST", credential, {
        "amount": amount,
        "currency": currency,
        "transaction_id": transaction_id,
        "datafast_visitor_id": visitor_id,
        "renewal": False,
        "refunded": False,
    })

    if isinstance(payment_outcome, Success):
        lines.append(f"💰 Revenue tracking: recorded {amount_text} {currency} (transaction {transaction_id})")
    else:
        logger.warning(f"[create_revenue_goal] goal created but payment failed: {describe_failure(payment_outcome)}")
        lines.append(f"⚠️ Revenue tracking failed: {describe_failure(payment_outcome)}")
        lines.append(
            f"The goal was recorded, but {amount_text} {currency} was not attributed. "
            "Record it with create_payment once the issue is fixed."
        )

    # The goal is the primary intent: a failed payment never flips isError
    return text_result("\n".join(lines))


# =============================================================================
# get_integration_guide
# =============================================================================

async def get_integration_guide(
    arguments: dict,
    credential: CredentialContext,
    client: DataFastClient,
) -> CallToolResult:
    return text_result(get_guide(arguments["topic"], client.base_url))


# =============================================================================
# Dispatch
# =============================================================================

TOOL_HANDLERS: dict[str, Handler] = {
    "create_payment": create_payment,
    "create_goal": create_goal,
    "get_visitor_data": get_visitor_data,
    "validate_visitor": validate_visitor,
    "batch_create_goals": batch_create_goals,
    "create_revenue_goal": create_revenue_goal,
    "get_integration_guide": get_integration_guide,
}

# Tools that never reach the DataFast API and so need no credential
OFFLINE_TOOLS = {"get_integration_guide"}


async def dispatch(
    name: str,
    arguments: dict,
    credential: Optional[CredentialContext],
    client: DataFastClient,
) -> CallToolResult:
    """Route a validated tool call to its handler."""
    handler = TOOL_HANDLERS.get(name)
    if handler is None:
        return text_result(f"Unknown tool: {name}", is_error=True)

    if credential is None and name not in OFFLINE_TOOLS:
        return text_result(
            "❌ No DataFast API key for this session. Connect with ?api_key=your_api_key "
            "(HTTP) or set DATAFAST_API_KEY (stdio).",
            is_error=True,
        )

    return await handler(arguments or {}, credential, client)
