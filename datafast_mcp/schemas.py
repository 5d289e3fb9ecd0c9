"""
Tool schemas - the buttons an assistant can press.

Each tool is declared with a JSON Schema. The MCP server validates every
call against it before a handler runs, so handlers can trust required
fields, types, enum values and the metadata bounds below.

Parameter names are snake_case and match the DataFast API fields
(datafast_visitor_id, transaction_id, customer_id).
"""

from mcp.types import Tool

from datafast_mcp.guides import GUIDE_TOPICS

GOAL_NAME_PATTERN = "^[a-z0-9_-]+$"
GOAL_NAME_MAX_LENGTH = 32
METADATA_MAX_PROPERTIES = 10
METADATA_KEY_MAX_LENGTH = 32
METADATA_VALUE_MAX_LENGTH = 255
# create_revenue_goal adds revenue_amount and currency to the caller's metadata
REVENUE_GOAL_RESERVED_KEYS = ("revenue_amount", "currency")
BATCH_MAX_GOALS = 100


def _metadata_schema(max_properties: int = METADATA_MAX_PROPERTIES) -> dict:
    return {
        "type": "object",
        "maxProperties": max_properties,
        "propertyNames": {"maxLength": METADATA_KEY_MAX_LENGTH},
        "additionalProperties": {
            "type": "string",
            "maxLength": METADATA_VALUE_MAX_LENGTH,
        },
        "description": (
            f"Custom parameters to enrich your event data (max {max_properties} properties, "
            f"each max {METADATA_KEY_MAX_LENGTH} chars key, {METADATA_VALUE_MAX_LENGTH} chars value)"
        ),
    }


VISITOR_ID_PROPERTY = {
    "type": "string",
    "minLength": 1,
    "description": "The DataFast visitor ID (datafast_visitor_id cookie in the browser)",
}

GOAL_NAME_PROPERTY = {
    "type": "string",
    "pattern": GOAL_NAME_PATTERN,
    "maxLength": GOAL_NAME_MAX_LENGTH,
    "description": "Name for the goal (lowercase letters, numbers, underscores, hyphens, max 32 chars)",
}

CURRENCY_PROPERTY = {
    "type": "string",
    "minLength": 3,
    "maxLength": 3,
    "description": 'Currency code like "USD", "EUR", "GBP"',
}

AMOUNT_PROPERTY = {
    "type": "number",
    "minimum": 0,
    "description": "Payment amount (e.g., 29.99 for $29.99, 0 for free trials)",
}

GOAL_ITEM_SCHEMA = {
    "type": "object",
    "properties": {
        "datafast_visitor_id": VISITOR_ID_PROPERTY,
        "name": GOAL_NAME_PROPERTY,
        "metadata": _metadata_schema(),
    },
    "required": ["datafast_visitor_id", "name"],
    "additionalProperties": False,
}


TOOLS = [
    Tool(
        name="create_payment",
        description="""Record a payment in DataFast for revenue attribution.

Use this when a visitor pays (checkout completed, subscription renewed,
refund issued) and your payment provider isn't connected to DataFast.

The payment is attributed to the visitor's traffic source, so make sure
datafast_visitor_id comes from the same browser session that paid.""",
        inputSchema={
            "type": "object",
            "properties": {
                "amount": AMOUNT_PROPERTY,
                "currency": CURRENCY_PROPERTY,
                "transaction_id": {
                    "type": "string",
                    "minLength": 1,
                    "description": "Unique transaction ID from your payment provider",
                },
                "datafast_visitor_id": VISITOR_ID_PROPERTY,
                "email": {"type": "string", "description": "Customer email"},
                "name": {"type": "string", "description": "Customer name"},
                "customer_id": {
                    "type": "string",
                    "description": "Customer ID from your payment provider",
                },
                "renewal": {
                    "type": "boolean",
                    "default": False,
                    "description": "Set to true if it's a recurring payment",
                },
                "refunded": {
                    "type": "boolean",
                    "default": False,
                    "description": "Set to true if it's a refunded payment",
                },
                "timestamp": {
                    "type": "string",
                    "description": "Payment timestamp, ISO 8601 (defaults to now)",
                },
            },
            "required": ["amount", "currency", "transaction_id", "datafast_visitor_id"],
        },
    ),
    Tool(
        name="create_goal",
        description="""Create a custom goal (conversion event) for a visitor.

Use this to track meaningful actions: signups, demo requests, newsletter
subscriptions, feature usage. The visitor must have at least one prior
pageview, and bot-flagged visitors are rejected.""",
        inputSchema={
            "type": "object",
            "properties": {
                "datafast_visitor_id": VISITOR_ID_PROPERTY,
                "name": GOAL_NAME_PROPERTY,
                "metadata": _metadata_schema(),
            },
            "required": ["datafast_visitor_id", "name"],
        },
    ),
    Tool(
        name="get_visitor_data",
        description="""Retrieve everything DataFast knows about a visitor.

Returns location, device, traffic source, activity (visits, pageviews,
completed goals) and, when available, a conversion prediction with a
recommendation for how to approach the visitor.""",
        inputSchema={
            "type": "object",
            "properties": {
                "datafast_visitor_id": VISITOR_ID_PROPERTY,
            },
            "required": ["datafast_visitor_id"],
        },
    ),
    Tool(
        name="validate_visitor",
        description="""Check whether a visitor ID can be used for goals and payments.

Call this before create_goal or create_payment when you're unsure the ID is
real. Reports bot-flagged/malformed IDs and visitors without pageviews.""",
        inputSchema={
            "type": "object",
            "properties": {
                "datafast_visitor_id": VISITOR_ID_PROPERTY,
            },
            "required": ["datafast_visitor_id"],
        },
    ),
    Tool(
        name="batch_create_goals",
        description=f"""Create several goals in one call (max {BATCH_MAX_GOALS}).

Goals are created one by one, in order. A failing goal does not stop the
rest: check the per-goal results in the report, not just the overall status.""",
        inputSchema={
            "type": "object",
            "properties": {
                "goals": {
                    "type": "array",
                    "minItems": 1,
                    "maxItems": BATCH_MAX_GOALS,
                    "items": GOAL_ITEM_SCHEMA,
                    "description": "Goals to create, each with datafast_visitor_id, name and optional metadata",
                },
            },
            "required": ["goals"],
        },
    ),
    Tool(
        name="create_revenue_goal",
        description="""Create a goal that also records revenue.

Creates the goal first (with revenue_amount and currency in its metadata),
then records a payment with a generated transaction ID
(goal_<goal_name>_<timestamp>). If the goal fails, no payment is recorded.
If only the payment fails, the goal still counts and the result says so.""",
        inputSchema={
            "type": "object",
            "properties": {
                "datafast_visitor_id": VISITOR_ID_PROPERTY,
                "goal_name": GOAL_NAME_PROPERTY,
                "amount": AMOUNT_PROPERTY,
                "currency": CURRENCY_PROPERTY,
                "metadata": _metadata_schema(
                    METADATA_MAX_PROPERTIES - len(REVENUE_GOAL_RESERVED_KEYS)
                ),
            },
            "required": ["datafast_visitor_id", "goal_name", "amount", "currency"],
        },
    ),
    Tool(
        name="get_integration_guide",
        description="""Get copy-paste snippets for integrating DataFast.

Topics:
- tracking_script: install the DataFast tracking script
- custom_goals_js: fire goals from the browser
- goals_api: create goals from your backend
- payments_api: record payments from your backend
- stripe_checkout: pass the visitor ID through Stripe Checkout""",
        inputSchema={
            "type": "object",
            "properties": {
                "topic": {
                    "type": "string",
                    "enum": list(GUIDE_TOPICS),
                    "description": "Which integration guide to return",
                },
            },
            "required": ["topic"],
        },
    ),
]

TOOL_NAMES = [tool.name for tool in TOOLS]


def get_tool(name: str) -> Tool | None:
    for tool in TOOLS:
        if tool.name == name:
            return tool
    return None
