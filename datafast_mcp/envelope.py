"""
Result envelopes - what every tool hands back to the MCP client.

An envelope is a CallToolResult with text content blocks and an isError
flag. render() picks the success or failure renderer based on the
ApiOutcome; renderers are pure functions and never touch the network.
"""

from typing import Callable, Iterable, Optional

from mcp.types import CallToolResult, TextContent

from datafast_mcp.models import ApiOutcome, HttpError, NetworkError, Success

SuccessRenderer = Callable[[object], str]
FailureRenderer = Callable[[ApiOutcome], str]


def text_result(text: str, is_error: bool = False) -> CallToolResult:
    """Single text block envelope."""
    return CallToolResult(
        content=[TextContent(type="text", text=text)],
        isError=is_error,
    )


def render(
    outcome: ApiOutcome,
    on_success: SuccessRenderer,
    on_failure: Optional[FailureRenderer] = None,
) -> CallToolResult:
    """Turn an ApiOutcome into an envelope.

    isError is set exactly when the outcome is not Success.
    """
    if isinstance(outcome, Success):
        return text_result(on_success(outcome.body))

    renderer = on_failure or describe_failure
    return text_result(renderer(outcome), is_error=True)


def describe_failure(outcome: ApiOutcome) -> str:
    """'Error 404: Visitor not found' or 'Network error: ...'."""
    if isinstance(outcome, HttpError):
        return f"Error {outcome.status}: {outcome.message}"
    if isinstance(outcome, NetworkError):
        return f"Network error: {outcome.message}"
    raise TypeError(f"Not a failure outcome: {outcome!r}")


def failure_status(outcome: ApiOutcome) -> Optional[int]:
    return outcome.status if isinstance(outcome, HttpError) else None


def with_hints(text: str, hints: Iterable[str], title: str = "Common causes") -> str:
    hints = list(hints)
    if not hints:
        return text
    lines = [text, "", f"{title}:"]
    lines.extend(f"- {hint}" for hint in hints)
    return "\n".join(lines)


# =============================================================================
# Numeric formatting
# =============================================================================

def format_money(value: float) -> str:
    """Currency amounts: always two decimals. 29.99 -> '29.99', 5 -> '5.00'."""
    return f"{value:.2f}"


def format_rate(value: float) -> str:
    """Fraction as a percentage with two decimals. 0.1234 -> '12.34%'."""
    return f"{value * 100:.2f}%"


def format_confidence(value: float) -> str:
    """Fraction as a percentage with one decimal. 0.856 -> '85.6%'."""
    return f"{value * 100:.1f}%"


def format_count(value: Optional[float]) -> str:
    if value is None:
        return "Unknown"
    if float(value).is_integer():
        return str(int(value))
    return str(value)
