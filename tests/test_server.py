"""
Server-level tests: tool catalog, schemas, dispatch and credentials.

Schemas are checked with jsonschema, the same validator the MCP SDK runs
before a handler is reached.
"""

from unittest.mock import AsyncMock, patch

import jsonschema
import pytest

from conftest import StubClient, text_of
from datafast_mcp.credentials import CredentialContext, current_credential, use_credential
from datafast_mcp.guides import GUIDE_TOPICS, get_guide
from datafast_mcp.handlers import TOOL_HANDLERS, dispatch
from datafast_mcp.models import Success
from datafast_mcp.schemas import TOOL_NAMES, TOOLS, get_tool

EXPECTED_TOOLS = {
    "create_payment",
    "create_goal",
    "get_visitor_data",
    "validate_visitor",
    "batch_create_goals",
    "create_revenue_goal",
    "get_integration_guide",
}


def valid(tool_name, arguments) -> bool:
    try:
        jsonschema.validate(instance=arguments, schema=get_tool(tool_name).inputSchema)
    except jsonschema.ValidationError:
        return False
    return True


class TestCatalog:

    def test_every_tool_listed_once(self):
        assert set(TOOL_NAMES) == EXPECTED_TOOLS
        assert len(TOOL_NAMES) == len(EXPECTED_TOOLS)

    def test_every_tool_has_a_handler(self):
        assert set(TOOL_HANDLERS) == EXPECTED_TOOLS

    def test_schemas_are_objects_with_required(self):
        for tool in TOOLS:
            assert tool.inputSchema["type"] == "object"
            assert tool.inputSchema["required"], tool.name
            jsonschema.Draft202012Validator.check_schema(tool.inputSchema)

    @pytest.mark.asyncio
    async def test_list_tools(self):
        from datafast_mcp.server import list_tools

        tools = await list_tools()
        assert {t.name for t in tools} == EXPECTED_TOOLS


class TestSchemaValidation:
    """Things the SDK rejects before dispatch."""

    def test_payment_requires_core_fields(self):
        assert valid("create_payment", {
            "amount": 29.99, "currency": "USD", "transaction_id": "t1", "datafast_visitor_id": "v1",
        })
        assert not valid("create_payment", {"amount": 29.99, "currency": "USD", "transaction_id": "t1"})
        assert not valid("create_payment", {
            "amount": "29.99", "currency": "USD", "transaction_id": "t1", "datafast_visitor_id": "v1",
        })

    def test_currency_is_three_letters(self):
        base = {"amount": 1, "transaction_id": "t1", "datafast_visitor_id": "v1"}
        assert valid("create_payment", {**base, "currency": "EUR"})
        assert not valid("create_payment", {**base, "currency": "EURO"})

    def test_goal_name_rules(self):
        assert valid("create_goal", {"datafast_visitor_id": "v1", "name": "signup_2-b"})
        assert not valid("create_goal", {"datafast_visitor_id": "v1", "name": "SignUp"})
        assert not valid("create_goal", {"datafast_visitor_id": "v1", "name": "sign up"})
        assert not valid("create_goal", {"datafast_visitor_id": "v1", "name": "x" * 33})
        assert valid("create_goal", {"datafast_visitor_id": "v1", "name": "x" * 32})

    def test_metadata_bounds(self):
        base = {"datafast_visitor_id": "v1", "name": "signup"}
        ten = {f"k{i}": "v" for i in range(10)}
        assert valid("create_goal", {**base, "metadata": ten})
        assert not valid("create_goal", {**base, "metadata": {**ten, "k10": "v"}})
        assert not valid("create_goal", {**base, "metadata": {"plan": 3}})
        assert not valid("create_goal", {**base, "metadata": {"k" * 33: "v"}})
        assert not valid("create_goal", {**base, "metadata": {"k": "v" * 256}})

    def test_revenue_goal_reserves_two_metadata_slots(self):
        base = {"datafast_visitor_id": "v1", "goal_name": "upgrade", "amount": 10, "currency": "USD"}
        assert valid("create_revenue_goal", {**base, "metadata": {f"k{i}": "v" for i in range(8)}})
        assert not valid("create_revenue_goal", {**base, "metadata": {f"k{i}": "v" for i in range(9)}})

    def test_batch_items(self):
        assert valid("batch_create_goals", {"goals": [{"datafast_visitor_id": "v1", "name": "signup"}]})
        assert not valid("batch_create_goals", {"goals": []})
        assert not valid("batch_create_goals", {"goals": [{"datafast_visitor_id": "v1"}]})

    def test_guide_topic_enum(self):
        assert valid("get_integration_guide", {"topic": "payments_api"})
        assert not valid("get_integration_guide", {"topic": "everything"})


class TestDispatch:

    @pytest.mark.asyncio
    async def test_routes_to_handler(self, credential):
        client = StubClient(Success(body={"message": "ok", "event_id": "e1"}))

        result = await dispatch("create_goal", {"datafast_visitor_id": "v1", "name": "signup"}, credential, client)

        assert result.isError is False
        assert client.calls[0]["credential"] is credential

    @pytest.mark.asyncio
    async def test_unknown_tool(self, credential):
        client = StubClient()

        result = await dispatch("delete_everything", {}, credential, client)

        assert result.isError is True
        assert text_of(result) == "Unknown tool: delete_everything"
        assert client.call_count == 0

    @pytest.mark.asyncio
    async def test_missing_credential_makes_no_call(self):
        client = StubClient()

        result = await dispatch("get_visitor_data", {"datafast_visitor_id": "v1"}, None, client)

        assert result.isError is True
        assert "api_key" in text_of(result)
        assert client.call_count == 0

    @pytest.mark.asyncio
    async def test_guide_works_without_credential(self):
        client = StubClient()

        result = await dispatch("get_integration_guide", {"topic": "goals_api"}, None, client)

        assert result.isError is False
        assert "https://datafa.st/api/v1/goals" in text_of(result)
        assert client.call_count == 0


class TestCallTool:
    """The MCP-facing entry point."""

    @pytest.mark.asyncio
    async def test_uses_session_credential(self):
        from datafast_mcp import server

        fake_dispatch = AsyncMock(return_value=server.CallToolResult(content=[], isError=False))
        session_key = CredentialContext(api_key="df_session_key_1234")

        with patch.object(server, "dispatch", fake_dispatch), \
                patch.object(server, "get_client", return_value=StubClient()):
            with use_credential(session_key):
                await server.call_tool("validate_visitor", {"datafast_visitor_id": "v1"})

        name, arguments, credential, _client = fake_dispatch.call_args.args
        assert name == "validate_visitor"
        assert arguments == {"datafast_visitor_id": "v1"}
        assert credential is session_key

    @pytest.mark.asyncio
    async def test_no_session_no_credential(self):
        from datafast_mcp import server

        with patch.object(server, "get_client", return_value=StubClient()):
            result = await server.call_tool("create_goal", {"datafast_visitor_id": "v1", "name": "signup"})

        assert result.isError is True


class TestCredentialContext:

    def test_repr_hides_key(self):
        cred = CredentialContext(api_key="df_live_supersecret_9876")

        assert "supersecret" not in repr(cred)
        assert "supersecret" not in str(cred)
        assert repr(cred).endswith("****9876)")

    def test_header(self):
        assert CredentialContext(api_key="abc").authorization_header() == "Bearer abc"

    def test_empty_key_rejected(self):
        with pytest.raises(ValueError):
            CredentialContext(api_key="  ")

    def test_binding_is_scoped(self):
        cred = CredentialContext(api_key="df_scoped_key_0000")
        assert current_credential() is None
        with use_credential(cred):
            assert current_credential() is cred
        assert current_credential() is None


class TestGuides:

    def test_every_topic_renders(self):
        for topic in GUIDE_TOPICS:
            text = get_guide(topic, "https://datafa.st")
            assert text.strip()
            assert "$base_url" not in text

    def test_base_url_substituted(self):
        text = get_guide("payments_api", "https://staging.datafa.st/")

        assert "https://staging.datafa.st/api/v1/payments" in text

    def test_unknown_topic(self):
        with pytest.raises(ValueError, match="Unknown guide topic"):
            get_guide("everything", "https://datafa.st")
