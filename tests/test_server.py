"""Tests for the AnalyticsMcp entry point."""

import json
from unittest.mock import MagicMock, patch

import pytest

from mcp_analytics import AnalyticsMcp
from mcp_analytics.client import AnalyticsClient
from mcp_analytics.config import AnalyticsConfig
from mcp_analytics.exceptions import ConfigurationError
from mcp_analytics.schema import PaymentRequiredEvent, ToolCompletedEvent

CHECKOUT = {
    "mode": "payment",
    "line_items": [{"price": "price_1", "quantity": 1}],
    "success_url": "https://example.com/success",
}


class FakeServer:
    """Minimal tool host that records registrations."""

    def __init__(self, name="Fake Server"):
        self.name = name
        self.tools = {}

    def tool(self, name, description, params_schema, callback):
        self.tools[name] = (description, params_schema, callback)


def _config(**kwargs) -> AnalyticsConfig:
    defaults = {"api_key": "test-key", "flush_interval": 0, "stripe_secret_key": "sk_test_1"}
    defaults.update(kwargs)
    return AnalyticsConfig(**defaults)


@pytest.fixture
def shared_client():
    client = MagicMock(spec=AnalyticsClient)
    with patch.object(AnalyticsClient, "from_config", return_value=client) as factory:
        yield client, factory


def _stripe_client(sessions=None) -> MagicMock:
    stripe_client = MagicMock()
    stripe_client.customers.list.return_value = {
        "data": [{"id": "cus_1", "email": "payer@example.com"}]
    }
    stripe_client.checkout.sessions.list.return_value = {"data": sessions or []}
    stripe_client.checkout.sessions.create.return_value = {"url": "https://pay.example/cs"}
    stripe_client.subscriptions.list.return_value = {"data": []}
    return stripe_client


def add(args, extra):
    """Add two numbers."""
    return {"content": [{"type": "text", "text": str(args["a"] + args["b"])}]}


class TestFreeTools:
    def test_tools_share_one_client(self, shared_client):
        client, factory = shared_client
        server = FakeServer()
        analytics = AnalyticsMcp(server, config=_config())

        analytics.analytics_tool("add", "Add", {"a": int, "b": int}, add)
        analytics.analytics_tool("add_again", "Add", {}, add)

        assert factory.call_count == 1
        server.tools["add"][2]({"a": 1, "b": 2}, None)
        server.tools["add_again"][2]({"a": 3, "b": 4}, None)
        assert client.queue_event.call_count == 2
        event = client.queue_event.call_args_list[0].args[0]
        assert isinstance(event, ToolCompletedEvent)
        assert event.server_name == "Fake Server"

    def test_without_api_key_registers_original_callback(self, shared_client):
        _, factory = shared_client
        server = FakeServer()
        analytics = AnalyticsMcp(server, config=_config(api_key=None))

        handler = analytics.analytics_tool("add", "Add", {}, add)

        assert handler is add
        assert server.tools["add"][2] is add
        factory.assert_not_called()

    def test_client_failure_falls_back_to_passthrough(self):
        server = FakeServer()
        analytics = AnalyticsMcp(server, config=_config())
        with patch.object(AnalyticsClient, "from_config", side_effect=RuntimeError("boom")):
            handler = analytics.analytics_tool("add", "Add", {}, add)
        assert handler is add

    def test_decorator_form_uses_function_metadata(self, shared_client):
        server = FakeServer()
        analytics = AnalyticsMcp(server, config=_config())

        @analytics.tool()
        def multiply(args, extra):
            """Multiply two numbers."""
            return args["a"] * args["b"]

        description, schema, handler = server.tools["multiply"]
        assert description == "Multiply two numbers."
        assert schema == {}
        assert handler({"a": 2, "b": 3}, None) == 6

    def test_track_results_per_tool(self, shared_client):
        client, _ = shared_client
        server = FakeServer()
        analytics = AnalyticsMcp(server, config=_config())
        analytics.analytics_tool("add", "Add", {}, add, track_results=False)

        server.tools["add"][2]({"a": 1, "b": 1}, None)

        assert client.queue_event.call_args.args[0].result is None
        assert analytics.config.track_results is True

    def test_props_feed_user_identity(self, shared_client):
        client, _ = shared_client
        server = FakeServer()
        analytics = AnalyticsMcp(
            server, config=_config(), props={"sub": "user-7", "email": "u@x.io"}
        )
        analytics.analytics_tool("add", "Add", {}, add)

        server.tools["add"][2]({"a": 1, "b": 1}, None)

        event = client.queue_event.call_args.args[0]
        assert event.user_id == "user-7"
        assert event.email == "u@x.io"

    def test_shutdown_destroys_client(self, shared_client):
        client, _ = shared_client
        analytics = AnalyticsMcp(FakeServer(), config=_config())
        analytics.analytics_tool("add", "Add", {}, add)

        analytics.shutdown()

        client.destroy.assert_called_once()

    def test_shutdown_without_client(self):
        AnalyticsMcp(FakeServer(), config=_config(api_key=None)).shutdown()


class TestPaidTools:
    def test_email_taken_from_props(self, shared_client):
        client, _ = shared_client
        server = FakeServer()
        analytics = AnalyticsMcp(
            server, config=_config(), props={"userEmail": "payer@example.com"}
        )
        stripe_client = _stripe_client()

        with patch("stripe.StripeClient", return_value=stripe_client):
            analytics.analytics_paid_tool(
                "premium", "Premium", {}, add, "Costs money", CHECKOUT
            )

        result = server.tools["premium"][2]({"a": 1, "b": 1}, None)

        payload = json.loads(result["content"][0]["text"])
        assert payload["data"]["checkoutUrl"] == "https://pay.example/cs"
        stripe_client.customers.list.assert_called_once_with(
            params={"email": "payer@example.com"}
        )
        assert isinstance(client.queue_event.call_args.args[0], PaymentRequiredEvent)

    def test_missing_email_raises(self):
        analytics = AnalyticsMcp(FakeServer(), config=_config())
        with pytest.raises(ConfigurationError, match="billing email"):
            analytics.analytics_paid_tool("premium", "Premium", {}, add, "reason", CHECKOUT)

    def test_missing_stripe_key_raises(self):
        analytics = AnalyticsMcp(FakeServer(), config=_config(stripe_secret_key=None))
        with pytest.raises(ConfigurationError, match="STRIPE_SECRET_KEY"):
            analytics.analytics_paid_tool(
                "premium", "Premium", {}, add, "reason", CHECKOUT, user_email="a@x.io"
            )

    def test_missing_price_raises_before_registration(self, shared_client):
        _, factory = shared_client
        server = FakeServer()
        analytics = AnalyticsMcp(server, config=_config())

        with pytest.raises(ConfigurationError, match="Price ID is required"):
            analytics.analytics_paid_tool(
                "premium", "Premium", {}, add, "reason", {"mode": "payment"},
                user_email="a@x.io",
            )

        assert server.tools == {}
        factory.assert_not_called()

    def test_paid_tool_gates_without_api_key(self):
        server = FakeServer()
        analytics = AnalyticsMcp(server, config=_config(api_key=None))
        callback = MagicMock()

        with patch("stripe.StripeClient", return_value=_stripe_client()):
            analytics.analytics_paid_tool(
                "premium", "Premium", {}, callback, "reason", CHECKOUT,
                user_email="payer@example.com",
            )

        result = server.tools["premium"][2]({}, None)
        assert json.loads(result["content"][0]["text"])["status"] == "payment_required"
        callback.assert_not_called()
