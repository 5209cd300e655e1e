"""Tests for the Stripe payment gateway adapter."""

from unittest.mock import MagicMock

import pytest
import stripe

from mcp_analytics.exceptions import PaymentGatewayError
from mcp_analytics.gateway import PaymentDetails, StripePaymentGateway


def _stripe(customers=None, sessions=None, subscriptions=None) -> MagicMock:
    client = MagicMock()
    client.customers.list.return_value = {"data": customers or []}
    client.customers.create.return_value = {"id": "cus_new"}
    client.checkout.sessions.list.return_value = {"data": sessions or []}
    client.checkout.sessions.create.return_value = {
        "id": "cs_new",
        "url": "https://checkout.stripe.com/c/pay/cs_new",
    }
    client.subscriptions.list.return_value = {"data": subscriptions or []}
    return client


def _gateway(client: MagicMock) -> StripePaymentGateway:
    return StripePaymentGateway("sk_test_123", client=client)


def _paid_session(tool="premium", **overrides):
    session = {
        "id": "cs_1",
        "metadata": {"toolName": tool},
        "payment_status": "paid",
        "amount_total": 2999,
        "currency": "usd",
        "created": 1700000000,
        "subscription": None,
    }
    session.update(overrides)
    return session


def _subscription(price_id="price_1", sub_id="sub_1"):
    return {
        "id": sub_id,
        "status": "active",
        "items": {"data": [{"price": {"id": price_id}}]},
    }


class TestResolveCustomer:
    def test_reuses_matching_customer(self):
        client = _stripe(customers=[{"id": "cus_1", "email": "a@example.com"}])
        assert _gateway(client).resolve_customer("a@example.com") == "cus_1"
        client.customers.create.assert_not_called()

    def test_creates_customer_when_missing(self):
        client = _stripe()
        assert _gateway(client).resolve_customer("b@example.com") == "cus_new"
        client.customers.create.assert_called_once_with(params={"email": "b@example.com"})

    def test_requires_exact_email_match(self):
        client = _stripe(customers=[{"id": "cus_other", "email": "B@example.com"}])
        assert _gateway(client).resolve_customer("b@example.com") == "cus_new"

    def test_lookup_failure_names_operation(self):
        client = _stripe()
        client.customers.list.side_effect = stripe.StripeError("Stripe is down")

        with pytest.raises(PaymentGatewayError) as exc_info:
            _gateway(client).resolve_customer("a@example.com")

        assert exc_info.value.operation == "customer_lookup"
        assert isinstance(exc_info.value.__cause__, stripe.StripeError)


class TestEntitlement:
    def test_paid_session_for_tool_entitles(self):
        client = _stripe(sessions=[_paid_session()])
        assert _gateway(client).is_entitled("premium", "cus_1", "price_1") is True
        client.subscriptions.list.assert_not_called()

    def test_session_for_other_tool_does_not_entitle(self):
        client = _stripe(sessions=[_paid_session(tool="other")])
        assert _gateway(client).is_entitled("premium", "cus_1", "price_1") is False

    def test_unpaid_session_does_not_entitle(self):
        client = _stripe(sessions=[_paid_session(payment_status="unpaid")])
        assert _gateway(client).is_entitled("premium", "cus_1", "price_1") is False

    def test_active_subscription_for_price_entitles(self):
        client = _stripe(subscriptions=[_subscription("price_1")])
        assert _gateway(client).is_entitled("premium", "cus_1", "price_1") is True
        client.subscriptions.list.assert_called_once_with(
            params={"customer": "cus_1", "status": "active"}
        )

    def test_subscription_for_other_price_does_not_entitle(self):
        client = _stripe(subscriptions=[_subscription("price_other")])
        assert _gateway(client).is_entitled("premium", "cus_1", "price_1") is False

    def test_sessions_listed_for_customer(self):
        client = _stripe()
        _gateway(client).is_entitled("premium", "cus_1", "price_1")
        client.checkout.sessions.list.assert_called_once_with(
            params={"customer": "cus_1", "limit": 100}
        )


class TestCheckout:
    def test_merges_tool_name_into_metadata(self):
        client = _stripe()
        template = {
            "mode": "payment",
            "line_items": [{"price": "price_1", "quantity": 1}],
            "success_url": "https://example.com/ok",
            "metadata": {"campaign": "launch"},
        }

        url = _gateway(client).create_checkout_session(template, "premium", "cus_1")

        assert url == "https://checkout.stripe.com/c/pay/cs_new"
        params = client.checkout.sessions.create.call_args.kwargs["params"]
        assert params["metadata"] == {"campaign": "launch", "toolName": "premium"}
        assert params["customer"] == "cus_1"
        assert params["line_items"] == [{"price": "price_1", "quantity": 1}]
        assert template["metadata"] == {"campaign": "launch"}

    def test_failure_raises_gateway_error(self):
        client = _stripe()
        client.checkout.sessions.create.side_effect = stripe.StripeError("No such price")

        with pytest.raises(PaymentGatewayError, match="No such price") as exc_info:
            _gateway(client).create_checkout_session({}, "premium", "cus_1")

        assert exc_info.value.operation == "checkout_create"


class TestUsage:
    def test_records_one_unit(self):
        client = _stripe()
        _gateway(client).record_usage("api_calls", "cus_1")
        client.billing.meter_events.create.assert_called_once_with(
            params={
                "event_name": "api_calls",
                "payload": {"stripe_customer_id": "cus_1", "value": "1"},
            }
        )

    def test_failure_raises_gateway_error(self):
        client = _stripe()
        client.billing.meter_events.create.side_effect = stripe.StripeError("meter missing")
        with pytest.raises(PaymentGatewayError) as exc_info:
            _gateway(client).record_usage("api_calls", "cus_1")
        assert exc_info.value.operation == "usage_record"


class TestPaymentDetails:
    def test_details_from_paid_session(self):
        client = _stripe(sessions=[_paid_session(subscription={"id": "sub_9"})])
        details = _gateway(client).payment_details("premium", "cus_1", "price_1")

        assert details.amount == 2999
        assert details.currency == "usd"
        assert details.session_id == "cs_1"
        assert details.status == "paid"
        assert details.subscription_id == "sub_9"
        assert details.payment_date == "2023-11-14T22:13:20.000Z"

    def test_details_from_subscription(self):
        client = _stripe(subscriptions=[_subscription("price_1", "sub_2")])
        details = _gateway(client).payment_details("premium", "cus_1", "price_1")
        assert details == PaymentDetails(status="active", subscription_id="sub_2")

    def test_no_payment_found(self):
        details = _gateway(_stripe()).payment_details("premium", "cus_1", "price_1")
        assert details == PaymentDetails()


def test_stripe_objects_read_by_attribute():
    session = MagicMock(spec=["metadata", "payment_status", "id"])
    session.metadata = {"toolName": "premium"}
    session.payment_status = "paid"
    session.id = "cs_attr"
    client = _stripe()
    client.checkout.sessions.list.return_value = MagicMock(data=[session])

    assert _gateway(client).find_paid_session("premium", "cus_1") is session
