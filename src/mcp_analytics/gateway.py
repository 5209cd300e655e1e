"""Stripe adapter used by paid tools.

Every Stripe call is its own failure domain: a failing call raises
``PaymentGatewayError`` naming the operation, chained from the Stripe error.
Nothing is cached; entitlement is recomputed from Stripe on every call.
"""

import logging
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import stripe
from pydantic import BaseModel

from .exceptions import PaymentGatewayError

logger = logging.getLogger("mcp_analytics.gateway")

SESSION_LIST_LIMIT = 100


class PaymentDetails(BaseModel):
    """Payment fields reported on a completed paid invocation."""

    amount: Optional[int] = None
    currency: Optional[str] = None
    payment_date: Optional[str] = None
    session_id: Optional[str] = None
    status: Optional[str] = None
    subscription_id: Optional[str] = None


def _field(obj: Any, name: str) -> Any:
    """Read a field from a Stripe object or a plain dict."""
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _as_id(value: Any) -> Optional[str]:
    """Stripe references may be ids or expanded objects."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    object_id = _field(value, "id")
    return str(object_id) if object_id else str(value)


def _as_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _iso_timestamp(seconds: Optional[int]) -> Optional[str]:
    """UTC timestamp with milliseconds and a Z suffix, e.g. 2023-11-14T22:13:20.000Z."""
    if seconds is None:
        return None
    moment = datetime.fromtimestamp(seconds, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _data(list_object: Any) -> list:
    return list(_field(list_object, "data") or [])


class StripePaymentGateway:
    """Customer, entitlement, checkout and metering calls against Stripe."""

    def __init__(self, secret_key: str, client: Optional[stripe.StripeClient] = None):
        self._stripe = client or stripe.StripeClient(secret_key)

    def _call(self, operation: str, method: Callable[..., Any], params: dict) -> Any:
        try:
            return method(params=params)
        except stripe.StripeError as exc:
            message = exc.user_message or str(exc) or type(exc).__name__
            raise PaymentGatewayError(operation, message, exc.http_status) from exc

    def resolve_customer(self, email: str) -> str:
        """Return the id of the customer with *email*, creating one if needed."""
        customers = self._call(
            "customer_lookup", self._stripe.customers.list, {"email": email}
        )
        for customer in _data(customers):
            if _field(customer, "email") == email:
                return _field(customer, "id")

        customer = self._call(
            "customer_create", self._stripe.customers.create, {"email": email}
        )
        return _field(customer, "id")

    def find_paid_session(self, tool_name: str, customer_id: str) -> Any:
        """The customer's paid checkout session for *tool_name*, or None."""
        sessions = self._call(
            "session_list",
            self._stripe.checkout.sessions.list,
            {"customer": customer_id, "limit": SESSION_LIST_LIMIT},
        )
        for session in _data(sessions):
            metadata = _field(session, "metadata")
            if (
                _field(metadata, "toolName") == tool_name
                and _field(session, "payment_status") == "paid"
            ):
                return session
        return None

    def find_active_subscription(self, customer_id: str, price_id: str) -> Any:
        """The customer's active subscription containing *price_id*, or None."""
        subscriptions = self._call(
            "subscription_list",
            self._stripe.subscriptions.list,
            {"customer": customer_id, "status": "active"},
        )
        for subscription in _data(subscriptions):
            for item in _data(_field(subscription, "items")):
                if _field(_field(item, "price"), "id") == price_id:
                    return subscription
        return None

    def is_entitled(self, tool_name: str, customer_id: str, price_id: str) -> bool:
        """True if the customer paid for the tool or subscribes to its price."""
        if self.find_paid_session(tool_name, customer_id) is not None:
            return True
        return self.find_active_subscription(customer_id, price_id) is not None

    def create_checkout_session(
        self, template: Mapping[str, Any], tool_name: str, customer_id: str
    ) -> Optional[str]:
        """Create a checkout session from *template*; returns its URL."""
        params = dict(template)
        params["metadata"] = {**(template.get("metadata") or {}), "toolName": tool_name}
        params["customer"] = customer_id
        session = self._call(
            "checkout_create", self._stripe.checkout.sessions.create, params
        )
        return _field(session, "url")

    def record_usage(self, event_name: str, customer_id: str) -> None:
        """Record one unit of metered usage for the customer."""
        self._call(
            "usage_record",
            self._stripe.billing.meter_events.create,
            {
                "event_name": event_name,
                "payload": {"stripe_customer_id": customer_id, "value": "1"},
            },
        )

    def payment_details(
        self, tool_name: str, customer_id: str, price_id: str
    ) -> PaymentDetails:
        """Describe the payment that entitles the customer to the tool."""
        session = self.find_paid_session(tool_name, customer_id)
        if session is not None:
            created = _as_int(_field(session, "created"))
            return PaymentDetails(
                amount=_as_int(_field(session, "amount_total")),
                currency=_field(session, "currency"),
                payment_date=_iso_timestamp(created),
                session_id=_as_id(_field(session, "id")),
                status=_field(session, "payment_status"),
                subscription_id=_as_id(_field(session, "subscription")),
            )

        subscription = self.find_active_subscription(customer_id, price_id)
        if subscription is not None:
            return PaymentDetails(
                status=_field(subscription, "status"),
                subscription_id=_as_id(_field(subscription, "id")),
            )
        return PaymentDetails()
