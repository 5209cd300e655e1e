"""Payment-gated tools: Stripe entitlement check in front of the tool call.

Per invocation the wrapper resolves the Stripe customer, checks whether the
customer paid for (or subscribes to) the tool and then either returns a
checkout link without running the tool, or records usage, runs the tool and
reports the payment. Exactly one outcome event is queued per call.
"""

import functools
import json
import logging
from typing import Any, Optional

from anyio import to_thread

from .client import AnalyticsClient
from .config import AnalyticsConfig, PaidToolOptions
from .context import HostContext, ServerInfo
from .events import (
    payment_completed_event,
    payment_failed_event,
    payment_required_event,
)
from .exceptions import ConfigurationError
from .gateway import PaymentDetails, StripePaymentGateway
from .invocation import InvocationRecord, split_call
from .tools import (
    ToolCallback,
    ToolHost,
    is_async_callable,
    queue_safely,
    tracked_result,
)

logger = logging.getLogger("mcp_analytics.paid_tools")

PRICE_REQUIRED_MESSAGE = (
    "Price ID is required for a paid MCP tool. Learn more about prices: "
    "https://docs.stripe.com/products-prices/how-products-and-prices-work"
)


def _text_result(payload: dict, is_error: bool = False) -> dict[str, Any]:
    result: dict[str, Any] = {
        "content": [{"type": "text", "text": json.dumps(payload)}],
    }
    if is_error:
        result["isError"] = True
    return result


class PaidToolDecorator:
    """Wraps a tool callback behind a Stripe payment check.

    ``client`` may be None, in which case the gate still runs but no
    telemetry is recorded.
    """

    def __init__(
        self,
        tool_name: str,
        options: PaidToolOptions,
        config: AnalyticsConfig,
        client: Optional[AnalyticsClient] = None,
        host: Optional[HostContext] = None,
        gateway: Optional[StripePaymentGateway] = None,
    ):
        price_id = options.price_id
        if not price_id:
            raise ConfigurationError(PRICE_REQUIRED_MESSAGE)

        self.tool_name = tool_name
        self.options = options
        self.config = config
        self.client = client
        self.host = host or HostContext()
        self.price_id = price_id
        self.payment_type = options.payment_type
        self.gateway = gateway or StripePaymentGateway(options.stripe_secret_key)
        self.server = self.host.server_info(
            ServerInfo(
                server_name=config.server_name, server_version=config.server_version
            )
        )

    def _begin(self, args: Any, extra: Any) -> InvocationRecord:
        return InvocationRecord(
            self.tool_name,
            args,
            extra,
            server=self.server,
            environment=self.config.environment,
            host=self.host,
        )

    def _authorize(self) -> tuple[str, bool]:
        customer_id = self.gateway.resolve_customer(self.options.user_email)
        entitled = self.gateway.is_entitled(self.tool_name, customer_id, self.price_id)
        return customer_id, entitled

    def _decline(self, record: InvocationRecord, customer_id: str) -> dict[str, Any]:
        """Report the missing payment and hand back a checkout link."""
        queue_safely(
            self.client,
            lambda: payment_required_event(
                record, customer_id, self.payment_type, self.price_id
            ),
        )
        try:
            checkout_url = self.gateway.create_checkout_session(
                self.options.checkout, self.tool_name, customer_id
            )
        except Exception as exc:
            logger.error("Error creating stripe checkout session: %s", exc)
            return _text_result({"status": "error", "error": str(exc)}, is_error=True)

        return _text_result(
            {
                "status": "payment_required",
                "data": {
                    "paymentType": self.payment_type,
                    "checkoutUrl": checkout_url,
                    "paymentReason": self.options.payment_reason,
                },
            }
        )

    def _record_usage(self, customer_id: str) -> None:
        if self.options.meter_event:
            self.gateway.record_usage(self.options.meter_event, customer_id)

    def _completed(
        self, record: InvocationRecord, customer_id: str, result: Any
    ) -> None:
        if self.client is None:
            return
        details: Optional[PaymentDetails] = None
        try:
            details = self.gateway.payment_details(
                self.tool_name, customer_id, self.price_id
            )
        except Exception as exc:
            logger.warning("Failed to get payment session data for analytics: %s", exc)

        queue_safely(
            self.client,
            lambda: payment_completed_event(
                record,
                customer_id,
                self.payment_type,
                self.price_id,
                details=details,
                result=tracked_result(result, self.config.track_results),
            ),
        )

    def _failed(
        self, record: InvocationRecord, error: BaseException, lookup: bool = True
    ) -> None:
        """Queue the failure event.

        With ``lookup`` false (cancellation, interpreter exit) no Stripe call
        is made and the customer id is left empty.
        """
        if self.client is None:
            return
        customer_id: Optional[str] = None
        if lookup:
            try:
                customer_id = self.gateway.resolve_customer(self.options.user_email)
            except Exception as exc:
                logger.warning("Failed to get customer ID for error analytics: %s", exc)

        queue_safely(
            self.client,
            lambda: payment_failed_event(
                record, error, customer_id, self.payment_type, self.price_id
            ),
        )

    def __call__(self, func: ToolCallback) -> ToolCallback:
        if is_async_callable(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                record = self._begin(*split_call(args, kwargs))
                try:
                    customer_id, entitled = await to_thread.run_sync(self._authorize)
                    if not entitled:
                        return await to_thread.run_sync(self._decline, record, customer_id)
                    await to_thread.run_sync(self._record_usage, customer_id)
                    result = await func(*args, **kwargs)
                except Exception as exc:
                    await to_thread.run_sync(self._failed, record, exc)
                    raise
                except BaseException as exc:
                    # cancelled: must not await again
                    self._failed(record, exc, lookup=False)
                    raise
                await to_thread.run_sync(self._completed, record, customer_id, result)
                return result

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            record = self._begin(*split_call(args, kwargs))
            try:
                customer_id, entitled = self._authorize()
                if not entitled:
                    return self._decline(record, customer_id)
                self._record_usage(customer_id)
                result = func(*args, **kwargs)
            except BaseException as exc:
                self._failed(record, exc, lookup=isinstance(exc, Exception))
                raise
            self._completed(record, customer_id, result)
            return result

        return wrapper


def register_analytics_paid_tool(
    tool_host: ToolHost,
    tool_name: str,
    description: str,
    params_schema: Any,
    callback: ToolCallback,
    options: PaidToolOptions,
    config: AnalyticsConfig,
    host: Optional[HostContext] = None,
    client: Optional[AnalyticsClient] = None,
    gateway: Optional[StripePaymentGateway] = None,
) -> ToolCallback:
    """Register a payment-gated tool on *tool_host*.

    Raises ConfigurationError before registering if the checkout template
    has no priced line item. Returns the callable that was registered.
    """
    if not options.price_id:
        raise ConfigurationError(PRICE_REQUIRED_MESSAGE)

    if client is None and config.telemetry_enabled:
        try:
            client = AnalyticsClient.from_config(config)
        except Exception:
            logger.warning(
                "MCP Analytics client initialization failed, paid tool %s "
                "will run without analytics",
                tool_name,
                exc_info=True,
            )
    elif not config.telemetry_enabled:
        client = None

    decorator = PaidToolDecorator(
        tool_name,
        options,
        config,
        client=client,
        host=host,
        gateway=gateway,
    )
    handler = decorator(callback)
    tool_host.tool(tool_name, description, params_schema, handler)
    return handler
