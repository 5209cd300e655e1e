"""Main entry point for the MCP Analytics SDK."""

import logging
import threading
from typing import Any, Callable, Mapping, Optional

from .client import AnalyticsClient
from .config import AnalyticsConfig, PaidToolOptions
from .context import HostContext
from .exceptions import ConfigurationError
from .paid_tools import PRICE_REQUIRED_MESSAGE, PaidToolDecorator
from .tools import ToolCallback, ToolHost, register_analytics_tool

logger = logging.getLogger("mcp_analytics.server")


class AnalyticsMcp:
    """Registers analytics-tracked (and optionally paid) tools on an MCP server.

    All tools registered through one instance share a single delivery
    client, so their events are batched together.

    Usage:
        analytics = AnalyticsMcp(server, props=oauth_props)

        @analytics.tool("add", "Add two numbers", {"a": int, "b": int})
        def add(args, extra):
            return {"content": [{"type": "text", "text": str(args["a"] + args["b"])}]}

        # On app shutdown:
        analytics.shutdown()
    """

    def __init__(
        self,
        server: ToolHost,
        config: Optional[AnalyticsConfig] = None,
        host: Optional[HostContext] = None,
        props: Optional[Mapping[str, Any]] = None,
        session_ctx: Any = None,
    ):
        self.server = server
        self.config = config or AnalyticsConfig.from_env()
        self.props = props
        self.host = host or HostContext.for_server(
            server, props=props, session_ctx=session_ctx
        )
        self._client: Optional[AnalyticsClient] = None
        self._client_failed = False
        self._lock = threading.Lock()

    def _delivery_client(self) -> Optional[AnalyticsClient]:
        """The shared client, created on first use. None when unavailable."""
        if not self.config.telemetry_enabled:
            return None
        with self._lock:
            if self._client is None and not self._client_failed:
                try:
                    self._client = AnalyticsClient.from_config(self.config)
                except Exception:
                    self._client_failed = True
                    logger.warning(
                        "MCP Analytics client initialization failed, analytics disabled",
                        exc_info=True,
                    )
            return self._client

    def _tool_config(self, track_results: Optional[bool]) -> AnalyticsConfig:
        if track_results is None:
            return self.config
        return self.config.model_copy(update={"track_results": track_results})

    def analytics_tool(
        self,
        name: str,
        description: str,
        params_schema: Any,
        callback: ToolCallback,
        track_results: Optional[bool] = None,
    ) -> ToolCallback:
        """Register a free tool with analytics tracking.

        Without an API key (or with MCP_ANALYTICS_ENABLED=false) the tool
        is registered exactly as given.
        """
        config = self._tool_config(track_results)
        client = self._delivery_client()
        if client is None:
            self.server.tool(name, description, params_schema, callback)
            return callback
        return register_analytics_tool(
            self.server,
            name,
            description,
            params_schema,
            callback,
            config,
            host=self.host,
            client=client,
        )

    def analytics_paid_tool(
        self,
        name: str,
        description: str,
        params_schema: Any,
        callback: ToolCallback,
        payment_reason: str,
        checkout: Mapping[str, Any],
        meter_event: Optional[str] = None,
        user_email: Optional[str] = None,
        track_results: Optional[bool] = None,
    ) -> ToolCallback:
        """Register a tool that only runs for customers who paid for it.

        ``checkout`` is a Stripe checkout-session params template and must
        contain at least one line item with a ``price``. ``user_email``
        defaults to the ``userEmail`` OAuth prop.
        """
        email = user_email or (self.props or {}).get("userEmail")
        if not email:
            raise ConfigurationError(f"No billing email available for paid tool '{name}'")
        if not self.config.stripe_secret_key:
            raise ConfigurationError("STRIPE_SECRET_KEY is required for paid tools")

        options = PaidToolOptions(
            payment_reason=payment_reason,
            checkout=dict(checkout),
            meter_event=meter_event,
            user_email=email,
            stripe_secret_key=self.config.stripe_secret_key,
        )
        if not options.price_id:
            raise ConfigurationError(PRICE_REQUIRED_MESSAGE)

        decorator = PaidToolDecorator(
            name,
            options,
            self._tool_config(track_results),
            client=self._delivery_client(),
            host=self.host,
        )
        handler = decorator(callback)
        self.server.tool(name, description, params_schema, handler)
        return handler

    def tool(
        self,
        name: Optional[str] = None,
        description: Optional[str] = None,
        params_schema: Any = None,
        track_results: Optional[bool] = None,
    ) -> Callable[[ToolCallback], ToolCallback]:
        """Decorator form of :meth:`analytics_tool`.

        Name and description default to the function's name and docstring.
        """

        def decorator(func: ToolCallback) -> ToolCallback:
            return self.analytics_tool(
                name or func.__name__,
                description or (func.__doc__ or "").strip(),
                params_schema or {},
                func,
                track_results=track_results,
            )

        return decorator

    def shutdown(self) -> None:
        """Flush pending events and stop the delivery client."""
        with self._lock:
            client = self._client
        if client is not None:
            client.destroy()
