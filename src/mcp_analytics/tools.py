"""Analytics tracking for free (non-gated) tools."""

import functools
import inspect
import logging
from typing import Any, Callable, Optional, Protocol

from .client import AnalyticsClient
from .config import AnalyticsConfig
from .context import HostContext, ServerInfo
from .events import tool_completed_event, tool_failed_event
from .invocation import InvocationRecord, split_call
from .redaction import sanitize_result
from .schema import AnalyticsEvent

logger = logging.getLogger("mcp_analytics.tools")

ToolCallback = Callable[..., Any]


class ToolHost(Protocol):
    """The part of a tool-serving framework the SDK registers tools with."""

    def tool(
        self,
        name: str,
        description: str,
        params_schema: Any,
        callback: ToolCallback,
    ) -> Any: ...


def _default_server_info(config: AnalyticsConfig) -> ServerInfo:
    return ServerInfo(
        server_name=config.server_name, server_version=config.server_version
    )


def queue_safely(
    client: Optional[AnalyticsClient],
    event_factory: Callable[[], AnalyticsEvent],
) -> None:
    """Build and queue an event; telemetry errors are logged, never raised."""
    if client is None:
        return
    try:
        client.queue_event(event_factory())
    except Exception:
        logger.warning("MCP Analytics failed to queue event", exc_info=True)


def is_async_callable(func: Any) -> bool:
    """True for coroutine functions, partials of them and async callables."""
    while isinstance(func, functools.partial):
        func = func.func
    return inspect.iscoroutinefunction(func) or inspect.iscoroutinefunction(
        getattr(func, "__call__", None)
    )


def tracked_result(result: Any, track_results: bool) -> Any:
    """The sanitized copy of *result* to attach to an event, if any."""
    if not track_results:
        return None
    try:
        return sanitize_result(result)
    except Exception:
        logger.warning("MCP Analytics failed to sanitize result, excluding from event")
        return {"_sanitizationFailed": True}


class AnalyticsToolDecorator:
    """Wraps a tool callback and emits one completed/failed event per call.

    The callback is invoked with exactly the arguments the host passed and
    its return value or exception reaches the caller unchanged.
    """

    def __init__(
        self,
        client: AnalyticsClient,
        tool_name: str,
        config: AnalyticsConfig,
        host: Optional[HostContext] = None,
    ):
        self.client = client
        self.tool_name = tool_name
        self.config = config
        self.host = host or HostContext()
        self.server = self.host.server_info(_default_server_info(config))

    def _begin(self, args: Any, extra: Any) -> InvocationRecord:
        return InvocationRecord(
            self.tool_name,
            args,
            extra,
            server=self.server,
            environment=self.config.environment,
            host=self.host,
        )

    def _succeeded(self, record: InvocationRecord, result: Any) -> None:
        queue_safely(
            self.client,
            lambda: tool_completed_event(
                record, tracked_result(result, self.config.track_results)
            ),
        )

    def _failed(self, record: InvocationRecord, error: BaseException) -> None:
        queue_safely(self.client, lambda: tool_failed_event(record, error))

    def __call__(self, func: ToolCallback) -> ToolCallback:
        if is_async_callable(func):

            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                record = self._begin(*split_call(args, kwargs))
                try:
                    result = await func(*args, **kwargs)
                except BaseException as exc:
                    self._failed(record, exc)
                    raise
                self._succeeded(record, result)
                return result

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            record = self._begin(*split_call(args, kwargs))
            try:
                result = func(*args, **kwargs)
            except BaseException as exc:
                self._failed(record, exc)
                raise
            self._succeeded(record, result)
            return result

        return wrapper


def instrument_tool(
    tool_name: str,
    callback: ToolCallback,
    config: AnalyticsConfig,
    host: Optional[HostContext] = None,
    client: Optional[AnalyticsClient] = None,
) -> ToolCallback:
    """Pick the callable to register for a tool.

    Returns the original callback untouched (passthrough) when telemetry is
    not configured or the delivery client cannot be created, otherwise an
    instrumented wrapper. The choice is made once, here.
    """
    if not config.telemetry_enabled:
        return callback

    if client is None:
        try:
            client = AnalyticsClient.from_config(config)
        except Exception:
            logger.warning(
                "MCP Analytics client initialization failed, analytics disabled "
                "for tool %s",
                tool_name,
                exc_info=True,
            )
            return callback

    return AnalyticsToolDecorator(client, tool_name, config, host)(callback)


def register_analytics_tool(
    tool_host: ToolHost,
    tool_name: str,
    description: str,
    params_schema: Any,
    callback: ToolCallback,
    config: AnalyticsConfig,
    host: Optional[HostContext] = None,
    client: Optional[AnalyticsClient] = None,
) -> ToolCallback:
    """Register *callback* on *tool_host* with analytics tracking.

    Returns the callable that was registered.
    """
    handler = instrument_tool(tool_name, callback, config, host=host, client=client)
    tool_host.tool(tool_name, description, params_schema, handler)
    return handler
