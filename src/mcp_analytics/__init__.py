"""MCP Analytics SDK: usage analytics and Stripe payment gating for MCP tools."""

from .client import AnalyticsClient
from .config import AnalyticsConfig, PaidToolOptions
from .context import HostContext, ServerInfo, UserInfo, extract_user_info
from .events import server_init_event, tool_started_event
from .exceptions import (
    AnalyticsError,
    APIError,
    BatchSizeError,
    ConfigurationError,
    PaymentGatewayError,
)
from .paid_tools import PaidToolDecorator, register_analytics_paid_tool
from .redaction import sanitize_parameters, sanitize_result
from .schema import (
    AnalyticsEvent,
    IngestResponse,
    PaymentCompletedEvent,
    PaymentFailedEvent,
    PaymentRequiredEvent,
    ServerInitEvent,
    ToolCompletedEvent,
    ToolFailedEvent,
    ToolInvocationEvent,
    ToolStartedEvent,
)
from .server import AnalyticsMcp
from .tools import AnalyticsToolDecorator, instrument_tool, register_analytics_tool
from ._version import __version__

__all__ = [
    "AnalyticsMcp",
    "AnalyticsClient",
    "AnalyticsConfig",
    "PaidToolOptions",
    "HostContext",
    "ServerInfo",
    "UserInfo",
    "extract_user_info",
    "AnalyticsError",
    "APIError",
    "BatchSizeError",
    "ConfigurationError",
    "PaymentGatewayError",
    "PaidToolDecorator",
    "register_analytics_paid_tool",
    "AnalyticsToolDecorator",
    "instrument_tool",
    "register_analytics_tool",
    "sanitize_parameters",
    "sanitize_result",
    "IngestResponse",
    "AnalyticsEvent",
    "ToolInvocationEvent",
    "ToolCompletedEvent",
    "ToolFailedEvent",
    "PaymentRequiredEvent",
    "PaymentCompletedEvent",
    "PaymentFailedEvent",
    "ToolStartedEvent",
    "ServerInitEvent",
    "tool_started_event",
    "server_init_event",
    "__version__",
]
