"""Telemetry event schema emitted by the SDK.

Each event kind is its own model so that only the fields valid for that kind
exist on it. Events serialize with camelCase keys, which is what the ingest
API expects.
"""

import time
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config import PaymentType


def _now_ms() -> int:
    return int(time.time() * 1000)


class ClientVersion(BaseModel):
    name: str
    version: str


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the JSON-ready dict sent to the ingest API."""
        return self.model_dump(mode="json", by_alias=True)


class BaseEvent(_WireModel):
    """Fields shared by every event."""

    server_name: str
    server_version: Optional[str] = None
    environment: Optional[str] = None
    timestamp: int = Field(default_factory=_now_ms)

    session_id: Optional[str] = None
    request_id: Optional[str] = None

    # Identity
    user_id: Optional[str] = None
    email: Optional[str] = None
    username: Optional[str] = None

    client_version: Optional[ClientVersion] = None


class ToolEvent(BaseEvent):
    """Fields shared by every event that describes one tool invocation."""

    tool_name: str
    parameters: dict[str, Any] = {}
    duration: int = Field(default=1, ge=1)  # milliseconds
    success: bool


class ToolCompletedEvent(ToolEvent):
    event_type: Literal["mcp.tool.completed"] = "mcp.tool.completed"
    success: Literal[True] = True
    result: Any = None


class ToolFailedEvent(ToolEvent):
    event_type: Literal["mcp.tool.failed"] = "mcp.tool.failed"
    success: Literal[False] = False
    error_type: str
    error_message: str


class PaymentRequiredEvent(ToolEvent):
    event_type: Literal["mcp.tool.payment_required"] = "mcp.tool.payment_required"
    success: Literal[False] = False
    customer_id: str
    payment_type: PaymentType
    price_id: str
    payment_status: Literal["required"] = "required"

    # Nothing has been paid yet
    payment_amount: None = None
    payment_currency: None = None
    payment_date: None = None
    payment_session_id: None = None
    subscription_id: None = None


class PaymentCompletedEvent(ToolEvent):
    event_type: Literal["mcp.tool.payment_completed"] = "mcp.tool.payment_completed"
    success: Literal[True] = True
    customer_id: str
    payment_type: PaymentType
    price_id: str
    payment_amount: Optional[int] = None  # smallest currency unit
    payment_currency: Optional[str] = None
    payment_date: Optional[str] = None
    payment_session_id: Optional[str] = None
    payment_status: Optional[str] = None
    subscription_id: Optional[str] = None
    result: Any = None


class PaymentFailedEvent(ToolEvent):
    event_type: Literal["mcp.tool.payment_failed"] = "mcp.tool.payment_failed"
    success: Literal[False] = False
    error_type: str
    error_message: str
    customer_id: Optional[str] = None
    payment_type: PaymentType
    price_id: str

    payment_amount: None = None
    payment_currency: None = None
    payment_date: None = None
    payment_session_id: None = None
    payment_status: None = None
    subscription_id: None = None


class ToolStartedEvent(BaseEvent):
    event_type: Literal["mcp.tool.started"] = "mcp.tool.started"
    tool_name: str
    parameters: dict[str, Any] = {}


class ServerInitEvent(BaseEvent):
    event_type: Literal["mcp.server.init"] = "mcp.server.init"


ToolInvocationEvent = Annotated[
    Union[
        ToolCompletedEvent,
        ToolFailedEvent,
        PaymentRequiredEvent,
        PaymentCompletedEvent,
        PaymentFailedEvent,
    ],
    Field(discriminator="event_type"),
]

AnalyticsEvent = Annotated[
    Union[
        ToolCompletedEvent,
        ToolFailedEvent,
        PaymentRequiredEvent,
        PaymentCompletedEvent,
        PaymentFailedEvent,
        ToolStartedEvent,
        ServerInitEvent,
    ],
    Field(discriminator="event_type"),
]


class IngestValidationError(BaseModel):
    index: int
    error: str


class IngestResponse(BaseModel):
    """Body returned by ``POST /ingest``."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    processed: int = 0
    skipped: int = 0
    tenant_id: Optional[str] = Field(default=None, alias="tenantId")
    validation_errors: list[IngestValidationError] = []
    timestamp: Optional[int] = None
