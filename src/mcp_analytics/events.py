"""Builders for every analytics event kind."""

from typing import Any, Mapping, Optional

from .config import PaymentType
from .context import ServerInfo, UserInfo
from .gateway import PaymentDetails
from .invocation import InvocationRecord
from .redaction import sanitize_parameters
from .schema import (
    ClientVersion,
    PaymentCompletedEvent,
    PaymentFailedEvent,
    PaymentRequiredEvent,
    ServerInitEvent,
    ToolCompletedEvent,
    ToolFailedEvent,
    ToolStartedEvent,
)


def _error_fields(error: BaseException) -> dict[str, str]:
    return {"error_type": type(error).__name__, "error_message": str(error)}


def tool_completed_event(
    record: InvocationRecord, result: Any = None
) -> ToolCompletedEvent:
    return ToolCompletedEvent(**record.common_fields(), result=result)


def tool_failed_event(
    record: InvocationRecord, error: BaseException
) -> ToolFailedEvent:
    return ToolFailedEvent(**record.common_fields(), **_error_fields(error))


def payment_required_event(
    record: InvocationRecord,
    customer_id: str,
    payment_type: PaymentType,
    price_id: str,
) -> PaymentRequiredEvent:
    return PaymentRequiredEvent(
        **record.common_fields(),
        customer_id=customer_id,
        payment_type=payment_type,
        price_id=price_id,
    )


def payment_completed_event(
    record: InvocationRecord,
    customer_id: str,
    payment_type: PaymentType,
    price_id: str,
    details: Optional[PaymentDetails] = None,
    result: Any = None,
) -> PaymentCompletedEvent:
    """Build the completion event; *details* is None when the lookup failed."""
    details = details or PaymentDetails()
    return PaymentCompletedEvent(
        **record.common_fields(),
        customer_id=customer_id,
        payment_type=payment_type,
        price_id=price_id,
        payment_amount=details.amount,
        payment_currency=details.currency,
        payment_date=details.payment_date,
        payment_session_id=details.session_id,
        payment_status=details.status,
        subscription_id=details.subscription_id,
        result=result,
    )


def payment_failed_event(
    record: InvocationRecord,
    error: BaseException,
    customer_id: Optional[str],
    payment_type: PaymentType,
    price_id: str,
) -> PaymentFailedEvent:
    return PaymentFailedEvent(
        **record.common_fields(),
        **_error_fields(error),
        customer_id=customer_id,
        payment_type=payment_type,
        price_id=price_id,
    )


def tool_started_event(
    server: ServerInfo,
    tool_name: str,
    parameters: Mapping[str, Any],
    environment: Optional[str] = None,
    session_id: Optional[str] = None,
    user_info: Optional[UserInfo] = None,
    client_version: Optional[ClientVersion] = None,
) -> ToolStartedEvent:
    """Event marking the start of a tool call; parameters are sanitized here."""
    user_info = user_info or UserInfo()
    return ToolStartedEvent(
        server_name=server.server_name,
        server_version=server.server_version,
        environment=environment,
        tool_name=tool_name,
        parameters=sanitize_parameters(parameters),
        session_id=session_id,
        client_version=client_version,
        **user_info.model_dump(),
    )


def server_init_event(
    server: ServerInfo,
    environment: Optional[str] = None,
    session_id: Optional[str] = None,
    user_info: Optional[UserInfo] = None,
    client_version: Optional[ClientVersion] = None,
) -> ServerInitEvent:
    """Event recording that an MCP server started up."""
    user_info = user_info or UserInfo()
    return ServerInitEvent(
        server_name=server.server_name,
        server_version=server.server_version,
        environment=environment,
        session_id=session_id,
        client_version=client_version,
        **user_info.model_dump(),
    )
