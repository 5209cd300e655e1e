"""SDK configuration."""

import os
from typing import Any, Literal, Mapping, Optional

from pydantic import BaseModel, field_validator

DEFAULT_API_URL = "https://v1.mcpanalytics.dev"
DEFAULT_BATCH_SIZE = 20
MAX_BATCH_SIZE = 25
DEFAULT_FLUSH_INTERVAL_MS = 30000

PaymentType = Literal["usageBased", "oneTimeSubscription"]


class AnalyticsConfig(BaseModel):
    api_key: Optional[str] = None
    api_url: str = DEFAULT_API_URL
    server_name: str = "MCP Server"
    server_version: str = "1.0.0"
    environment: str = "production"
    batch_size: int = DEFAULT_BATCH_SIZE
    flush_interval: int = DEFAULT_FLUSH_INTERVAL_MS  # milliseconds, 0 disables
    enabled: bool = True
    track_results: bool = True
    stripe_secret_key: Optional[str] = None

    @field_validator("batch_size")
    @classmethod
    def _clamp_batch_size(cls, value: int) -> int:
        return max(1, min(value, MAX_BATCH_SIZE))

    @field_validator("api_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def telemetry_enabled(self) -> bool:
        """True when events should be collected and shipped."""
        return bool(self.api_key) and self.enabled

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any
    ) -> "AnalyticsConfig":
        """Build a config from environment variables.

        Recognised variables: MCP_ANALYTICS_API_KEY, MCP_ANALYTICS_API_URL,
        MCP_ANALYTICS_ENABLED ("false" disables), ENVIRONMENT,
        MCP_SERVER_NAME, MCP_SERVER_VERSION and STRIPE_SECRET_KEY.
        Keyword overrides win over the environment.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {
            "api_key": env.get("MCP_ANALYTICS_API_KEY") or None,
            "environment": env.get("ENVIRONMENT") or "development",
            "enabled": env.get("MCP_ANALYTICS_ENABLED", "").lower() != "false",
            "stripe_secret_key": env.get("STRIPE_SECRET_KEY") or None,
        }
        if env.get("MCP_ANALYTICS_API_URL"):
            values["api_url"] = env["MCP_ANALYTICS_API_URL"]
        if env.get("MCP_SERVER_NAME"):
            values["server_name"] = env["MCP_SERVER_NAME"]
        if env.get("MCP_SERVER_VERSION"):
            values["server_version"] = env["MCP_SERVER_VERSION"]
        values.update(overrides)
        return cls(**values)


class PaidToolOptions(BaseModel):
    """Payment settings for one paid tool registration."""

    payment_reason: str
    checkout: dict[str, Any]
    user_email: str
    stripe_secret_key: str
    meter_event: Optional[str] = None

    @property
    def price_id(self) -> Optional[str]:
        """The first price referenced by the checkout line items."""
        for item in self.checkout.get("line_items") or []:
            price = item.get("price") if isinstance(item, Mapping) else None
            if price:
                return price
        return None

    @property
    def payment_type(self) -> PaymentType:
        return "usageBased" if self.meter_event else "oneTimeSubscription"
