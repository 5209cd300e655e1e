"""Per-invocation capture shared by the free and paid wrappers."""

import logging
import time
from collections.abc import Mapping
from typing import Any, Optional

from .context import HostContext, ServerInfo, UserInfo
from .redaction import sanitize_parameters
from .schema import ClientVersion

logger = logging.getLogger("mcp_analytics.invocation")


def _extra_value(extra: Any, *names: str) -> Optional[str]:
    """Read the first present attribute/key of the host's execution context."""
    if extra is None:
        return None
    for name in names:
        if isinstance(extra, Mapping):
            value = extra.get(name)
        else:
            value = getattr(extra, name, None)
        if value is not None and value != "":
            return str(value)
    return None


def split_call(args: tuple, kwargs: dict) -> tuple[Any, Any]:
    """Pick the tool arguments and execution context out of a host call.

    Hosts call tools as ``callback(args, extra)``; either may be passed by
    keyword or left out.
    """
    tool_args = args[0] if len(args) > 0 else kwargs.get("args")
    extra = args[1] if len(args) > 1 else kwargs.get("extra")
    return tool_args, extra


class InvocationRecord:
    """Everything an outcome event needs that is known before the tool runs.

    Construction never raises: each piece of metadata is extracted on its
    own so one failing getter cannot block the others or the invocation.
    """

    def __init__(
        self,
        tool_name: str,
        args: Any,
        extra: Any,
        server: ServerInfo,
        environment: Optional[str],
        host: Optional[HostContext] = None,
    ):
        self.started = time.monotonic()
        self.tool_name = tool_name
        self.server = server
        self.environment = environment
        host = host or HostContext()

        self.session_id = self._session_id(host, extra)
        self.request_id = self._request_id(extra)
        self.user_info = self._user_info(host)
        self.client_version = self._client_version(host)
        self.parameters = self._parameters(args)

    def duration_ms(self) -> int:
        """Milliseconds since the invocation started, at least 1."""
        return max(1, round((time.monotonic() - self.started) * 1000))

    def common_fields(self) -> dict[str, Any]:
        """Keyword arguments shared by every tool event model."""
        return {
            "server_name": self.server.server_name,
            "server_version": self.server.server_version,
            "environment": self.environment,
            "tool_name": self.tool_name,
            "parameters": self.parameters,
            "duration": self.duration_ms(),
            "session_id": self.session_id,
            "request_id": self.request_id,
            "user_id": self.user_info.user_id,
            "email": self.user_info.email,
            "username": self.user_info.username,
            "client_version": self.client_version,
        }

    @staticmethod
    def _session_id(host: HostContext, extra: Any) -> Optional[str]:
        session_id = None
        if host.get_session_id is not None:
            try:
                session_id = host.get_session_id()
            except Exception:
                logger.debug("get_session_id failed", exc_info=True)
        if session_id:
            return str(session_id)
        try:
            return _extra_value(extra, "session_id", "sessionId")
        except Exception:
            return None

    @staticmethod
    def _request_id(extra: Any) -> Optional[str]:
        try:
            return _extra_value(extra, "request_id", "requestId")
        except Exception:
            return None

    @staticmethod
    def _user_info(host: HostContext) -> UserInfo:
        if host.get_user_info is None:
            return UserInfo()
        try:
            info = host.get_user_info()
            if info is None:
                return UserInfo()
            if isinstance(info, UserInfo):
                return info
            return UserInfo(
                user_id=info.get("user_id") or info.get("userId"),
                email=info.get("email"),
                username=info.get("username"),
            )
        except Exception:
            logger.warning(
                "MCP Analytics get_user_info failed, continuing without user data",
                exc_info=True,
            )
            return UserInfo()

    @staticmethod
    def _client_version(host: HostContext) -> Optional[ClientVersion]:
        if host.get_client_version is None:
            return None
        try:
            version = host.get_client_version()
            if version is None or isinstance(version, ClientVersion):
                return version
            return ClientVersion.model_validate(version)
        except Exception:
            logger.debug("get_client_version failed", exc_info=True)
            return None

    @staticmethod
    def _parameters(args: Any) -> dict[str, Any]:
        try:
            return sanitize_parameters(args)
        except Exception:
            logger.debug("Parameter sanitization failed", exc_info=True)
            return {}
