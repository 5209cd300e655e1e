"""Host capabilities injected into instrumented tools.

Instead of inheriting identity, session and server metadata from an agent
base class, wrappers receive a ``HostContext`` holding plain getter
functions. Every getter is optional and allowed to fail.
"""

import logging
from collections.abc import Mapping
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel

from .schema import ClientVersion

logger = logging.getLogger("mcp_analytics.context")


class UserInfo(BaseModel):
    user_id: Optional[str] = None
    email: Optional[str] = None
    username: Optional[str] = None


class ServerInfo(BaseModel):
    server_name: str = "MCP Server"
    server_version: str = "1.0.0"


UserInfoGetter = Callable[[], Union[UserInfo, Mapping[str, Any], None]]
SessionIdGetter = Callable[[], Optional[str]]
ServerInfoGetter = Callable[[], Optional[ServerInfo]]
ClientVersionGetter = Callable[[], Union[ClientVersion, Mapping[str, Any], None]]


class HostContext:
    """Capability set a host framework hands to the wrappers."""

    def __init__(
        self,
        get_user_info: Optional[UserInfoGetter] = None,
        get_session_id: Optional[SessionIdGetter] = None,
        get_server_info: Optional[ServerInfoGetter] = None,
        get_client_version: Optional[ClientVersionGetter] = None,
    ):
        self.get_user_info = get_user_info
        self.get_session_id = get_session_id
        self.get_server_info = get_server_info
        self.get_client_version = get_client_version

    @classmethod
    def for_server(
        cls,
        server: Any,
        props: Optional[Mapping[str, Any]] = None,
        session_ctx: Any = None,
    ) -> "HostContext":
        """Build a context from a host server object and OAuth props."""
        return cls(
            get_user_info=(lambda: extract_user_info(props)) if props is not None else None,
            get_session_id=session_id_getter(session_ctx) if session_ctx is not None else None,
            get_server_info=lambda: extract_server_info(server),
            get_client_version=lambda: extract_client_version(server),
        )

    def server_info(self, default: ServerInfo) -> ServerInfo:
        """Resolve server metadata, falling back to *default* per field."""
        if self.get_server_info is None:
            return default
        try:
            info = self.get_server_info()
        except Exception:
            logger.debug("get_server_info failed, using configured values", exc_info=True)
            return default
        if info is None:
            return default
        return ServerInfo(
            server_name=info.server_name or default.server_name,
            server_version=info.server_version or default.server_version,
        )


def _safe_string(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    text = str(value).strip()
    return text or None


def _nested(props: Mapping[str, Any], name: str) -> Optional[Mapping[str, Any]]:
    value = props.get(name)
    return value if isinstance(value, Mapping) else None


def extract_user_info(props: Optional[Mapping[str, Any]]) -> UserInfo:
    """Extract user identity from OAuth provider props.

    Works across providers by checking the common shapes in priority order:
    flat fields, OIDC ``sub``, a ``claims`` object, a nested ``user`` object
    and GitHub-style ``login``.
    """
    if not props:
        return UserInfo()

    claims = _nested(props, "claims")
    user = _nested(props, "user")

    user_id = None
    if props.get("userId"):
        user_id = _safe_string(props["userId"])
    elif props.get("sub"):
        user_id = _safe_string(props["sub"])
    elif claims is not None:
        user_id = _safe_string(claims.get("sub"))
    elif user is not None:
        user_id = _safe_string(user.get("id"))
    elif props.get("login"):
        user_id = _safe_string(props["login"])

    email = None
    if props.get("email"):
        email = _safe_string(props["email"])
    elif props.get("userEmail"):
        email = _safe_string(props["userEmail"])
    elif claims is not None:
        email = _safe_string(claims.get("email"))
    elif user is not None:
        email = _safe_string(user.get("email"))

    username = None
    if props.get("username"):
        username = _safe_string(props["username"])
    elif props.get("name"):
        username = _safe_string(props["name"])
    elif props.get("login"):
        username = _safe_string(props["login"])
    elif claims is not None:
        username = _safe_string(claims.get("name") or claims.get("preferred_username"))
    elif user is not None:
        username = _safe_string(user.get("name") or user.get("username"))

    return UserInfo(user_id=user_id, email=email, username=username)


def extract_server_info(server: Any) -> Optional[ServerInfo]:
    """Best-effort name/version lookup on a host server object.

    Understands FastMCP (``name`` plus ``_mcp_server.version``) and the
    low-level ``mcp.server.Server`` (``name`` / ``version``).
    """
    if server is None:
        return None
    lowlevel = getattr(server, "_mcp_server", None) or server
    name = getattr(lowlevel, "name", None) or getattr(server, "name", None)
    version = getattr(lowlevel, "version", None)
    if not isinstance(name, str) and not isinstance(version, str):
        return None
    return ServerInfo(
        server_name=name if isinstance(name, str) and name else "MCP Server",
        server_version=version if isinstance(version, str) and version else "1.0.0",
    )


def extract_client_version(server: Any) -> Optional[ClientVersion]:
    """Client name/version negotiated during ``initialize``, if exposed."""
    version = getattr(server, "client_version", None)
    if isinstance(version, ClientVersion):
        return version
    if isinstance(version, Mapping) and version.get("name"):
        return ClientVersion(name=version["name"], version=str(version.get("version", "")))
    return None


def session_id_getter(ctx: Any) -> SessionIdGetter:
    """Return a getter that reads a stable session id from ``ctx.id``."""

    def get_session_id() -> Optional[str]:
        try:
            session_id = getattr(ctx, "id", None)
            return str(session_id) if session_id is not None else None
        except Exception:
            return None

    return get_session_id
