"""MCP client configuration loading."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from parley.lib import oj
from parley.mcp.tools import DEFAULT_FALLBACK_TOOLS, ToolDescriptor
from parley.mcp.transport.types import TransportConfig

logger = logging.getLogger(__name__)

# Config file locations
MCP_CONFIG_FILENAME = "mcp.json"
GLOBAL_MCP_CONFIG = Path.home() / ".parley" / MCP_CONFIG_FILENAME
LOCAL_MCP_CONFIG_DIR = ".parley"

DEFAULT_PROTOCOL_VERSION = "2024-11-05"
DEFAULT_USER_AGENT = "parley-realtime-agents/1.0"


def _default_headers() -> dict[str, str]:
    return {"User-Agent": DEFAULT_USER_AGENT}


@dataclass
class MCPClientConfig:
    """Configuration for the MCP session client."""

    base_url: str
    """Endpoint of the MCP server."""

    timeout: float = 15.0
    """Per-call timeout in seconds."""

    probe_timeout: float = 5.0
    """Liveness probe timeout in seconds."""

    retry_attempts: int = 3
    """Reconnect attempts made by callers after a failure. The client never retries."""

    headers: dict[str, str] = field(default_factory=_default_headers)
    fallback_tools: tuple[ToolDescriptor, ...] = DEFAULT_FALLBACK_TOOLS
    protocol_version: str = DEFAULT_PROTOCOL_VERSION
    client_name: str = "parley"
    client_version: str = "0.1.0"

    def __post_init__(self) -> None:
        if not self.base_url:
            raise ValueError("base_url is required")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.probe_timeout <= 0:
            raise ValueError("probe_timeout must be positive")
        if self.retry_attempts < 0:
            raise ValueError("retry_attempts must not be negative")

    @property
    def client_info(self) -> dict[str, str]:
        return {"name": self.client_name, "version": self.client_version}

    def to_transport_config(self) -> TransportConfig:
        """Build the transport configuration for this client."""
        return TransportConfig(
            url=self.base_url,
            timeout=self.timeout,
            headers=dict(self.headers),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MCPClientConfig":
        """Create from an ``mcp.json`` server entry."""
        headers = _default_headers()
        headers.update(data.get("headers") or {})

        kwargs: dict[str, Any] = {
            "base_url": data.get("url", ""),
            "headers": headers,
        }
        if "timeout" in data:
            kwargs["timeout"] = float(data["timeout"])
        if "probeTimeout" in data:
            kwargs["probe_timeout"] = float(data["probeTimeout"])
        if "retryAttempts" in data:
            kwargs["retry_attempts"] = int(data["retryAttempts"])
        if "protocolVersion" in data:
            kwargs["protocol_version"] = data["protocolVersion"]
        if isinstance(data.get("fallbackTools"), list):
            kwargs["fallback_tools"] = tuple(
                ToolDescriptor.from_dict(tool) for tool in data["fallbackTools"]
            )
        return cls(**kwargs)


def _read_servers(path: Path, configs: dict[str, MCPClientConfig]) -> None:
    try:
        data = oj.loads(path.read_bytes())
    except (OSError, oj.JSONDecodeError) as e:
        logger.warning(f"Skipping unreadable MCP config {path}: {e}")
        return

    servers = data.get("mcpServers", {}) if isinstance(data, dict) else {}
    for name, server_data in servers.items():
        if not isinstance(server_data, dict) or not server_data.get("url"):
            continue
        try:
            configs[name] = MCPClientConfig.from_dict(server_data)
        except (ValueError, TypeError) as e:
            logger.warning(f"Skipping MCP server '{name}' in {path}: {e}")


def load_mcp_config(working_dir: Path | None = None) -> dict[str, MCPClientConfig]:
    """Load MCP server configs from global and local config files.

    Global config (~/.parley/mcp.json) is loaded first.
    Local config ({working_dir}/.parley/mcp.json) overrides global.

    Returns:
        Dict mapping server name to config.
    """
    configs: dict[str, MCPClientConfig] = {}

    if GLOBAL_MCP_CONFIG.exists():
        _read_servers(GLOBAL_MCP_CONFIG, configs)

    if working_dir:
        local_config = working_dir / LOCAL_MCP_CONFIG_DIR / MCP_CONFIG_FILENAME
        if local_config.exists():
            _read_servers(local_config, configs)

    return configs
