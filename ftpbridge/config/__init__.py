"""
Configuration management for ftpbridge.

Connection credentials for the FTP server are fixed at process start and
shared by every request. They come from the command line target
(``user:password@host:port``) and may be complemented by a TOML file.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_FTP_PORT = 21
DEFAULT_HTTP_PORT = 3000

USAGE_EXAMPLE = "Example: ftpbridge user:password@host:port 3000"


@dataclass(frozen=True)
class FtpConfig:
    """Credentials of the remote FTP server."""

    host: str
    user: str
    password: str
    port: int = DEFAULT_FTP_PORT

    def __repr__(self) -> str:
        # Keep the password out of logs and tracebacks
        return f"FtpConfig(host={self.host!r}, port={self.port}, user={self.user!r})"

    @property
    def display_name(self) -> str:
        return f"{self.user}@{self.host}:{self.port}"

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass
class ServerConfig:
    """Complete runtime configuration."""

    ftp: FtpConfig
    http_host: str = "0.0.0.0"
    http_port: int = DEFAULT_HTTP_PORT

    # Upper bound for connect + login to the FTP server
    connect_timeout: float = 10.0
    # Upper bound for a single read on the control or data socket
    socket_timeout: float = 30.0

    # 64KB chunks
    chunk_size: int = 65536


def parse_ftp_target(target: str) -> FtpConfig:
    """
    Parse an FTP target of the form ``user:password@host[:port]``.

    The password may contain ``:`` and ``@``; the last ``@`` separates the
    credentials from the host.

    Args:
        target: The target string from the command line.

    Returns:
        The parsed FtpConfig.

    Raises:
        ValueError: If user, password or host is missing, or the port is
            not a number.
    """
    user_part, sep, host_part = target.rpartition("@")
    if not sep or not user_part or not host_part:
        raise ValueError("Invalid FTP connection format")

    user, _, password = user_part.partition(":")
    host, _, port_text = host_part.partition(":")
    if not user or not password or not host:
        raise ValueError("Missing FTP connection information")

    if port_text:
        try:
            port = int(port_text)
        except ValueError:
            raise ValueError(f"Invalid FTP port: {port_text}") from None
        if not 0 < port < 65536:
            raise ValueError(f"Invalid FTP port: {port_text}")
    else:
        port = DEFAULT_FTP_PORT

    return FtpConfig(host=host, user=user, password=password, port=port)


def _ftp_from_table(data: dict[str, Any]) -> FtpConfig | None:
    """Build an FtpConfig from the ``[ftp]`` table, if it is complete."""
    if not data:
        return None
    try:
        return FtpConfig(
            host=str(data["host"]),
            user=str(data["user"]),
            password=str(data["password"]),
            port=int(data.get("port", DEFAULT_FTP_PORT)),
        )
    except KeyError as e:
        raise ValueError(f"Missing key in [ftp] section: {e.args[0]}") from None


def load_config(
    config_path: Path | None = None,
    *,
    ftp_target: str | None = None,
    http_host: str | None = None,
    http_port: int | None = None,
) -> ServerConfig:
    """
    Load the runtime configuration.

    Values given as arguments (from the command line) take precedence over
    values from the TOML file.

    Args:
        config_path: Optional path to a TOML file with ``[ftp]`` and
            ``[server]`` tables.
        ftp_target: Optional ``user:password@host:port`` target.
        http_host: Optional HTTP bind address.
        http_port: Optional HTTP port.

    Returns:
        The merged ServerConfig.

    Raises:
        ValueError: If no FTP server is configured or a value is invalid.
    """
    data: dict[str, Any] = {}
    if config_path is not None:
        logger.debug("Loading config from %s", config_path)
        with config_path.open("rb") as f:
            data = tomllib.load(f)

    server = data.get("server", {})

    if ftp_target:
        ftp = parse_ftp_target(ftp_target)
    else:
        ftp = _ftp_from_table(data.get("ftp", {}))
    if ftp is None:
        raise ValueError("No FTP server configured")

    return ServerConfig(
        ftp=ftp,
        http_host=http_host or str(server.get("host", "0.0.0.0")),
        http_port=int(http_port or server.get("port", DEFAULT_HTTP_PORT)),
        connect_timeout=float(server.get("connect_timeout", 10.0)),
        socket_timeout=float(server.get("socket_timeout", 30.0)),
        chunk_size=int(server.get("chunk_size", 65536)),
    )
