"""
ftpbridge - Entry Point

Run with: python -m ftpbridge user:password@host:port [http_port]
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from ftpbridge import __version__
from ftpbridge.config import USAGE_EXAMPLE, ServerConfig, load_config
from ftpbridge.server import FtpBridgeServer


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aioftp").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="ftpbridge",
        description="Browse and stream an FTP server over HTTP, with watch-together sync",
        epilog=USAGE_EXAMPLE,
    )

    parser.add_argument(
        "target",
        nargs="?",
        help="FTP server as user:password@host[:port]",
    )

    parser.add_argument(
        "port",
        nargs="?",
        type=int,
        default=None,
        help="HTTP port (default: 3000)",
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host address to bind to (default: 0.0.0.0)",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="TOML config file with [ftp] and [server] tables",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(argv)


async def run_server(config: ServerConfig) -> None:
    """Start and run the server."""
    server = FtpBridgeServer(config)
    await server.run()


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the application."""
    args = parse_args(argv)
    setup_logging(verbose=args.verbose)

    logger = logging.getLogger(__name__)

    try:
        config = load_config(
            args.config,
            ftp_target=args.target,
            http_host=args.host,
            http_port=args.port,
        )
    except (OSError, ValueError) as e:
        logger.error("Error parsing FTP connection information: %s", e)
        logger.error(USAGE_EXAMPLE)
        return 1

    logger.info("Starting ftpbridge...")

    try:
        asyncio.run(run_server(config))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1

    logger.info("Server stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
