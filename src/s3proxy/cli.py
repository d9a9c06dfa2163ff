"""Command-line entry point: ``s3proxy --config s3proxy.yaml``."""

import argparse
import logging
import sys
from pathlib import Path

import uvicorn

from s3proxy.config import S3ProxyConfig, load_config
from s3proxy.logging_config import configure_logging
from s3proxy.server import create_app

logger = logging.getLogger("s3proxy")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].
    """
    parser = argparse.ArgumentParser(
        prog="s3proxy",
        description="Serve the objects of an S3 bucket as files over HTTP.",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("s3proxy.yaml"),
        help="YAML configuration file (default: %(default)s)",
    )

    listen = parser.add_argument_group("listener")
    listen.add_argument("--host", help="bind address")
    listen.add_argument("--port", type=int, help="listen port")

    proxy = parser.add_argument_group("proxy")
    proxy.add_argument("--bucket", help="bucket to serve")
    proxy.add_argument("--root", help="key prefix template for every request")

    logs = parser.add_argument_group("logging")
    logs.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="log level",
    )
    logs.add_argument("--log-format", choices=["text", "json"], help="log line format")

    parser.add_argument(
        "--check",
        action="store_true",
        help="validate the configuration and browse template, then exit",
    )
    return parser.parse_args(argv)


def apply_overrides(config: S3ProxyConfig, args: argparse.Namespace) -> S3ProxyConfig:
    """Return ``config`` with the flags given on the command line applied.

    The proxy section is frozen, so it is rebuilt and revalidated when
    ``--bucket`` or ``--root`` is given.
    """
    server = {
        name: getattr(args, name)
        for name in ("host", "port", "log_level", "log_format")
        if getattr(args, name) is not None
    }
    proxy = {
        name: getattr(args, name)
        for name in ("bucket", "root")
        if getattr(args, name) is not None
    }
    if server:
        config.server = config.server.model_copy(update=server)
    if proxy:
        config.proxy = type(config.proxy).model_validate(
            {**config.proxy.model_dump(), **proxy}
        )
    return config


def main(argv: list[str] | None = None) -> None:
    """Load the configuration and serve it with uvicorn.

    Exits with status 1 when the configuration cannot be loaded, and with 0
    after a successful ``--check``.
    """
    args = parse_args(argv)

    # Until the config is loaded only errors need to get out.
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)

    try:
        config = apply_overrides(load_config(args.config), args)
    except FileNotFoundError:
        logger.error("Config file not found: %s", args.config)
        sys.exit(1)
    except Exception as exc:
        logger.error("Invalid configuration in %s: %s", args.config, exc)
        sys.exit(1)

    configure_logging(level=config.server.log_level, fmt=config.server.log_format)

    try:
        app = create_app(config)
    except Exception as exc:
        logger.error("Cannot start s3proxy: %s", exc)
        sys.exit(1)

    if args.check:
        logger.info("Configuration OK (bucket=%s, root=%r)", config.proxy.bucket, config.proxy.root)
        sys.exit(0)

    logger.info(
        "Starting s3proxy on %s:%d (bucket=%s)",
        config.server.host,
        config.server.port,
        config.proxy.bucket,
    )
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.server.log_level.lower(),
        timeout_graceful_shutdown=config.server.shutdown_timeout,
        timeout_keep_alive=5,
    )


if __name__ == "__main__":
    main()
