"""Reflect server entrypoint."""

from __future__ import annotations

import argparse
import logging
import os
import sys

from .config import EngineConfig
from .server import create_server
from .utils import load_dotenv

log = logging.getLogger("reflect.cli")


def _build_parser(config: EngineConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="reflect", description="Recursive reflect/generate/analyze image loop server")
    parser.add_argument("--host", default=config.host, help="Listen address (env HOST)")
    parser.add_argument("--port", type=int, default=config.port, help="Listen port (env PORT)")
    parser.add_argument(
        "--provider",
        choices=["ollama", "dryrun"],
        default=config.provider if config.provider in {"ollama", "dryrun"} else "ollama",
        help="Model backend (env REFLECT_PROVIDER)",
    )
    return parser


def _configure_logging() -> None:
    level = (os.getenv("REFLECT_LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main() -> None:
    load_dotenv()
    _configure_logging()
    config = EngineConfig.from_env()
    args = _build_parser(config).parse_args()
    config.host = args.host
    config.port = args.port
    config.provider = args.provider
    try:
        server = create_server(config)
    except OSError as exc:
        log.error("Could not start server on %s:%s: %s", config.host, config.port, exc)
        raise SystemExit(1) from exc
    log.info("Server running at http://%s:%d (provider=%s)", config.host, config.port, config.provider)
    log.info("Artifacts: %s | Log: %s", config.image_dir.resolve(), config.log_path.resolve())
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        log.info("Shutting down...")
    finally:
        server.server_close()
    raise SystemExit(0)


if __name__ == "__main__":
    main()
