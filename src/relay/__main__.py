"""Change-event relay entry point. Use --help for usage."""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from prometheus_client import start_http_server

from config import load_config
from config.config import RelayConfig
from core.logging import setup_logging
from core.utils import generate_worker_id
from relay.app import RelayApplication, build_broker, build_store
from relay.common.metrics import PrometheusMetrics
from relay.common.signals import install_shutdown_handlers
from relay.common.tracing import setup_tracing, shutdown_tracing

# Project root directory (where .env file is located)
# __main__.py is at src/relay/__main__.py, so root is 3 levels up
PROJECT_ROOT = Path(__file__).parent.parent.parent

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Relay an upstream change-event stream through Kafka into storage",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run stream connector, batch writer and DLQ consumer
    python -m relay

    # Local development: in-memory broker and store, no Kafka or MongoDB
    python -m relay --dev

    # Consumer side only (no upstream connection)
    python -m relay --no-stream

    # Expose Prometheus metrics
    python -m relay --metrics-port 9090
        """,
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config.yaml (default: src/config/config.yaml)",
    )
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Development mode: in-memory broker and store",
    )
    parser.add_argument(
        "--no-stream",
        action="store_true",
        help="Do not connect upstream; only consume the main and DLQ topics",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Port for Prometheus metrics server (default: observability.metrics_port, 0 disables)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-to-stdout",
        action="store_true",
        help="Send all log output to stdout only, skipping file handlers. "
        "Can also be set via LOG_TO_STDOUT environment variable.",
    )

    return parser.parse_args(argv)


def _env_flag(name: str) -> bool:
    return os.getenv(name, "false").lower() in ("true", "1", "yes")


def _load_config(args: argparse.Namespace) -> RelayConfig:
    overrides = {"storage": {"backend": "memory"}} if args.dev else None
    config = load_config(config_path=args.config, overrides=overrides, validate=False)
    config.validate(require_stream=not args.no_stream)
    return config


def _setup_logging(args: argparse.Namespace, config: RelayConfig, worker_id: str) -> None:
    observability = config.observability
    setup_logging(
        name="relay",
        log_dir=Path(os.getenv("LOG_DIR") or observability.log_dir),
        json_format=observability.json_logs,
        console_level=getattr(logging, args.log_level),
        worker_id=worker_id,
        log_to_stdout=args.log_to_stdout or observability.log_to_stdout or _env_flag("LOG_TO_STDOUT"),
    )


async def run(args: argparse.Namespace, config: RelayConfig, worker_id: str) -> None:
    metrics = PrometheusMetrics()
    metrics_port = args.metrics_port if args.metrics_port is not None else config.observability.metrics_port
    if metrics_port:
        start_http_server(metrics_port)
        logger.info("Metrics server started", extra={"port": metrics_port})

    shutdown_event = asyncio.Event()
    install_shutdown_handlers(shutdown_event)

    broker = build_broker(config, dev=args.dev)
    store = await build_store(config.storage, dev=args.dev)

    app = RelayApplication(
        config,
        broker,
        store,
        metrics=metrics,
        enable_stream=not args.no_stream,
        worker_id=worker_id,
    )
    await app.run_until(shutdown_event)


def main(argv: list[str] | None = None) -> int:
    load_dotenv(PROJECT_ROOT / ".env")
    args = parse_args(argv)

    try:
        config = _load_config(args)
    except (ValueError, FileNotFoundError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    worker_id = os.getenv("WORKER_ID") or generate_worker_id("relay")
    _setup_logging(args, config, worker_id)
    tracer_provider = setup_tracing(config.tracing)

    try:
        asyncio.run(run(args, config, worker_id))
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down...")
    except Exception:
        logger.exception("Relay terminated with error")
        return 1
    finally:
        shutdown_tracing(tracer_provider)

    logger.info("Relay shutdown complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
