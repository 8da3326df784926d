"""CLI entrypoint for the image task queue server."""

from __future__ import annotations

import argparse
import logging
import sys

import uvicorn
from pydantic import ValidationError

from image_task_queue import __version__
from image_task_queue.backend import BackendFactory
from image_task_queue.config import BackendSettings, QueueSettings
from image_task_queue.logging import configure_logging
from image_task_queue.server.app import create_app
from image_task_queue.server.config import ServerSettings

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="image-task-queue",
        description="In-process image generation task queue with live updates",
    )
    parser.add_argument("--version", action="version", version=f"image-task-queue {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API, event stream and scheduler")
    serve.add_argument("--host", default=None, help="Bind address (defaults to HOST or 127.0.0.1)")
    serve.add_argument("--port", type=int, default=None, help="Port (defaults to PORT or 3000)")
    serve.add_argument(
        "--backend",
        choices=["pollinations", "simulated"],
        default=None,
        help="Execution backend (defaults to IMAGE_BACKEND_PROVIDER or pollinations)",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        queue_settings = QueueSettings()
        backend_settings = BackendSettings()
        server_settings = ServerSettings()
        if args.backend is not None:
            backend_settings = backend_settings.model_copy(update={"provider": args.backend})
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(queue_settings.log_level)

    try:
        if args.command == "serve":
            host = args.host or server_settings.host
            port = args.port or server_settings.port
            app = create_app(
                settings=server_settings,
                queue_settings=queue_settings,
                backend=BackendFactory.create(backend_settings),
            )
            logger.info(
                "Starting server",
                extra={"host": host, "port": port, "backend": backend_settings.provider},
            )
            uvicorn.run(app, host=host, port=port, log_config=None)
            return 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
