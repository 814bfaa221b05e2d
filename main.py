"""Command-line interface for the chatroom service."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

from chatroom.config import Settings, load_settings
from chatroom.database import Database

logger = logging.getLogger("chatroom.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Chatroom service utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML configuration file (default: config/chatroom.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the chatroom database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP service")
    for target in (parser, serve_parser):
        target.add_argument("--host", default="127.0.0.1", help="Bind address")
        target.add_argument(
            "--port",
            type=int,
            default=3000,
            help="Port for the HTTP service (default: 3000)",
        )

    return parser.parse_args(argv)


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(*, settings: Settings, database: Database, host: str, port: int) -> None:
    from chatroom.application import create_app
    import uvicorn

    app = create_app(database=database, settings=settings, initialize_database=False)
    logger.info("Starting chatroom on http://%s:%s", host, port)
    uvicorn.run(app, host=host, port=port, log_level="info")


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

    args = _parse_args(argv)
    config_path: Optional[Path] = Path(args.config) if args.config else None
    settings = load_settings(config_path)
    database = _initialise_database(settings)

    if args.command == "serve":
        _serve(settings=settings, database=database, host=args.host, port=args.port)
    elif args.command == "init-db":
        print("Database initialisation complete.")


if __name__ == "__main__":
    main()
