"""Command-line interface for the user API service."""

import argparse
import logging
import sys
from typing import Sequence

from .config import settings
from .database import Database

logger = logging.getLogger("userapi.cli")

KNOWN_COMMANDS = {"serve", "init-db"}


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="User API service")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Create the database tables")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default=settings.host, help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help=f"Port for the HTTP API (default: {settings.port})",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    if not args_list:
        args_list = ["serve"]
    elif args_list[0] not in KNOWN_COMMANDS and not any(
        flag in args_list for flag in ("-h", "--help")
    ):
        args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _serve(host: str, port: int) -> None:
    from .api import create_app
    import uvicorn

    logger.info("starting API on http://%s:%s", host, port)
    uvicorn.run(create_app(settings), host=host, port=port, log_level=settings.log_level.lower())


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    args = _parse_args(argv)

    if args.command == "serve":
        _serve(args.host, args.port)
    elif args.command == "init-db":
        database = Database(settings.sqlalchemy_url, echo=settings.database_echo)
        database.init_db()
        database.dispose()
        print("Database initialisation complete.")


if __name__ == "__main__":
    main()
