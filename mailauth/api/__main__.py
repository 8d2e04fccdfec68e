"""
mailauth.api.__main__ - API server entry point

Usage:
    python -m mailauth.api --port 8000 --create-tables
"""

import argparse
import asyncio
import logging

import uvicorn

from mailauth.models.database import init_db
from mailauth.settings import get_settings


def main() -> None:
    """Parse arguments and serve the API."""
    settings = get_settings()

    parser = argparse.ArgumentParser(
        prog="mailauth-api",
        description="Serve the mailauth OAuth email API",
    )
    parser.add_argument("--host", default=settings.api_host, help="Bind address")
    parser.add_argument("--port", type=int, default=settings.api_port, help="Bind port")
    parser.add_argument(
        "--log-level",
        default=settings.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help=f"Logging level (default: {settings.log_level})",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create database tables before serving (development only; use Alembic otherwise)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    if args.create_tables:
        asyncio.run(init_db(settings.database_url))

    uvicorn.run(
        "mailauth.api.main:app",
        host=args.host,
        port=args.port,
        log_level=args.log_level.lower(),
    )


if __name__ == "__main__":
    main()
