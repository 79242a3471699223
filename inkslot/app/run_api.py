"""Runtime entrypoint for the booking API."""
import argparse
import asyncio
import logging

import uvicorn

from inkslot.app.core.constants import LOG_FILE, LOG_LEVEL_NAME
from inkslot.app.core.logger import configure_logging

logger = logging.getLogger("inkslot")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the inkslot booking API")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="auto-reload on code changes (dev only)")
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="create tables and the overlap constraint before serving",
    )
    return parser.parse_args(argv)


async def _init_db() -> None:
    from inkslot.app.core.db import dispose_engine, init_db

    try:
        await init_db()
        logger.info("Database schema ready")
    finally:
        await dispose_engine()


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    configure_logging(LOG_LEVEL_NAME, LOG_FILE)

    if args.init_db:
        asyncio.run(_init_db())

    logger.info("Starting API on %s:%s", args.host, args.port)
    uvicorn.run(
        "inkslot.api.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_config=None,
    )


if __name__ == "__main__":
    main()
