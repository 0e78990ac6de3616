from __future__ import annotations

import argparse
import copy
import os

import anyio
import uvicorn
import uvicorn.config

from keypool.core.config.settings import Settings, get_settings


def _build_log_config(settings: Settings) -> dict:
    # Uvicorn's default LOGGING_CONFIG does not attach handlers to the `keypool.*` namespace.
    config = copy.deepcopy(uvicorn.config.LOGGING_CONFIG)
    loggers = config.setdefault("loggers", {})
    loggers["keypool"] = {
        "handlers": ["default"],
        "level": settings.log_level,
        "propagate": False,
    }
    return config


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the keypool-lb proxy server.")
    parser.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8787")))
    parser.add_argument("--ssl-certfile", default=os.getenv("SSL_CERTFILE"))
    parser.add_argument("--ssl-keyfile", default=os.getenv("SSL_KEYFILE"))

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser(
        "purge-expired",
        help="Delete expired entries from the database state store and exit.",
    )

    return parser.parse_args()


def main() -> None:
    args = _parse_args()

    if args.command is None:
        settings = get_settings()
        if bool(args.ssl_certfile) ^ bool(args.ssl_keyfile):
            raise SystemExit("Both --ssl-certfile and --ssl-keyfile must be provided together.")

        uvicorn.run(
            "keypool.main:app",
            host=args.host,
            port=args.port,
            ssl_certfile=args.ssl_certfile,
            ssl_keyfile=args.ssl_keyfile,
            log_config=_build_log_config(settings),
            access_log=settings.access_log_enabled,
        )
        return

    if args.command == "purge-expired":
        from keypool.core.store.db import DatabaseStore
        from keypool.db.session import SessionLocal, close_db, init_db

        async def _run() -> None:
            try:
                await init_db()
                purged = await DatabaseStore(SessionLocal).purge_expired()
                print(f"purged_entries={purged}")
            finally:
                await close_db()

        anyio.run(_run)
        return

    raise SystemExit(f"Unknown command: {args.command}")


if __name__ == "__main__":
    main()
