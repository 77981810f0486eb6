#!/usr/bin/env python3
"""
Development server for the IP Provenance API, with auto-reload.
Refuses to start without the pinning and ledger gateway settings.
"""

import os
import sys
import uvicorn
from pathlib import Path

sys.path.append(str(Path(__file__).parent.parent))

from dotenv import load_dotenv
load_dotenv()

import structlog

structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.dev.ConsoleRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

# Without these every registration fails at its first upload or ledger call
REQUIRED_VARS = ("PINATA_JWT", "LEDGER_API_URL")


def main():
    missing = [var for var in REQUIRED_VARS if not os.getenv(var)]
    if missing:
        logger.error("Missing required environment variables", missing=missing)
        sys.exit(1)

    from ip_provenance.core.database import check_database_connection
    if not check_database_connection():
        logger.warning("Off-chain index unreachable, registrations will carry persistence warnings",
                       dsn_configured=bool(os.getenv("DB_DSN")))

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", 8000))
    debug = os.getenv("DEBUG", "true").lower() == "true"
    logger.info("Starting development server", host=host, port=port, reload=debug,
                docs=f"http://{host}:{port}/docs")

    uvicorn.run(
        "ip_provenance.main:app",
        host=host,
        port=port,
        reload=debug,
        log_level="debug" if debug else "info",
    )


if __name__ == "__main__":
    main()
