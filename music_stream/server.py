"""
Process entry point: configure logging and serve the app with uvicorn.

On SIGINT/SIGTERM uvicorn stops accepting connections and gives in-flight
requests ``SHUTDOWN_GRACE_SECONDS`` to finish before exiting.
"""

from __future__ import annotations

import logging

import uvicorn

from music_stream.config import get_settings

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )
    logger.info("Starting API server on %s:%s", settings.host, settings.port)
    uvicorn.run(
        "music_stream.app:app",
        host=settings.host,
        port=settings.port,
        timeout_graceful_shutdown=settings.shutdown_grace_seconds,
        log_config=None,
    )


if __name__ == "__main__":
    main()
