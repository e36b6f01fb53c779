"""FastAPI server runner."""

from __future__ import annotations

import argparse

import uvicorn

from lending_core.api.app import create_app
from lending_core.config.loader import load_config
from lending_core.context import AppContext
from lending_core.logging import get_logger, setup_logging

logger = get_logger(__name__)


def main(argv: list[str] | None = None) -> None:
    """Run the FastAPI server."""
    parser = argparse.ArgumentParser(prog="lending-api", description="Lending analytics read API")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(level=config.logging.level, log_format=config.logging.format)
    app = create_app(AppContext.from_config(config))

    logger.info("api_starting", host=config.api.host, port=config.api.port)
    try:
        uvicorn.run(
            app,
            host=config.api.host,
            port=config.api.port,
            log_config=None,  # Use our structlog setup
        )
    except Exception as e:
        logger.error("api_start_failed", error=str(e))
        raise


if __name__ == "__main__":
    main()
