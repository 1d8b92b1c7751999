"""
Entrypoint: load .env and config, init logging, build the app, serve it
"""

import sys

import structlog
import uvicorn
from dotenv import load_dotenv

from sheetrelay.app import create_app
from sheetrelay.config import load_config
from sheetrelay.errors import ConfigurationError
from sheetrelay.logging_setup import configure_logging


def main():
    """Initialize dependencies and start the relay server"""
    # Load environment variables from .env file
    load_dotenv()

    try:
        config = load_config()
    except ConfigurationError as e:
        print(f"Fatal error during startup: {e.message}", file=sys.stderr)
        sys.exit(1)

    configure_logging(config.log_level, json=config.log_json)
    logger = structlog.get_logger(__name__)

    app = create_app(config)
    logger.info(
        "relay_starting",
        host=config.host,
        port=config.port,
        source_mode=config.source.mode,
        allowed_origins=list(config.allowed_origins),
        fetch_timeout=config.fetch_timeout,
    )
    uvicorn.run(app, host=config.host, port=config.port, log_config=None)


if __name__ == "__main__":
    main()
