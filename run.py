#!/usr/bin/env python3
"""
Custody Ledger Entry Point

Starts the FastAPI server with the ledger configured from CUSTODY_* settings.
"""

import sys

import uvicorn

from custody_ledger.api import app
from custody_ledger.config import get_config
from custody_ledger.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, fmt=config.log_format)

    logger.info(f"Starting custody ledger on http://{config.api_host}:{config.api_port}")
    logger.info(f"Storage: {config.database_url}, cap: {config.bank_cap} whole units")

    try:
        uvicorn.run(app, host=config.api_host, port=config.api_port)
    except KeyboardInterrupt:
        logger.info("Shutting down custody ledger")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)
