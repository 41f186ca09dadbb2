import logging
import os
import sys

import uvicorn
from loguru import logger

from main import app as api_app


def main() -> None:
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level)
    logger.remove()
    logger.add(sys.stderr, level=level)

    api_host = os.getenv("API_HOST", "0.0.0.0")
    api_port = int(os.getenv("API_PORT", "8000"))
    logging.getLogger(__name__).info("Starting load test API on %s:%s", api_host, api_port)
    uvicorn.run(api_app, host=api_host, port=api_port, log_level=os.getenv("UVICORN_LOG_LEVEL", "info"))


if __name__ == "__main__":
    main()
