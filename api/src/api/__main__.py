"""API entry point for running as a module: python -m api."""

from __future__ import annotations

import logging
import sys

import uvicorn
from kairos.config import get_settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    stream=sys.stdout,
)


def main() -> None:
    settings = get_settings()
    uvicorn.run("api.main:app", host=settings.api_host, port=settings.api_port, log_config=None)


if __name__ == "__main__":
    main()
