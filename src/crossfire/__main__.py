"""Entry point for running the Crossfire relay via ``python -m crossfire``."""

from __future__ import annotations

import logging

import uvicorn

from .config import settings


def main() -> None:
    """Start the FastAPI-powered Crossfire room relay."""

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "crossfire.relay:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
