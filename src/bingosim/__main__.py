"""Entry point for running the simulator via ``python -m bingosim``."""

from __future__ import annotations

import logging
import os

import uvicorn


def main() -> None:
    """Start the FastAPI-powered Bingo web server."""

    level = os.environ.get("BINGOSIM_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    host = os.environ.get("BINGOSIM_HOST", "0.0.0.0")
    port = int(os.environ.get("BINGOSIM_PORT", "8000"))
    uvicorn.run("bingosim.ui:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
