"""Entrypoint for launching the matpilot FastAPI server."""
from __future__ import annotations

import os

import uvicorn

from matpilot.logging_config import setup_logging


def main() -> None:
    setup_logging(os.environ.get("MATPILOT_LOG_LEVEL", "INFO"), os.environ.get("MATPILOT_LOG_FILE"))
    uvicorn.run("matpilot.server.app:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
