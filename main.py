"""Entry point for running the NiceGUI mat pilot panel."""

from matpilot.app import run
from matpilot.logging_config import setup_logging


if __name__ == "__main__":
    setup_logging()
    run(reload=False, host="0.0.0.0", port=8080)
