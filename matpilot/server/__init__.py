"""FastAPI control server for matpilot."""
