"""
CovenantWatch API entry point.

Usage:
    uvicorn covenantwatch.api.app:app --host 0.0.0.0 --port 8000

Re-exports the app from covenantwatch.main so both entry points work.
"""

from covenantwatch.main import app

__all__ = ["app"]
