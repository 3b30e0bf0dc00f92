"""
FastAPI dependencies for API routes.
"""

from fastapi import Request

from covenantwatch.service import CovenantWatchService


def get_service(request: Request) -> CovenantWatchService:
    """The service instance built at startup."""
    return request.app.state.service
