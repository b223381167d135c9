"""Public API routers exposed by the FastAPI application."""

from . import gateway

__all__ = ["gateway"]
