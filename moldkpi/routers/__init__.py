"""API routers for all endpoints."""

from moldkpi.routers import kpis

__all__ = ["kpis"]
