"""HTTP surface: the FastAPI app factory and its routes."""

from observable_api.api.main import create_app

__all__ = ["create_app"]
