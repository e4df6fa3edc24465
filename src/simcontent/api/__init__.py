"""FastAPI application exposing schema and migration endpoints."""

from .app import create_app

__all__ = ["create_app"]
