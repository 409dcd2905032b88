"""API layer for JSON-speaking endpoints."""

from .json_api import JsonAPI

__all__ = ["JsonAPI"]
