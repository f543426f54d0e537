"""
API Module for the lead qualification engine.

FastAPI application with routes for:
- Conversations and qualification turns
- Lead read models
- Health and metrics
"""

from .main import create_app, app

__all__ = ["create_app", "app"]
