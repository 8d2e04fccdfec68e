"""
mailauth.api - FastAPI REST API

Provides the REST API for OAuth configuration, authorization and email sending.

Usage:
    uvicorn mailauth.api.main:app --reload
"""

from mailauth.api.main import app, create_app

__all__ = ["app", "create_app"]
