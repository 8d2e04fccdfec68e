"""
mailauth.api.v1.endpoints - API Endpoints

Contains all v1 API endpoint modules.
"""

from mailauth.api.v1.endpoints import oauth

__all__ = ["oauth"]
