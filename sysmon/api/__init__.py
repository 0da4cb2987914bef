"""REST API for sysmon.

Modules:
    rest_api: Flask application factory and API endpoints
"""

from .rest_api import create_app, start_api

__all__ = ["create_app", "start_api"]
