"""HTTP control API."""

from .app import create_app, gateway_error_handler

__all__ = ["create_app", "gateway_error_handler"]
