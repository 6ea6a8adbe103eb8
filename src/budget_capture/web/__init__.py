"""Local web API for the capture/extraction session."""

from .app import build_workspace, create_app, create_app_from_env

__all__ = ["create_app", "create_app_from_env", "build_workspace"]
