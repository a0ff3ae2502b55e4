"""Logging module for wagate."""

from .logger import get_app_logger, get_logger, get_session_logger, setup_app_logging

__all__ = ["get_app_logger", "get_logger", "get_session_logger", "setup_app_logging"]
