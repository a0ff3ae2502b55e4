"""
wagate core components: configuration, logging, auth context, exceptions
and background task supervision.
"""

from .config.settings import settings
from .logging import get_app_logger, get_logger, setup_app_logging

__all__ = ["settings", "get_logger", "get_app_logger", "setup_app_logging"]
