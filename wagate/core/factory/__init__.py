"""
Application factory: the plugin based builder and its plugin protocol.
"""

from .gateway_builder import GatewayBuilder
from .plugin import GatewayPlugin

__all__ = ["GatewayBuilder", "GatewayPlugin"]
