"""
Gateway plugins.

- GatewayCorePlugin: logging, HTTP session, session manager, bus, routes
"""

from .gateway_core_plugin import GatewayCorePlugin

__all__ = ["GatewayCorePlugin"]
