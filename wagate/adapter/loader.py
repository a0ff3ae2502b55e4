"""
Resolves the configured protocol engine from an import string.
"""

import importlib

from wagate.core.logging.logger import get_app_logger

from .interface import AdapterFactory


def load_adapter_factory(import_string: str) -> AdapterFactory:
    """
    Import ``package.module:attribute`` and return the adapter factory.

    If the attribute is a class or a zero-argument callable that is not
    itself a factory, it is called to build one.

    Raises:
        ValueError: If the import string is malformed
        ImportError: If the module or attribute cannot be found
        TypeError: If the resolved object is not an AdapterFactory
    """
    module_name, sep, attribute = import_string.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(
            f"ADAPTER_FACTORY must look like 'package.module:attribute', got {import_string!r}"
        )

    module = importlib.import_module(module_name)
    try:
        target = getattr(module, attribute)
    except AttributeError as e:
        raise ImportError(f"{module_name} has no attribute {attribute}") from e

    if isinstance(target, type) or not isinstance(target, AdapterFactory):
        factory = target()
    else:
        factory = target
    if not isinstance(factory, AdapterFactory):
        raise TypeError(f"{import_string} does not provide an AdapterFactory")

    get_app_logger().info(f"Protocol adapter loaded: {import_string}")
    return factory
