"""
Resource handlers and the registry that maps resource kinds to them.
"""

from .base import PowerControl, ResourceHandler
from .registry import HandlerRegistry, build_default_registry

__all__ = ["PowerControl", "ResourceHandler", "HandlerRegistry", "build_default_registry"]
