"""
Command-line interface for ravel.
"""

from .main import main

__all__ = ["main"]
