"""
Command-line interface module.
"""

from .main import app

__all__ = [
    "app"
]
