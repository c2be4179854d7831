"""
Command-line interface for the wdaorch package.
"""

from .main import main_cli

__all__ = [
    "main_cli",
]
