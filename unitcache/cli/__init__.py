"""
Unit Cache CLI Package

Command-line interface for loading units and maintaining the cache.
"""

from .cache_cli import main as cli_main

__all__ = ['cli_main']
