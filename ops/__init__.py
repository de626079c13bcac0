"""
Operations package for the Grizzly Bear Population Unit Pipeline

This package centralizes all operational tools including:
- Configuration management
- Pipeline orchestration

The Config class is exposed at the package level for convenient imports:
    from ops import Config
"""

from .config_loader import Config

__all__ = ["Config"]
