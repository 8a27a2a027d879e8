"""
Utility Modules

Configuration loading utilities.
"""

from follower_insights.utils.config import load_config, Config

__all__ = ["load_config", "Config"]
