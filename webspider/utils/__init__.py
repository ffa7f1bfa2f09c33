"""
Utility modules for the spider.
"""

from .config import Config, ConfigManager, SpiderConfig, load_config, validate_config

__all__ = ['Config', 'ConfigManager', 'SpiderConfig', 'load_config', 'validate_config']
