"""
Utility modules for the back-office API
"""
from .config_loader import load_app_config, get_app_config

__all__ = [
    'load_app_config',
    'get_app_config',
]
