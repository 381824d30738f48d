"""Configuration for x1explorer."""

from .settings import Settings, get_settings
from .logging_config import configure_logging

__all__ = [
    'Settings',
    'get_settings',
    'configure_logging',
]
