"""
Configuration settings for FlowForge

The actual settings implementation is in settings.py using pydantic-settings.

Usage:
    from flowforge.core.config import settings
    # or
    from flowforge.core.settings import get_settings
    settings = get_settings()
"""
from flowforge.core.settings import Settings, get_settings, settings

__all__ = ["Settings", "get_settings", "settings"]
