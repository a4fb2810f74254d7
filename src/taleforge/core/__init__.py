"""Core utilities and configuration for the Tale Forge offline store.

This module contains:
- Configuration and settings management
- Logging setup
- Supabase client construction
"""
from .config import Settings, get_settings
from .logging import StructuredJsonFormatter, configure_logging

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Logging
    "StructuredJsonFormatter",
    "configure_logging",
]
