"""
Configuration management for Backend WalletSync.

Loads and validates settings from environment variables and an optional .env
file. Exposes a single source of truth for all service configuration.
"""

from backend_walletsync.config.settings import Settings, get_settings  # noqa: F401

__all__ = ["Settings", "get_settings"]
