"""Configuration system."""

from lending_core.config.loader import load_config
from lending_core.config.schema import AppConfig

__all__ = ["AppConfig", "load_config"]
