"""Configuration module for realmsync."""
from .settings import AppConfig, load_settings

__all__ = ["AppConfig", "load_settings"]
