"""Configuration package for the valuation sync engine."""

from .settings import AppSettings, get_settings

__all__ = ["AppSettings", "get_settings"]
