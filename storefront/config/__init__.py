"""
Storefront Backend
Configuration Module
"""
from .settings import ReportingSettings, Settings, get_settings

__all__ = ["ReportingSettings", "Settings", "get_settings"]
