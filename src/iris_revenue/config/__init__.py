"""Configuration module for the revenue reporting core."""

from iris_revenue.config.logging import configure_logging
from iris_revenue.config.settings import FlatSettings, get_settings

__all__ = ["FlatSettings", "get_settings", "configure_logging"]
