"""Configuration module for the Águia dashboard."""

from aguia_dashboard.config.logging import configure_logging
from aguia_dashboard.config.settings import (
    Settings,
    get_settings,
    is_admin_email,
    is_conciliacao_enabled,
)

__all__ = [
    "Settings",
    "get_settings",
    "is_admin_email",
    "is_conciliacao_enabled",
    "configure_logging",
]
