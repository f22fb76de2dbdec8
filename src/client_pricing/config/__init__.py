"""Config subpackage - settings and logging setup."""
from .settings import Settings, TierDefinition, get_settings

__all__ = ['Settings', 'TierDefinition', 'get_settings']
