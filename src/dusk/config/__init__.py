"""
Configuration module
"""

from dusk.config.dusk_config import (
    DuskConfig,
    ConfigDefaults,
    ENV_VAR_MAPPING,
    get_config,
    set_config,
)
from dusk.config.config_loader import ConfigLoader

__all__ = [
    "DuskConfig",
    "ConfigDefaults",
    "ENV_VAR_MAPPING",
    "ConfigLoader",
    "get_config",
    "set_config",
]
