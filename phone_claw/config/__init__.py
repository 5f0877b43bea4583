# Config Module
from .settings import (
    CustomProvider,
    PROVIDER_PRESETS,
    Settings,
    get_settings,
    save_settings,
)

__all__ = ["Settings", "CustomProvider", "PROVIDER_PRESETS", "get_settings", "save_settings"]
