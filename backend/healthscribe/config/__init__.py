from .settings import HealthScribeSettings, load_settings

__all__ = ["HealthScribeSettings", "load_settings"]
