"""
Naina HealthScribe

Client-side data layer for clinical encounter transcription: provider
preferences with a local fallback, provider-scoped patient records, and
submission of recorded encounters to the medical scribe service.
"""

from .app import HealthScribeApp
from .config.settings import HealthScribeSettings, load_settings
from .exceptions import ConfigurationError, HealthScribeError

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "HealthScribeApp",
    "HealthScribeError",
    "HealthScribeSettings",
    "load_settings",
]
