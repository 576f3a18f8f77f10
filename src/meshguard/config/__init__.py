"""
meshguard configuration system.

Provides:
- Pydantic-based settings (environment variables, .env files)
- Detection baseline loading from YAML
"""

from meshguard.config.baseline import Baseline, ServiceSpec, load_baseline
from meshguard.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "Baseline",
    "ServiceSpec",
    "load_baseline",
]
