"""Configuration module for logpond."""

from logpond.config.settings import (
    GeoIPSettings,
    InputSettings,
    OutputSettings,
    PipelineSettings,
    Settings,
    UserAgentSettings,
    get_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "InputSettings",
    "OutputSettings",
    "UserAgentSettings",
    "GeoIPSettings",
    "PipelineSettings",
]
