"""
Configuration Module

Centralized configuration management for Quarry.
"""

from quarry.config.settings import (
    EmbeddingSettings,
    IngestionSettings,
    LLMSettings,
    ObservabilitySettings,
    Settings,
    VectorStoreSettings,
    get_settings,
)

__all__ = [
    "EmbeddingSettings",
    "IngestionSettings",
    "LLMSettings",
    "ObservabilitySettings",
    "Settings",
    "VectorStoreSettings",
    "get_settings",
]
