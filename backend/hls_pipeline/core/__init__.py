"""Core module for configuration, logging, storage and infrastructure clients."""

from hls_pipeline.core.config import Settings, settings

__all__ = [
    "Settings",
    "settings",
]
