"""Analytics providers - destinations for events."""

from .base import (
    BaseProvider,
    FlushCapable,
    GroupCapable,
    IdentifyCapable,
    InitCapable,
    PageCapable,
    ProviderEntry,
    ProviderInitOptions,
    ShutdownCapable,
    ToggleMixin,
    capabilities,
    has_flush,
    has_group,
    has_identify,
    has_init,
    has_page,
    has_shutdown,
    is_provider,
)
from .console import ConsoleProvider
from .file import FileProvider, RotatingFileProvider
from .legacy import LegacyConfigProvider, ProviderEventConfig
from .memory import RecordingProvider
from .zmq import ZmqProvider, ZmqReceiver

__all__ = [
    "BaseProvider",
    "FlushCapable",
    "GroupCapable",
    "IdentifyCapable",
    "InitCapable",
    "PageCapable",
    "ProviderEntry",
    "ProviderInitOptions",
    "ShutdownCapable",
    "ToggleMixin",
    "capabilities",
    "has_flush",
    "has_group",
    "has_identify",
    "has_init",
    "has_page",
    "has_shutdown",
    "is_provider",
    "ConsoleProvider",
    "FileProvider",
    "RotatingFileProvider",
    "LegacyConfigProvider",
    "ProviderEventConfig",
    "RecordingProvider",
    "ZmqProvider",
    "ZmqReceiver",
]
