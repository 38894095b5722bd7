"""Configuration for the analytics dispatch core."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .providers.base import BaseProvider
from .providers.console import ConsoleProvider
from .providers.file import FileProvider, RotatingFileProvider
from .providers.memory import RecordingProvider
from .providers.zmq import ZmqProvider
from .queue.persistent import DEFAULT_MAX_ITEMS, DEFAULT_TTL_MS, PersistentQueue
from .queue.stores import FileStore, KeyValueStore, MemoryStore, SqliteStore


@dataclass
class ProviderConfig:
    """One provider to register on startup."""
    type: str = "console"  # console | file | rotating_file | zmq | recording
    enabled: bool = True
    # Keyword arguments for the provider constructor
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class QueueConfig:
    """Offline queue configuration."""
    enabled: bool = False
    storage: str = "memory"  # memory | file | sqlite
    # Directory (file) or database path (sqlite)
    path: str | None = None
    storage_key: str = "analytics_queue"
    max_items: int = DEFAULT_MAX_ITEMS
    ttl_ms: int = DEFAULT_TTL_MS

    # Queue events while offline instead of dropping them
    queue_offline: bool = True


@dataclass
class ConsentConfig:
    """Initial consent state. Everything is denied unless granted here."""
    analytics: bool = False
    marketing: bool = False
    functional: bool = False
    personalization: bool = False

    def to_dict(self) -> dict[str, bool]:
        return {
            "analytics": self.analytics,
            "marketing": self.marketing,
            "functional": self.functional,
            "personalization": self.personalization,
        }


@dataclass
class ValidationConfig:
    """Catalog validation."""
    # None = decided by ANALYTICS_ENV
    enabled: Optional[bool] = None
    # Drop events whose payload does not match the catalog
    strict: bool = False


@dataclass
class SamplingConfig:
    """Event sampling."""
    enabled: bool = False
    default_rate: float = 1.0
    event_rates: dict[str, float] = field(default_factory=dict)


@dataclass
class DispatchConfig:
    """Main configuration container."""
    debug: bool = False
    scrub_pii: bool = False
    default_context: dict[str, Any] = field(default_factory=dict)
    providers: list[ProviderConfig] = field(default_factory=list)
    queue: QueueConfig = field(default_factory=QueueConfig)
    consent: ConsentConfig = field(default_factory=ConsentConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    sampling: SamplingConfig = field(default_factory=SamplingConfig)

    @classmethod
    def from_dict(cls, data: dict) -> DispatchConfig:
        """Create config from dictionary."""
        return cls(
            debug=bool(data.get("debug", False)),
            scrub_pii=bool(data.get("scrub_pii", False)),
            default_context=dict(data.get("default_context") or {}),
            providers=[ProviderConfig(**p) for p in data.get("providers") or []],
            queue=QueueConfig(**data.get("queue", {})),
            consent=ConsentConfig(**data.get("consent", {})),
            validation=ValidationConfig(**data.get("validation", {})),
            sampling=SamplingConfig(**data.get("sampling", {})),
        )

    @classmethod
    def from_yaml(cls, path: str) -> DispatchConfig:
        """Load config from YAML file."""
        import yaml
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_json(cls, path: str) -> DispatchConfig:
        """Load config from JSON file."""
        import json
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)


def create_provider(config: ProviderConfig) -> BaseProvider:
    """Instantiate a bundled provider from its config."""
    options = dict(config.options)
    if config.type == "console":
        return ConsoleProvider(**options)
    elif config.type == "file":
        return FileProvider(**options)
    elif config.type == "rotating_file":
        return RotatingFileProvider(**options)
    elif config.type == "zmq":
        return ZmqProvider(**options)
    elif config.type == "recording":
        return RecordingProvider(**options)
    raise ValueError(f"Unknown provider type: {config.type}")


def create_store(config: QueueConfig) -> KeyValueStore:
    if config.storage == "memory":
        return MemoryStore()
    elif config.storage == "file":
        return FileStore(config.path or "./analytics-queue")
    elif config.storage == "sqlite":
        return SqliteStore(config.path or "analytics_queue.db")
    raise ValueError(f"Unknown queue storage: {config.storage}")


def create_queue(config: QueueConfig) -> PersistentQueue | None:
    """Build the offline queue, or None when disabled."""
    if not config.enabled:
        return None
    return PersistentQueue(
        storage_key=config.storage_key,
        max_items=config.max_items,
        ttl_ms=config.ttl_ms,
        store=create_store(config),
    )
