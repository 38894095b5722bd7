"""File-based providers."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import IO, Optional

from ..events.types import AnalyticsEvent
from .base import ProviderInitOptions, ToggleMixin


@dataclass
class FileProvider(ToggleMixin):
    """
    Provider that appends events to a file (JSONL format).

    Each event is written as a single JSON line for easy parsing.
    """
    path: str
    id: str = "file"
    encoding: str = "utf-8"

    # Internal state
    _file: Optional[IO[str]] = field(default=None, init=False, repr=False)

    def init(self, options: ProviderInitOptions) -> None:
        self._open()

    def _open(self) -> None:
        if self._file is None:
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self.path, "a", encoding=self.encoding)

    def track(self, event: AnalyticsEvent) -> None:
        self._open()
        self._file.write(json.dumps(event.to_dict(), default=str) + "\n")

    def flush(self) -> None:
        if self._file:
            self._file.flush()

    def shutdown(self) -> None:
        if self._file:
            self._file.close()
            self._file = None
        self.set_enabled(False)


@dataclass
class RotatingFileProvider(ToggleMixin):
    """
    Provider that writes events to rotating files.

    Creates new files based on time interval or size.
    Pattern can include strftime codes for time-based rotation.
    """
    id: str = "rotating_file"

    # Path pattern (can include strftime codes like %Y%m%d)
    path_pattern: str = "analytics-%Y%m%d-%H.jsonl"

    # Base directory
    directory: str = "./analytics"

    # Max file size in bytes (0 = no size limit)
    max_bytes: int = 100 * 1024 * 1024  # 100MB

    encoding: str = "utf-8"

    # Internal state
    _current_base: str = field(default="", init=False, repr=False)
    _current_path: str = field(default="", init=False, repr=False)
    _current_file: Optional[IO[str]] = field(default=None, init=False, repr=False)
    _current_size: int = field(default=0, init=False, repr=False)

    def init(self, options: ProviderInitOptions) -> None:
        Path(self.directory).mkdir(parents=True, exist_ok=True)

    def track(self, event: AnalyticsEvent) -> None:
        expected_path = os.path.join(self.directory, datetime.now().strftime(self.path_pattern))

        if expected_path != self._current_base or self._needs_size_rotation():
            self._rotate(expected_path)

        line = json.dumps(event.to_dict(), default=str) + "\n"
        self._current_file.write(line)
        self._current_size += len(line.encode(self.encoding))

    def flush(self) -> None:
        if self._current_file:
            self._current_file.flush()

    def shutdown(self) -> None:
        if self._current_file:
            self._current_file.close()
            self._current_file = None
        self.set_enabled(False)

    def _needs_size_rotation(self) -> bool:
        if self.max_bytes == 0:
            return False
        return self._current_size >= self.max_bytes

    def _rotate(self, new_path: str) -> None:
        if self._current_file:
            self._current_file.close()

        Path(self.directory).mkdir(parents=True, exist_ok=True)

        # If size-based rotation, add suffix
        if new_path == self._current_base and self._needs_size_rotation():
            base, ext = os.path.splitext(new_path)
            suffix = 1
            while os.path.exists(f"{base}.{suffix}{ext}"):
                suffix += 1
            new_path = f"{base}.{suffix}{ext}"
        else:
            self._current_base = new_path

        self._current_path = new_path
        self._current_file = open(new_path, "a", encoding=self.encoding)
        self._current_size = os.path.getsize(new_path) if os.path.exists(new_path) else 0
