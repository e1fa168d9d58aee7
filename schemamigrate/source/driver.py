"""The source driver interface and the registry of named drivers."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import BinaryIO
from urllib.parse import urlsplit


class SourceDriver(ABC):
    """Reads migrations from somewhere.

    Missing versions or files are reported with FileNotFoundError.
    """

    @abstractmethod
    def open(self, url: str) -> "SourceDriver":
        """Return a new driver configured from ``url``."""

    @abstractmethod
    def close(self) -> None:
        """Release whatever the driver holds."""

    @abstractmethod
    def first(self) -> int:
        """Return the first available version."""

    @abstractmethod
    def prev(self, version: int) -> int:
        """Return the version before ``version``."""

    @abstractmethod
    def next(self, version: int) -> int:
        """Return the version after ``version``."""

    @abstractmethod
    def read_up(self, version: int) -> tuple[BinaryIO, str]:
        """Return the unread up body and an identifier for ``version``."""

    @abstractmethod
    def read_down(self, version: int) -> tuple[BinaryIO, str]:
        """Return the unread down body and an identifier for ``version``."""

    def __enter__(self) -> "SourceDriver":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


_lock = threading.RLock()
_drivers: dict[str, SourceDriver] = {}


def register(name: str, driver: SourceDriver) -> None:
    """Register ``driver`` under the URL scheme ``name``."""
    if driver is None:
        raise ValueError("Register driver is nil")
    with _lock:
        if name in _drivers:
            raise ValueError(f"Register called twice for driver {name}")
        _drivers[name] = driver


def open_source(url: str) -> SourceDriver:
    """Open a new driver chosen by the scheme of ``url``."""
    scheme = urlsplit(url).scheme
    if not scheme:
        raise ValueError("source driver: invalid URL scheme")
    with _lock:
        driver = _drivers.get(scheme)
    if driver is None:
        raise ValueError(
            f"source driver: unknown driver '{scheme}' (forgotten import?)"
        )
    return driver.open(url)


def list_drivers() -> list[str]:
    """Return the registered driver names, sorted."""
    with _lock:
        return sorted(_drivers)