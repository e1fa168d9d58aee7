"""An in-memory source driver, mainly for tests."""

from __future__ import annotations

import errno
import io
import os
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Optional

from schemamigrate.source.driver import SourceDriver, register
from schemamigrate.source.migrations import Migrations


@dataclass
class StubConfig:
    """Configuration of the stub source; it has no settings."""


def _not_found(op: str, path: str) -> FileNotFoundError:
    return FileNotFoundError(
        errno.ENOENT, f"{op}: {os.strerror(errno.ENOENT)}", path
    )


@dataclass(eq=False)
class StubSource(SourceDriver):
    """Source whose migrations are set directly; bodies are identifiers."""

    url: str = ""
    instance: Any = None
    migrations: Migrations = field(default_factory=Migrations)
    config: Optional[StubConfig] = None

    def open(self, url: str) -> "StubSource":
        return StubSource(url=url, config=StubConfig())

    def close(self) -> None:
        return None

    def first(self) -> int:
        version = self.migrations.first()
        if version is None:
            raise _not_found("first", self.url)
        return version

    def prev(self, version: int) -> int:
        found = self.migrations.prev(version)
        if found is None:
            raise _not_found(f"prev for version {version}", self.url)
        return found

    def next(self, version: int) -> int:
        found = self.migrations.next(version)
        if found is None:
            raise _not_found(f"next for version {version}", self.url)
        return found

    def read_up(self, version: int) -> tuple[BinaryIO, str]:
        m = self.migrations.up(version)
        if m is None:
            raise _not_found(f"read up version {version}", self.url)
        return io.BytesIO(m.identifier.encode()), f"{version}.up.stub"

    def read_down(self, version: int) -> tuple[BinaryIO, str]:
        m = self.migrations.down(version)
        if m is None:
            raise _not_found(f"read down version {version}", self.url)
        return io.BytesIO(m.identifier.encode()), f"{version}.down.stub"


def with_instance(instance: Any, config: Optional[StubConfig]) -> StubSource:
    """Return a stub source wrapping an existing instance."""
    return StubSource(instance=instance, config=config)


register("stub", StubSource())