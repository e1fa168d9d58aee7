"""Source driver over named in-memory assets."""

from __future__ import annotations

import errno
import io
import os
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Callable, Iterable, Optional

from schemamigrate.source.driver import SourceDriver, register
from schemamigrate.source.migrations import Migrations, ParseError, parse

AssetFunc = Callable[[str], bytes]


@dataclass
class AssetSource:
    """Asset names together with the function that loads an asset."""

    names: list[str]
    asset_func: AssetFunc


def resource(names: Iterable[str], asset_func: AssetFunc) -> AssetSource:
    """Bundle asset names and their loader."""
    return AssetSource(names=list(names), asset_func=asset_func)


def _not_found(op: str, path: str) -> FileNotFoundError:
    return FileNotFoundError(
        errno.ENOENT, f"{op}: {os.strerror(errno.ENOENT)}", path
    )


@dataclass(eq=False)
class BindataSource(SourceDriver):
    """Reads migration bodies by calling an asset loader."""

    path: str = "<bindata>"
    asset_source: Optional[AssetSource] = None
    migrations: Migrations = field(default_factory=Migrations)

    def open(self, url: str) -> SourceDriver:
        raise ValueError(
            "bindata source cannot be opened from a URL; use with_instance()"
        )

    def close(self) -> None:
        return None

    def first(self) -> int:
        version = self.migrations.first()
        if version is None:
            raise _not_found("first", self.path)
        return version

    def prev(self, version: int) -> int:
        found = self.migrations.prev(version)
        if found is None:
            raise _not_found(f"prev for version {version}", self.path)
        return found

    def next(self, version: int) -> int:
        found = self.migrations.next(version)
        if found is None:
            raise _not_found(f"next for version {version}", self.path)
        return found

    def read_up(self, version: int) -> tuple[BinaryIO, str]:
        m = self.migrations.up(version)
        if m is None or self.asset_source is None:
            raise _not_found(f"read version {version}", self.path)
        return io.BytesIO(self.asset_source.asset_func(m.raw)), m.identifier

    def read_down(self, version: int) -> tuple[BinaryIO, str]:
        m = self.migrations.down(version)
        if m is None or self.asset_source is None:
            raise _not_found(f"read version {version}", self.path)
        return io.BytesIO(self.asset_source.asset_func(m.raw)), m.identifier


def with_instance(instance: Any) -> BindataSource:
    """Return a driver over the assets of an AssetSource."""
    if not isinstance(instance, AssetSource):
        raise TypeError("expects AssetSource")
    driver = BindataSource(asset_source=instance)
    for name in instance.names:
        try:
            m = parse(name)
        except ParseError:
            continue
        if not driver.migrations.append(m):
            raise ValueError(f"unable to parse file {name}")
    return driver


register("bindata", BindataSource())