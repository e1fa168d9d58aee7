"""Source driver over a directory-like tree.

The tree is any object shaped like ``importlib.resources.abc.Traversable``,
for example ``pathlib.Path`` or ``zipfile.Path``. Such a driver is built from
an existing tree and cannot be opened from a URL.
"""

from __future__ import annotations

import errno
import os
import posixpath
from typing import Any, BinaryIO, Optional

from schemamigrate.source.driver import SourceDriver
from schemamigrate.source.migrations import (
    DuplicateMigrationError,
    Migration,
    Migrations,
    ParseError,
    parse,
)


def _not_found(op: str, path: str) -> FileNotFoundError:
    return FileNotFoundError(
        errno.ENOENT, f"{op}: {os.strerror(errno.ENOENT)}", path
    )


def _resolve(fs: Any, path: str) -> Any:
    if path in ("", "."):
        return fs
    return fs.joinpath(path)


class PartialDriver(SourceDriver):
    """Everything a tree-backed source needs except ``open``.

    Call ``load`` before use.
    """

    def __init__(self) -> None:
        self._migrations = Migrations()
        self._fs: Any = None
        self._root: Any = None
        self._path = ""

    def load(self, fs: Any, path: str) -> None:
        """Index the migration files found in ``path`` within ``fs``."""
        root = _resolve(fs, path)
        shown = path or "."
        if not root.is_dir():
            if root.is_file():
                raise NotADirectoryError(
                    errno.ENOTDIR, os.strerror(errno.ENOTDIR), shown
                )
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), shown)

        migrations = Migrations()
        for entry in sorted(root.iterdir(), key=lambda e: e.name):
            if entry.is_dir():
                continue
            try:
                m = parse(entry.name)
            except ParseError:
                continue
            if not migrations.append(m):
                raise DuplicateMigrationError(m, entry.name)

        self._fs = fs
        self._root = root
        self._path = path
        self._migrations = migrations

    def close(self) -> None:
        """Close the tree if it can be closed."""
        closer = getattr(self._fs, "close", None)
        if callable(closer):
            closer()

    def first(self) -> int:
        version = self._migrations.first()
        if version is None:
            raise _not_found("first", self._path)
        return version

    def prev(self, version: int) -> int:
        found = self._migrations.prev(version)
        if found is None:
            raise _not_found(f"prev for version {version}", self._path)
        return found

    def next(self, version: int) -> int:
        found = self._migrations.next(version)
        if found is None:
            raise _not_found(f"next for version {version}", self._path)
        return found

    def read_up(self, version: int) -> tuple[BinaryIO, str]:
        m = self._migrations.up(version)
        if m is None:
            raise _not_found(f"read up for version {version}", self._path)
        return self._open(m), m.identifier

    def read_down(self, version: int) -> tuple[BinaryIO, str]:
        m = self._migrations.down(version)
        if m is None:
            raise _not_found(f"read down for version {version}", self._path)
        return self._open(m), m.identifier

    def _open(self, m: Migration) -> BinaryIO:
        shown = posixpath.join(self._path, m.raw)
        try:
            return self._root.joinpath(m.raw).open("rb")
        except OSError:
            raise
        except (KeyError, ValueError) as err:
            raise OSError(f"open {shown}: {err}") from err


class IOFSSource(PartialDriver):
    """Passthrough driver over an existing tree."""

    def open(self, url: str) -> SourceDriver:
        raise RuntimeError("open() cannot be called on the iofs passthrough driver")


def new(fs: Any, path: str) -> IOFSSource:
    """Return a driver reading migrations from ``path`` within ``fs``."""
    driver = IOFSSource()
    try:
        driver.load(fs, path)
    except OSError as err:
        message = f"failed to init driver with path {path}: {err.strerror or err}"
        if err.errno is None:
            raise OSError(message) from err
        raise OSError(err.errno, message, err.filename) from err
    return driver