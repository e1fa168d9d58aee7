"""Migration file names and the ordered in-memory index of them."""

from __future__ import annotations

import bisect
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Direction(str, Enum):
    """Direction a migration file applies in."""

    DOWN = "down"
    UP = "up"

    def __str__(self) -> str:
        return self.value


# Matches names such as ``123_name.up.ext`` and ``123_name.down.ext``.
REGEX = re.compile(
    rf"([0-9]+)_(.*)\.({Direction.DOWN.value}|{Direction.UP.value})\.(.*)"
)

_MAX_VERSION = 2**64 - 1


class ParseError(ValueError):
    """Raised when a name does not look like a migration file."""

    def __init__(self, message: str = "no match") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class Migration:
    """One migration file as known to a source driver."""

    version: int
    direction: Direction
    identifier: str = ""
    raw: str = ""


class DuplicateMigrationError(Exception):
    """Raised when two files claim the same version and direction."""

    def __init__(self, migration: Migration, name: str) -> None:
        super().__init__(f"duplicate migration file: {name}")
        self.migration = migration
        self.name = name


class Migrations:
    """Migrations indexed by version, kept in ascending version order."""

    def __init__(self) -> None:
        self._index: list[int] = []
        self._migrations: dict[int, dict[Direction, Migration]] = {}

    def __len__(self) -> int:
        return len(self._index)

    def append(self, m: Optional[Migration]) -> bool:
        """Add a migration; return False for None or a duplicate."""
        if m is None:
            return False
        by_direction = self._migrations.setdefault(m.version, {})
        if m.direction in by_direction:
            return False
        if not by_direction:
            bisect.insort(self._index, m.version)
        by_direction[Direction(m.direction)] = m
        return True

    def first(self) -> Optional[int]:
        """Return the lowest version, or None when empty."""
        return self._index[0] if self._index else None

    def prev(self, version: int) -> Optional[int]:
        """Return the version before ``version``, or None."""
        pos = self._find_pos(version)
        if pos >= 1:
            return self._index[pos - 1]
        return None

    def next(self, version: int) -> Optional[int]:
        """Return the version after ``version``, or None."""
        pos = self._find_pos(version)
        if pos >= 0 and pos + 1 < len(self._index):
            return self._index[pos + 1]
        return None

    def up(self, version: int) -> Optional[Migration]:
        """Return the up migration for ``version``, or None."""
        return self._migrations.get(version, {}).get(Direction.UP)

    def down(self, version: int) -> Optional[Migration]:
        """Return the down migration for ``version``, or None."""
        return self._migrations.get(version, {}).get(Direction.DOWN)

    def _find_pos(self, version: int) -> int:
        pos = bisect.bisect_left(self._index, version)
        if pos < len(self._index) and self._index[pos] == version:
            return pos
        return -1


def parse(raw: str) -> Migration:
    """Parse a migration file name; raise ParseError if it does not match."""
    match = REGEX.fullmatch(raw)
    if match is None:
        raise ParseError()
    version = int(match.group(1))
    if version > _MAX_VERSION:
        raise ParseError(f"version {match.group(1)} out of range")
    return Migration(
        version=version,
        identifier=match.group(2),
        direction=Direction(match.group(3)),
        raw=raw,
    )