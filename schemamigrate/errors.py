"""Errors raised while planning and running migrations."""

from __future__ import annotations

from typing import Optional


class MigrateError(Exception):
    """Base of the errors raised by the migration runner."""


class NoChangeError(MigrateError):
    """Nothing was there to migrate."""

    def __init__(self, message: str = "no change") -> None:
        super().__init__(message)


class NilVersionError(MigrateError):
    """No migration has been applied yet."""

    def __init__(self, message: str = "no migration") -> None:
        super().__init__(message)


class InvalidVersionError(MigrateError, ValueError):
    """A forced version was below -1."""

    def __init__(self, message: str = "version must be >= -1") -> None:
        super().__init__(message)


class LockedError(MigrateError):
    """The database is already locked by this runner."""

    def __init__(self, message: str = "database locked") -> None:
        super().__init__(message)


class LockTimeoutError(MigrateError):
    """The database lock could not be acquired in time."""

    def __init__(self, message: str = "timeout: can't acquire database lock") -> None:
        super().__init__(message)


class ShortLimitError(MigrateError):
    """Fewer migrations were available than the requested limit."""

    def __init__(self, short: int) -> None:
        super().__init__(f"limit {short} short")
        self.short = short

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ShortLimitError):
            return NotImplemented
        return self.short == other.short

    def __hash__(self) -> int:
        return hash((ShortLimitError, self.short))


class DirtyError(MigrateError):
    """The database was left in a dirty state at ``version``."""

    def __init__(self, version: int) -> None:
        super().__init__(f"Dirty database version {version}. Fix and force version.")
        self.version = version

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DirtyError):
            return NotImplemented
        return self.version == other.version

    def __hash__(self) -> int:
        return hash((DirtyError, self.version))


class MultiError(MigrateError):
    """Several errors raised together; None entries are dropped."""

    def __init__(self, *errors: Optional[BaseException]) -> None:
        self.errors = [e for e in errors if e is not None]
        super().__init__(*self.errors)

    def __str__(self) -> str:
        return " and ".join(str(e) for e in self.errors if str(e))