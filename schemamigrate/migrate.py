"""Run migrations from a source against a database."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import BinaryIO, Callable, Iterable, Iterator, Optional
from urllib.parse import urlsplit

from schemamigrate.errors import (
    DirtyError,
    InvalidVersionError,
    LockedError,
    LockTimeoutError,
    MultiError,
    NilVersionError,
    NoChangeError,
)
from schemamigrate.migration import Migration
from schemamigrate.planning import read, read_down, read_up
from schemamigrate.source.driver import SourceDriver, open_source
from schemamigrate.util import to_unsigned

# Number of migrations read ahead from the source.
DEFAULT_PREFETCH_MIGRATIONS = 10

# Seconds a database driver has to acquire its lock.
DEFAULT_LOCK_TIMEOUT = 15.0

# Version a database reports when no migration has been applied.
NIL_VERSION = -1


class DatabaseDriver(ABC):
    """A database that migrations are run against."""

    @abstractmethod
    def close(self) -> None:
        """Release the connection."""

    @abstractmethod
    def lock(self) -> None:
        """Take the migration lock; raise if it is already held."""

    @abstractmethod
    def unlock(self) -> None:
        """Release the migration lock."""

    @abstractmethod
    def run(self, migration: BinaryIO) -> None:
        """Execute a migration body."""

    @abstractmethod
    def set_version(self, version: int, dirty: bool) -> None:
        """Record the current version and whether it is dirty."""

    @abstractmethod
    def version(self) -> tuple[int, bool]:
        """Return the recorded version (NIL_VERSION if none) and dirty flag."""

    @abstractmethod
    def drop(self) -> None:
        """Delete everything in the database."""


def _scheme_from_url(url: str) -> str:
    if not url:
        raise ValueError("URL cannot be empty")
    scheme = urlsplit(url).scheme
    if not scheme:
        raise ValueError("no scheme")
    return scheme


class Migrate:
    """Moves a database between the versions a source provides."""

    def __init__(
        self,
        source_name: str,
        source: SourceDriver,
        database_name: str,
        database: DatabaseDriver,
    ) -> None:
        self.source_name = source_name
        self.source = source
        self.database_name = database_name
        self.database = database
        self.log: Optional[logging.Logger] = None
        self.prefetch_migrations = DEFAULT_PREFETCH_MIGRATIONS
        self.lock_timeout = DEFAULT_LOCK_TIMEOUT
        self._stop_requested = threading.Event()
        self._locked_mu = threading.Lock()
        self._is_locked = False

    def __enter__(self) -> "Migrate":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Close the source and the database; raise what either raised."""
        self._log_debug("Closing source and database")
        errors = []
        for closer in (self.source.close, self.database.close):
            try:
                closer()
            except Exception as err:  # noqa: BLE001 - collected and re-raised
                errors.append(err)
        if len(errors) == 1:
            raise errors[0]
        if errors:
            raise MultiError(*errors)

    def migrate(self, version: int) -> None:
        """Migrate up or down to ``version``."""
        target = to_unsigned(version)
        self._apply(
            lambda current: read(
                self.source, current, target, self._should_stop, self.log
            )
        )

    def steps(self, n: int) -> None:
        """Apply ``n`` migrations: up when positive, down when negative."""
        if n == 0:
            raise NoChangeError()
        if n > 0:
            self._apply(
                lambda current: read_up(
                    self.source, current, n, self._should_stop, self.log
                )
            )
        else:
            self._apply(
                lambda current: read_down(
                    self.source, current, -n, self._should_stop, self.log
                )
            )

    def up(self) -> None:
        """Apply every up migration after the current version."""
        self._apply(
            lambda current: read_up(
                self.source, current, -1, self._should_stop, self.log
            )
        )

    def down(self) -> None:
        """Apply every down migration from the current version."""
        self._apply(
            lambda current: read_down(
                self.source, current, -1, self._should_stop, self.log
            )
        )

    def drop(self) -> None:
        """Delete everything in the database."""
        with self._locked():
            self.database.drop()

    def run(self, *args: Migration) -> None:
        """Run the given migrations without looking at the source."""
        if not args:
            raise NoChangeError()
        self._apply(lambda _current: self._scheduled(args))

    def force(self, version: int) -> None:
        """Set ``version`` as current and clean, without running anything."""
        if version < -1:
            raise InvalidVersionError()
        with self._locked():
            self.database.set_version(version, False)

    def version(self) -> tuple[int, bool]:
        """Return the current version and dirty flag.

        Raises NilVersionError when no migration has been applied.
        """
        current, dirty = self.database.version()
        if current == NIL_VERSION:
            raise NilVersionError()
        return to_unsigned(current), dirty

    def stop(self) -> None:
        """Ask running migrations to stop at the next safe point."""
        self._stop_requested.set()

    def _should_stop(self) -> bool:
        return self._stop_requested.is_set()

    def _apply(self, plan: Callable[[int], Iterable[Migration]]) -> None:
        with self._locked():
            current, dirty = self.database.version()
            if dirty:
                raise DirtyError(current)
            self._run_migrations(plan(current))

    def _scheduled(self, migrations: Iterable[Migration]) -> Iterator[Migration]:
        for migr in migrations:
            if self.prefetch_migrations > 0 and migr.body is not None:
                self._log_debug("Start buffering %s", migr.log_string())
            else:
                self._log_debug("Scheduled %s", migr.log_string())
            try:
                migr.buffer()
            except OSError as err:
                self._log_error(err)
            yield migr

    def _run_migrations(self, migrations: Iterable[Migration]) -> None:
        for migr in migrations:
            if self._should_stop():
                return

            self.database.set_version(migr.target_version, True)

            if migr.body is not None:
                self._log_debug("Read and execute %s", migr.log_string())
                if migr.buffered_body is None:
                    raise OSError(
                        f"body of migration {migr.log_string()} could not be read"
                    )
                self.database.run(migr.buffered_body)

            self.database.set_version(migr.target_version, False)

            end_time = datetime.now()
            start = migr.started_buffering or migr.scheduled
            finished = migr.finished_reading or end_time
            read_time = finished - start
            run_time = end_time - finished

            if self.log is not None:
                if self.log.isEnabledFor(logging.DEBUG):
                    self.log.debug(
                        "Finished %s (read %s, ran %s)",
                        migr.log_string(),
                        read_time,
                        run_time,
                    )
                else:
                    self.log.info("%s (%s)", migr.log_string(), read_time + run_time)

    @contextmanager
    def _locked(self) -> Iterator[None]:
        self._lock()
        try:
            yield
        except BaseException as err:
            try:
                self._unlock()
            except Exception as unlock_err:
                raise MultiError(err, unlock_err) from err
            raise
        self._unlock()

    def _lock(self) -> None:
        with self._locked_mu:
            if self._is_locked:
                raise LockedError()

            done = threading.Event()
            failure: list[BaseException] = []

            def attempt() -> None:
                try:
                    self.database.lock()
                except BaseException as err:  # noqa: BLE001 - handed back below
                    failure.append(err)
                finally:
                    done.set()

            threading.Thread(target=attempt, daemon=True).start()
            if not done.wait(self.lock_timeout):
                raise LockTimeoutError()
            if failure:
                raise failure[0]
            self._is_locked = True

    def _unlock(self) -> None:
        with self._locked_mu:
            self.database.unlock()
            self._is_locked = False

    def _log_debug(self, message: str, *args: object) -> None:
        if self.log is not None:
            self.log.debug(message, *args)

    def _log_error(self, err: BaseException) -> None:
        if self.log is not None:
            self.log.error("error: %s", err)


def new_with_database_instance(
    source_url: str, database_name: str, database_instance: DatabaseDriver
) -> Migrate:
    """Open a source from ``source_url`` and pair it with an existing database.

    The caller stays responsible for closing the database client.
    """
    source_name = _scheme_from_url(source_url)
    source = open_source(source_url)
    return Migrate(source_name, source, database_name, database_instance)


def new_with_instance(
    source_name: str,
    source_instance: SourceDriver,
    database_name: str,
    database_instance: DatabaseDriver,
) -> Migrate:
    """Pair an existing source with an existing database."""
    return Migrate(source_name, source_instance, database_name, database_instance)