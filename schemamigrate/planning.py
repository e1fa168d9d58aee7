"""Work out which migrations take a database from one version to another.

The ``read*`` functions are generators. They yield migrations in the order
they must run, with each body already buffered. When a step cannot be
planned, they raise after yielding the migrations that were planned before
it. A ``stop`` callable that returns True ends the plan early and quietly at
a safe point.
"""

from __future__ import annotations

import errno
import logging
import os
from typing import Callable, Iterator, Optional

from schemamigrate.errors import NoChangeError, ShortLimitError
from schemamigrate.migration import Migration, new_migration
from schemamigrate.source.driver import SourceDriver
from schemamigrate.util import to_unsigned

StopCheck = Optional[Callable[[], bool]]


def version_exists(source: SourceDriver, version: int) -> None:
    """Raise FileNotFoundError unless ``version`` has an up or a down migration."""
    try:
        body, _ = source.read_up(version)
    except FileNotFoundError:
        pass
    else:
        body.close()
        return

    try:
        body, _ = source.read_down(version)
    except FileNotFoundError as err:
        raise FileNotFoundError(
            errno.ENOENT, f"no migration found for version {version}: {err}"
        ) from err
    body.close()


def make_migration(
    source: SourceDriver, version: int, target_version: int
) -> Migration:
    """Build the migration that takes ``version`` to ``target_version``.

    A missing file in the source gives a migration with no body.
    """
    reader = source.read_up if target_version >= version else source.read_down
    try:
        body, identifier = reader(version)
    except FileNotFoundError:
        return new_migration(None, "", version, target_version)
    return new_migration(body, identifier, version, target_version)


def _stopped(stop: StopCheck) -> bool:
    return stop is not None and bool(stop())


def _check_exists(
    source: SourceDriver, version: int, logger: Optional[logging.Logger]
) -> None:
    try:
        version_exists(source, version)
    except FileNotFoundError as err:
        if logger is not None:
            logger.error("error: %s", err)
        raise


def _prepare(
    source: SourceDriver,
    version: int,
    target_version: int,
    logger: Optional[logging.Logger],
) -> Migration:
    migr = make_migration(source, version, target_version)
    if logger is not None:
        if migr.body is not None:
            logger.debug("Start buffering %s", migr.log_string())
        else:
            logger.debug("Scheduled %s", migr.log_string())
    try:
        migr.buffer()
    except OSError as err:
        if logger is not None:
            logger.error("error: %s", err)
    return migr


def read(
    source: SourceDriver,
    from_version: int,
    to_version: int,
    stop: StopCheck = None,
    logger: Optional[logging.Logger] = None,
) -> Iterator[Migration]:
    """Yield the up or down migrations from ``from_version`` to ``to_version``."""
    if from_version >= 0:
        _check_exists(source, to_unsigned(from_version), logger)
    if to_version >= 0:
        _check_exists(source, to_unsigned(to_version), logger)

    if from_version == to_version:
        raise NoChangeError()

    current = from_version
    if current < to_version:
        if current == -1:
            first = source.first()
            yield _prepare(source, first, first, logger)
            current = first
        while current < to_version:
            if _stopped(stop):
                return
            following = source.next(to_unsigned(current))
            yield _prepare(source, following, following, logger)
            current = following
        return

    while current > to_version and current >= 0:
        if _stopped(stop):
            return
        try:
            previous = source.prev(to_unsigned(current))
        except FileNotFoundError:
            if to_version != -1:
                raise
            yield _prepare(source, current, -1, logger)
            return
        yield _prepare(source, current, previous, logger)
        current = previous


def read_up(
    source: SourceDriver,
    from_version: int,
    limit: int,
    stop: StopCheck = None,
    logger: Optional[logging.Logger] = None,
) -> Iterator[Migration]:
    """Yield up to ``limit`` up migrations after ``from_version``; -1 means all."""
    if from_version >= 0:
        _check_exists(source, to_unsigned(from_version), logger)

    if limit == 0:
        raise NoChangeError()

    current = from_version
    count = 0
    while count < limit or limit == -1:
        if _stopped(stop):
            return

        if current == -1:
            first = source.first()
            yield _prepare(source, first, first, logger)
            current = first
            count += 1
            continue

        try:
            following = source.next(to_unsigned(current))
        except FileNotFoundError:
            if limit == -1 and count == 0:
                raise NoChangeError() from None
            if limit == -1:
                return
            if count == 0:
                raise
            raise ShortLimitError(limit - count) from None

        yield _prepare(source, following, following, logger)
        current = following
        count += 1


def read_down(
    source: SourceDriver,
    from_version: int,
    limit: int,
    stop: StopCheck = None,
    logger: Optional[logging.Logger] = None,
) -> Iterator[Migration]:
    """Yield up to ``limit`` down migrations from ``from_version``; -1 means all."""
    if from_version >= 0:
        _check_exists(source, to_unsigned(from_version), logger)

    if limit == 0:
        raise NoChangeError()

    if from_version == -1 and limit == -1:
        raise NoChangeError()

    if from_version == -1 and limit > 0:
        raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT))

    current = from_version
    count = 0
    while count < limit or limit == -1:
        if _stopped(stop):
            return

        try:
            previous = source.prev(to_unsigned(current))
        except FileNotFoundError:
            if limit == -1 or limit - count > 0:
                first = source.first()
                yield _prepare(source, first, -1, logger)
                count += 1
            if count < limit:
                raise ShortLimitError(limit - count) from None
            return

        yield _prepare(source, current, previous, logger)
        current = previous
        count += 1