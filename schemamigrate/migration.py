"""A migration as it travels from a source to the database."""

from __future__ import annotations

import io
from dataclasses import dataclass, field
from datetime import datetime
from typing import BinaryIO, Optional

# In-memory buffer size, in bytes, for every pre-read migration.
DEFAULT_BUFFER_SIZE = 100000


@dataclass(eq=False)
class Migration:
    """One migration step: a body taking the database to ``target_version``.

    A ``target_version`` of -1 means no version. A migration without a body
    only moves the version.
    """

    identifier: str = ""
    version: int = 0
    target_version: int = 0
    body: Optional[BinaryIO] = None
    buffered_body: Optional[BinaryIO] = None
    buffer_size: int = 0
    scheduled: datetime = field(default_factory=datetime.now)
    started_buffering: Optional[datetime] = None
    finished_buffering: Optional[datetime] = None
    finished_reading: Optional[datetime] = None
    bytes_read: int = 0

    def __str__(self) -> str:
        return f"{self.identifier} [{self.version}=>{self.target_version}]"

    def log_string(self) -> str:
        """Describe the migration for humans."""
        direction = "d" if self.target_version < self.version else "u"
        return f"{self.version}/{direction} {self.identifier}"

    def buffer(self) -> None:
        """Read the whole body into ``buffered_body`` and close the body."""
        if self.body is None:
            return
        self.started_buffering = datetime.now()
        head = self.body.read(self.buffer_size) if self.buffer_size > 0 else b""
        self.finished_buffering = datetime.now()
        data = (head or b"") + (self.body.read() or b"")
        self.finished_reading = datetime.now()
        self.bytes_read = len(data)
        self.buffered_body = io.BytesIO(data)
        self.body.close()


def new_migration(
    body: Optional[BinaryIO], identifier: str, version: int, target_version: int
) -> Migration:
    """Create a migration; a None body gives a migration with no statements."""
    now = datetime.now()
    if body is None:
        return Migration(
            identifier=identifier or "<empty>",
            version=version,
            target_version=target_version,
            scheduled=now,
            started_buffering=now,
            finished_buffering=now,
            finished_reading=now,
        )
    return Migration(
        identifier=identifier,
        version=version,
        target_version=target_version,
        body=body,
        buffer_size=DEFAULT_BUFFER_SIZE,
        scheduled=now,
    )