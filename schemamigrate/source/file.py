"""Source driver reading migrations from a local directory (``file://``)."""

from __future__ import annotations

import os
from pathlib import Path
from urllib.parse import unquote, urlsplit

from schemamigrate.source.driver import register
from schemamigrate.source.iofs import PartialDriver


class FileSource(PartialDriver):
    """Reads migrations from the directory named by a ``file://`` URL."""

    def __init__(self, url: str = "", path: str = "") -> None:
        super().__init__()
        self.url = url
        self.path = path

    def open(self, url: str) -> "FileSource":
        p = parse_url(url)
        driver = FileSource(url=url, path=p)
        driver.load(Path(p), ".")
        return driver


def parse_url(url: str) -> str:
    """Return the absolute directory a ``file://`` URL points at."""
    parts = urlsplit(url)
    host = parts.netloc.rpartition("@")[2]
    p = host + unquote(parts.path)
    if not p:
        return os.getcwd()
    if not p.startswith("/"):
        return os.path.abspath(p)
    return p


register("file", FileSource())