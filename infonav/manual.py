"""Loaded manuals and the per-session cache that tracks their modification times."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator

from .errors import InfoError, MalformedTagTable, ManualNotFound
from .format import DEFAULT_ENCODING, NODE_DELIMITER, detect_encoding, supports_index_cookies
from .locator import FileLocator, LocatedFile
from .tagtable import Subfile, TagTable, parse_indirect, parse_tag_table, subfile_for

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class InfoBuffer:
    """Bytes of one physical file: the main file (``name`` None) or a subfile."""

    name: str | None
    data: bytes

    @property
    def base(self) -> int:
        """Position just past the first node delimiter; subfile offsets count from here."""
        if self.data.startswith(NODE_DELIMITER):
            return 1
        index = self.data.find(b"\n" + NODE_DELIMITER)
        return 0 if index < 0 else index + 2


class Manual:
    """One logical Info document, possibly split into indirect subfiles."""

    def __init__(
        self,
        name: str,
        data: bytes,
        *,
        located: LocatedFile | None = None,
        locator: FileLocator | None = None,
    ) -> None:
        self.name = name
        self.located = located
        self._locator = locator
        self.mtime_ns = located.mtime_ns() if located is not None else 0
        self.encoding = detect_encoding(data)
        self.main = InfoBuffer(None, data)
        self.supports_index_cookies = supports_index_cookies(data)
        self.subfiles: list[Subfile] = []
        self.tag_table: TagTable | None = None
        self._subfile: InfoBuffer | None = None

        try:
            self.subfiles = parse_indirect(data, self.encoding)
        except MalformedTagTable as exc:
            logger.warning("Ignoring indirect table of %s: %s", name, exc)
        try:
            self.tag_table = parse_tag_table(data, self.encoding, self.subfiles)
        except MalformedTagTable as exc:
            logger.warning("Malformed tag table in %s, falling back to full scans: %s", name, exc)

    @classmethod
    def load(cls, name: str, located: LocatedFile, locator: FileLocator) -> "Manual":
        return cls(name, locator.read(located), located=located, locator=locator)

    @classmethod
    def from_text(cls, name: str, text: str) -> "Manual":
        """Wrap generated Info text so it can go through the normal node scanner."""
        return cls(name, text.encode(DEFAULT_ENCODING))

    @property
    def path(self) -> Path | None:
        return self.located.path if self.located is not None else None

    @property
    def key(self) -> str:
        path = self.path
        return str(path) if path is not None else self.name

    @property
    def is_split(self) -> bool:
        return bool(self.subfiles)

    def decode(self, data: bytes) -> str:
        return data.decode(self.encoding, errors="replace")

    def buffers(self) -> Iterator[InfoBuffer]:
        """Yield the main file, then every subfile in order, loading each in turn."""
        yield self.main
        for subfile in self.subfiles:
            yield self.load_subfile(subfile.name)

    def buffer(self, name: str | None) -> InfoBuffer:
        return self.main if name is None else self.load_subfile(name)

    def load_subfile(self, name: str) -> InfoBuffer:
        """Load ``name``, replacing the previously loaded subfile."""
        current = self._subfile
        if current is not None and current.name == name:
            return current
        if self.located is None or self._locator is None:
            raise InfoError(f"Manual {self.name} has no file to read subfile {name} from.")
        directory = self.located.path.parent
        found = self._locator.locate_in(directory, name)
        if found is None:
            raise InfoError(f"Subfile {name} of {self.name} does not exist in {directory}")
        logger.debug("Loading subfile %s of %s", found.path, self.name)
        self._subfile = InfoBuffer(name, self._locator.read(found))
        return self._subfile

    def translate(self, offset: int) -> tuple[InfoBuffer, int]:
        """Map a logical offset to the buffer holding it and the local position."""
        owner = subfile_for(self.subfiles, offset)
        if owner is None or self.tag_table is None or not self.tag_table.indirect:
            return self.main, offset
        buffer = self.load_subfile(owner.name)
        return buffer, offset - owner.start + buffer.base


class ManualCache:
    """Memoize manuals by physical path; reload when the file's mtime advances."""

    def __init__(
        self,
        locator: FileLocator,
        *,
        on_invalidate: Callable[[Manual], None] | None = None,
    ) -> None:
        self._locator = locator
        self._manuals: dict[str, Manual] = {}
        self._on_invalidate = on_invalidate

    def __len__(self) -> int:
        return len(self._manuals)

    def open(self, name: str) -> Manual:
        located = self._locator.locate(name)
        if located is None:
            raise ManualNotFound(name)
        key = str(located.path)
        cached = self._manuals.get(key)
        if cached is not None and located.mtime_ns() <= cached.mtime_ns:
            logger.debug("Manual cache hit for %s", key)
            return cached
        if cached is not None:
            logger.info("Manual %s changed on disk; reloading", key)
            if self._on_invalidate is not None:
                self._on_invalidate(cached)
        manual = Manual.load(name, located, self._locator)
        self._manuals[key] = manual
        return manual
