"""Tag table and indirect subfile table parsing.

A tag table is the block between ``Tag Table:`` and ``\\x1fEnd Tag Table`` at
the end of a manual's main file. Each row maps a node (``Node:``) or an anchor
(``Ref:``) to a byte offset in the logical, unsplit document. Split manuals
mark the table with ``(Indirect)`` and list their subfiles, with the logical
offset each one starts at, in an ``Indirect:`` block of the main file.
"""

from __future__ import annotations

import bisect
import re
from dataclasses import dataclass

from .errors import MalformedTagTable
from .format import DEFAULT_ENCODING
from .models import EntryKind, TagTableEntry

_END_RE = re.compile(rb"\x1f\n?end tag table\n?")
_START_MARKER = b"tag table:\n"
_INDIRECT_FLAG = b"(indirect)\n"
_INDIRECT_MARKER = b"\x1f\nindirect:\n"
_ANCHOR_SEPARATOR = b"\x7f"


@dataclass(frozen=True, slots=True)
class Subfile:
    """A physical chunk of a split manual and its logical start offset."""

    name: str
    start: int


class TagTable:
    """Name to offset catalog for one manual."""

    def __init__(self, entries: list[TagTableEntry], subfiles: list[Subfile] | None = None) -> None:
        self.entries = entries
        self.subfiles = list(subfiles or [])
        self._starts = [subfile.start for subfile in self.subfiles]

    @property
    def indirect(self) -> bool:
        return bool(self.subfiles)

    def __len__(self) -> int:
        return len(self.entries)

    def find(self, name: str, case_fold: bool = False) -> TagTableEntry | None:
        """Scan the table once for ``name``; a node row wins over an anchor row."""
        target = name.casefold() if case_fold else name
        anchor: TagTableEntry | None = None
        for entry in self.entries:
            candidate = entry.name.casefold() if case_fold else entry.name
            if candidate != target:
                continue
            if entry.kind is EntryKind.NODE:
                return entry
            if anchor is None:
                anchor = entry
        return anchor

    def locate(self, offset: int) -> Subfile | None:
        """Return the last subfile whose start offset is not past ``offset``."""
        return subfile_for(self.subfiles, offset, self._starts)

    def node_names(self) -> list[str]:
        return [entry.name for entry in self.entries if entry.kind is EntryKind.NODE]


def subfile_for(subfiles: list[Subfile], offset: int, starts: list[int] | None = None) -> Subfile | None:
    if not subfiles:
        return None
    keys = starts if starts is not None else [subfile.start for subfile in subfiles]
    index = bisect.bisect_right(keys, offset) - 1
    return subfiles[max(index, 0)]


def parse_tag_table(
    data: bytes,
    encoding: str = DEFAULT_ENCODING,
    subfiles: list[Subfile] | None = None,
) -> TagTable | None:
    """Parse the tag table at the end of ``data``; None when the manual has none."""
    lowered = data.lower()
    end_match = None
    for end_match in _END_RE.finditer(lowered):
        pass
    if end_match is None:
        return None
    end = end_match.start()
    marker = lowered.rfind(_START_MARKER, 0, end)
    if marker < 0:
        raise MalformedTagTable("End of tag table found without a 'Tag Table:' line.")

    body_start = marker + len(_START_MARKER)
    indirect = lowered.startswith(_INDIRECT_FLAG, body_start)
    if indirect:
        body_start += len(_INDIRECT_FLAG)
        if not subfiles:
            raise MalformedTagTable("Indirect tag table without an 'Indirect:' subfile list.")

    known = list(subfiles or []) if indirect else []
    starts = [subfile.start for subfile in known]
    entries: list[TagTableEntry] = []
    for raw in data[body_start:end].split(b"\n"):
        if not raw.strip():
            continue
        entry = _parse_row(raw, encoding)
        if known:
            owner = subfile_for(known, entry.offset, starts)
            entry = TagTableEntry(
                name=entry.name,
                kind=entry.kind,
                offset=entry.offset,
                subfile=owner.name if owner else None,
            )
        entries.append(entry)
    return TagTable(entries, known)


def parse_indirect(data: bytes, encoding: str = DEFAULT_ENCODING) -> list[Subfile]:
    """Parse the ``Indirect:`` block listing subfiles in ascending offset order."""
    marker = data.lower().find(_INDIRECT_MARKER)
    if marker < 0:
        return []
    start = marker + len(_INDIRECT_MARKER)
    stop = data.find(b"\x1f", start)
    block = data[start : len(data) if stop < 0 else stop]

    subfiles: list[Subfile] = []
    for raw in block.split(b"\n"):
        line = raw.strip()
        if not line:
            continue
        name, separator, offset = line.rpartition(b": ")
        if not separator or not name:
            raise MalformedTagTable(f"Malformed indirect line: {line!r}")
        try:
            start_offset = int(offset)
        except ValueError as exc:
            raise MalformedTagTable(f"Malformed indirect offset: {line!r}") from exc
        if subfiles and start_offset < subfiles[-1].start:
            raise MalformedTagTable("Indirect subfile offsets are not ascending.")
        subfiles.append(Subfile(name=name.decode(encoding, errors="replace"), start=start_offset))
    return subfiles


def _parse_row(raw: bytes, encoding: str) -> TagTableEntry:
    head, separator, offset = raw.rpartition(_ANCHOR_SEPARATOR)
    if not separator:
        raise MalformedTagTable(f"Tag table row without offset: {raw!r}")
    try:
        position = int(offset.strip())
    except ValueError as exc:
        raise MalformedTagTable(f"Tag table row with invalid offset: {raw!r}") from exc

    text = head.decode(encoding, errors="replace")
    for kind in (EntryKind.NODE, EntryKind.REF):
        prefix = f"{kind.value}:"
        if text.startswith(prefix):
            name = text[len(prefix) :].strip()
            if name.startswith("\x7f") and name.endswith("\x7f") and len(name) > 1:
                name = name[1:-1]
            if not name:
                raise MalformedTagTable(f"Tag table row without a name: {raw!r}")
            return TagTableEntry(name=name, kind=kind, offset=position)
    raise MalformedTagTable(f"Unknown tag table row: {raw!r}")
