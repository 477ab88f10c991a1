"""The merged ``dir`` manual built from every directory file on the search path."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Sequence

from ..errors import ManualNotFound
from ..format import detect_encoding, parse_header
from . import VirtualHandler

if TYPE_CHECKING:
    from ..session import InfoSession

logger = logging.getLogger(__name__)

DIR_FILE = "dir"
_MANUAL_TARGET_RE = re.compile(r"[ \t]*\(([^)]+)\)")


@dataclass(slots=True)
class _Section:
    heading: str | None
    items: list[list[str]] = field(default_factory=list)
    labels: set[str] = field(default_factory=set)

    def add(self, block: list[str]) -> bool:
        label = _item_label(block[0])
        if label in self.labels:
            return False
        self.labels.add(label)
        self.items.append(block)
        return True


@dataclass(slots=True)
class _DirFile:
    preamble: str
    top_head: str
    sections: list[_Section]
    nodes: list[tuple[str, str]]


def _item_label(line: str) -> str:
    return line[2:].split(":", 1)[0].strip().casefold()


def _parse_top(text: str) -> tuple[str, list[_Section]]:
    marker = text.lower().find("\n* menu:")
    if marker < 0:
        return text, []
    line_end = text.find("\n", marker + 1)
    head = text[: len(text) if line_end < 0 else line_end + 1]
    sections = [_Section(heading=None)]
    current: list[str] | None = None
    for line in text[len(head) :].split("\n"):
        if line.startswith("* "):
            current = [line]
            sections[-1].add(current)
        elif not line.strip():
            current = None
        elif line[0].isspace() and current is not None:
            current.append(line)
        else:
            current = None
            sections.append(_Section(heading=line.strip()))
    return head, sections


def _split(text: str) -> _DirFile:
    chunks = text.split("\x1f")
    preamble = chunks[0]
    top_head = ""
    sections: list[_Section] = []
    nodes: list[tuple[str, str]] = []
    for chunk in chunks[1:]:
        body = chunk.lstrip("\x0c")
        header_line = body.lstrip("\n").split("\n", 1)[0]
        if "Node:" not in header_line:
            continue
        name = parse_header(header_line).node
        if name == "Top" and not top_head:
            top_head, sections = _parse_top(chunk)
        else:
            nodes.append((name, chunk))
    return _DirFile(preamble=preamble, top_head=top_head, sections=sections, nodes=nodes)


def merge_directories(texts: Sequence[str]) -> str:
    """Merge directory files into the first one.

    Top menus are merged section by section, headings compared without case.
    Items already present in a section (by case-insensitive label) are
    dropped and non-Top nodes are appended once, so merging a file twice
    gives the same result as merging it once.
    """
    if not texts:
        return ""
    base = _split(texts[0])
    by_heading = {_heading_key(section.heading): section for section in base.sections}
    node_names = {name for name, _ in base.nodes}

    for text in texts[1:]:
        other = _split(text)
        if not base.top_head and other.top_head:
            base.top_head = other.top_head
        for section in other.sections:
            key = _heading_key(section.heading)
            target = by_heading.get(key)
            if target is None:
                target = _Section(heading=section.heading)
                base.sections.append(target)
                by_heading[key] = target
            for block in section.items:
                target.add(list(block))
        for name, chunk in other.nodes:
            if name not in node_names:
                node_names.add(name)
                base.nodes.append((name, chunk))

    parts = [base.preamble]
    if base.top_head:
        parts.append("\x1f" + base.top_head + _render_sections(base.sections))
    parts.extend("\x1f" + chunk for _, chunk in base.nodes)
    return "".join(parts)


def _heading_key(heading: str | None) -> str | None:
    return heading.casefold() if heading is not None else None


def _render_sections(sections: list[_Section]) -> str:
    lines: list[str] = [""]
    for section in sections:
        if section.heading is None and not section.items:
            continue
        if section.heading is not None:
            lines.append("")
            lines.append(section.heading)
        for block in section.items:
            lines.extend(block)
    return "\n".join(lines) + "\n"


def directory_manuals(top_text: str) -> dict[str | None, list[str]]:
    """Map each heading of a directory Top node to the manuals listed under it."""
    _, sections = _parse_top(top_text)
    result: dict[str | None, list[str]] = {}
    for section in sections:
        manuals: list[str] = []
        for block in section.items:
            line = block[0]
            colon = line.find(":", 2)
            if colon < 0:
                continue
            target = _MANUAL_TARGET_RE.match(line, colon + 1)
            if target is not None:
                name = target.group(1).strip()
                if name and name not in manuals:
                    manuals.append(name)
        bucket = result.setdefault(section.heading, [])
        bucket.extend(name for name in manuals if name not in bucket)
    return result


class DirectoryHandler(VirtualHandler):
    """Serve ``dir`` from every directory file, rebuilt when any of them changes."""

    name = "dir"

    def __init__(self) -> None:
        self._fingerprint: tuple[tuple[str, int], ...] | None = None
        self._text = ""

    def find_file(self, session: "InfoSession", name: str) -> str:
        return DIR_FILE

    def find_node(self, session: "InfoSession", manual: str, node: str) -> str:
        return self.merged(session)

    def merged(self, session: "InfoSession") -> str:
        files = session.locator.find_dir_files()
        if not files:
            raise ManualNotFound(DIR_FILE, searched=len(session.locator.search_directories()))
        fingerprint = tuple((str(item.path), item.mtime_ns()) for item in files)
        if fingerprint == self._fingerprint:
            logger.debug("Directory cache hit (%d files)", len(files))
            return self._text
        texts = []
        for item in files:
            data = session.locator.read(item)
            texts.append(data.decode(detect_encoding(data), errors="replace"))
        logger.info("Merging %d directory files", len(texts))
        self._text = merge_directories(texts)
        self._fingerprint = fingerprint
        return self._text
