"""Table of contents derived from node Up pointers and menus."""

from __future__ import annotations

import logging

from .format import iter_headers, menu_sections, node_end, parse_header, parse_menu, render_header
from .index import is_index_node
from .manual import Manual
from .models import TocEntry

logger = logging.getLogger(__name__)

TOC_NODE = "*TOC*"


class TocBuilder:
    """Build and cache the node tree of each manual."""

    def __init__(self) -> None:
        self._cache: dict[str, dict[str, TocEntry]] = {}

    def build(self, manual: Manual) -> dict[str, TocEntry]:
        cached = self._cache.get(manual.key)
        if cached is not None:
            logger.debug("TOC cache hit for %s", manual.name)
            return cached
        entries = self.collect(manual)
        logger.debug("Built TOC for %s with %d nodes", manual.name, len(entries))
        self._cache[manual.key] = entries
        return entries

    def collect(self, manual: Manual) -> dict[str, TocEntry]:
        """Walk every node of ``manual`` without touching the cache."""
        entries: dict[str, TocEntry] = {}
        top_text: str | None = None
        for buffer in manual.buffers():
            for span in iter_headers(buffer.data):
                header = parse_header(manual.decode(span.line))
                name = header.node
                if not name or name in entries:
                    continue
                text = manual.decode(buffer.data[span.start : node_end(buffer.data, span.end)])
                entry = TocEntry(node=name)
                up = header.up
                if up is not None:
                    if up.is_foreign:
                        entry.external_parent = str(up)
                    else:
                        entry.parent = up.node
                if not is_index_node(name, text, manual.supports_index_cookies):
                    entry.children = [
                        item.target.node for item in parse_menu(text) or [] if not item.target.is_foreign
                    ]
                if name == "Top":
                    top_text = text
                entries[name] = entry

        if top_text is not None:
            for section, item in menu_sections(top_text):
                child = entries.get(item.target.node)
                if section and child is not None and not item.target.is_foreign and child.section is None:
                    child.section = section
        return entries

    def invalidate(self, manual: Manual) -> None:
        self._cache.pop(manual.key, None)


def outline(toc: dict[str, TocEntry], root: str = "Top") -> list[tuple[int, TocEntry]]:
    """Depth-first walk below ``root`` as ``(depth, entry)`` pairs; each node appears once."""
    rows: list[tuple[int, TocEntry]] = []
    seen = {root}

    def walk(name: str, depth: int) -> None:
        entry = toc.get(name)
        if entry is None:
            return
        for child in entry.children:
            if child in seen or child not in toc:
                continue
            seen.add(child)
            rows.append((depth, toc[child]))
            walk(child, depth + 1)

    walk(root, 0)
    return rows


def render(manual_name: str, toc: dict[str, TocEntry]) -> str:
    """Render the TOC as a node whose nested menu lines stay parseable."""
    lines = [render_header(manual_name, TOC_NODE, up="Top"), "* Menu:\n\n"]
    section: str | None = None
    for depth, entry in outline(toc):
        if depth == 0 and entry.section and entry.section != section:
            section = entry.section
            lines.append(f"\n{section}\n")
        lines.append(f"* {'  ' * depth}{entry.node}::\n")
    return "".join(lines)
