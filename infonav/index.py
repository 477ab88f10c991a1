"""Index node discovery, index entry extraction and apropos across manuals."""

from __future__ import annotations

import logging
import re
from typing import Callable, Iterable, Iterator

from .errors import InfoError, NoIndexForManual, NoIndexMatch, NodeNotFound
from .format import INDEX_COOKIE, header_before, header_name, iter_index_lines, parse_menu, strip_duplicate_suffix
from .manual import Manual
from .models import AproposFailure, AproposResult, IndexEntry
from .resolver import NodeResolver

logger = logging.getLogger(__name__)

INDEX_WORD = re.compile(r"\bIndex\b", re.IGNORECASE)


def is_index_node(name: str, text: str, cookies: bool) -> bool:
    """Return True when a node is an index node under the manual's discovery strategy."""
    if cookies:
        return INDEX_COOKIE.decode("latin-1") in text
    return INDEX_WORD.search(name) is not None


def order_matches(entries: Iterable[IndexEntry], topic: str) -> list[IndexEntry]:
    """Put entries equal to ``topic`` (ignoring `` <N>`` suffixes) ahead of the rest."""
    wanted = topic.casefold()
    exact: list[IndexEntry] = []
    partial: list[IndexEntry] = []
    for entry in entries:
        if strip_duplicate_suffix(entry.entry).casefold() == wanted:
            exact.append(entry)
        else:
            partial.append(entry)
    return exact + partial


class IndexAggregator:
    """Find the index nodes of manuals and read their entries."""

    def __init__(self, resolver: NodeResolver) -> None:
        self._resolver = resolver
        self._index_nodes: dict[str, list[str]] = {}

    def index_nodes(self, manual: Manual) -> list[str]:
        cached = self._index_nodes.get(manual.key)
        if cached is not None:
            return cached
        if manual.supports_index_cookies:
            nodes = self._cookie_nodes(manual)
            strategy = "cookie"
        else:
            nodes = self._heuristic_nodes(manual)
            strategy = "heuristic"
        logger.debug("Found %d index nodes in %s (%s strategy)", len(nodes), manual.name, strategy)
        self._index_nodes[manual.key] = nodes
        return nodes

    def invalidate(self, manual: Manual) -> None:
        self._index_nodes.pop(manual.key, None)

    def entries(self, manual: Manual, topic: str | None = None) -> list[IndexEntry]:
        """Return index entries in file order, filtered by a case-insensitive substring."""
        nodes = self.index_nodes(manual)
        if not nodes:
            raise NoIndexForManual(manual.name)
        return list(self._iter_entries(manual, nodes, topic))

    def search(self, manual: Manual, topic: str) -> list[IndexEntry]:
        """Entries matching ``topic`` with exact matches first."""
        matches = order_matches(self.entries(manual, topic), topic)
        if not matches:
            raise NoIndexMatch(topic)
        return matches

    def apropos(
        self,
        topic: str,
        manuals: Iterable[str],
        open_manual: Callable[[str], Manual],
    ) -> AproposResult:
        """Search the index of every manual; unreadable manuals are recorded and skipped."""
        result = AproposResult(topic=topic)
        seen: set[str] = set()
        for name in manuals:
            if name in seen:
                continue
            seen.add(name)
            try:
                manual = open_manual(name)
                result.entries.extend(self.entries(manual, topic))
            except NoIndexForManual:
                logger.debug("Manual %s has no index; skipping", name)
            except (InfoError, OSError, ValueError) as exc:
                logger.warning("Skipping manual %s during apropos: %s", name, exc)
                result.failures.append(AproposFailure(manual=name, reason=str(exc)))
        return result

    def _iter_entries(self, manual: Manual, nodes: list[str], topic: str | None) -> Iterator[IndexEntry]:
        needle = topic.casefold() if topic else None
        for node in nodes:
            location = self._resolver.resolve(manual, node, strict_case=True)
            for line in iter_index_lines(location.text):
                if needle is not None and needle not in line.entry.casefold():
                    continue
                yield IndexEntry(manual=manual.name, entry=line.entry, node=line.target, line=line.line)

    def _cookie_nodes(self, manual: Manual) -> list[str]:
        nodes: list[str] = []
        for buffer in manual.buffers():
            position = buffer.data.find(INDEX_COOKIE)
            while position >= 0:
                span = header_before(buffer.data, position)
                if span is not None:
                    name = header_name(span.line, manual.encoding)
                    if name and name not in nodes:
                        nodes.append(name)
                position = buffer.data.find(INDEX_COOKIE, position + len(INDEX_COOKIE))
        return nodes

    def _heuristic_nodes(self, manual: Manual) -> list[str]:
        try:
            top = self._resolver.resolve(manual, "Top")
        except NodeNotFound:
            return []
        start = None
        for item in parse_menu(top.text) or []:
            if item.target.manual is None and INDEX_WORD.search(item.label):
                start = item.target.node
                break
        if start is None:
            return []

        nodes: list[str] = []
        name: str | None = start
        while name is not None and INDEX_WORD.search(name) and name not in nodes:
            try:
                location = self._resolver.resolve(manual, name)
            except NodeNotFound:
                break
            nodes.append(location.node)
            following = location.next
            name = following.node if following is not None and following.manual is None else None
        return nodes
