"""Locate a node inside a manual.

Search order: tag table exact case, tag table case folded (unless strict),
then a header search in a window around the translated offset. The window is
first 1000 bytes wide on each side, then 10000: generators have been known to
leave conditional text out of the offsets they record for early subfiles, so
the recorded position can lag the real one by several kilobytes. Manuals
without a tag table are scanned from the start of every file. A name with a
dot is finally retried without its last dotted component.
"""

from __future__ import annotations

import logging

from .errors import NodeNotFound
from .format import HeaderSpan, header_before, header_name, iter_headers, node_end, normalize_name, parse_header
from .manual import InfoBuffer, Manual
from .models import NodeLocation, Strategy, TagTableEntry

logger = logging.getLogger(__name__)

NARROW_SLACK = 1000
WIDE_SLACK = 10000
DRIFT_TIERS = ((NARROW_SLACK, Strategy.TAG_TABLE), (WIDE_SLACK, Strategy.TAG_TABLE_WIDE))


class NodeResolver:
    """Resolve ``(manual, node)`` pairs to node locations."""

    def resolve(self, manual: Manual, name: str, *, strict_case: bool = False) -> NodeLocation:
        """Return the location of ``name`` or raise ``NodeNotFound``."""
        wanted = normalize_name(name) or "Top"
        location = self._lookup(manual, wanted, strict_case)
        if location is not None:
            return location

        prefix = wanted.rpartition(".")[0].strip()
        if prefix:
            try:
                return self.resolve(manual, prefix, strict_case=strict_case)
            except NodeNotFound:
                logger.debug("Suffix fallback %r failed in %s", prefix, manual.name)
        raise NodeNotFound(manual.name, wanted)

    def scan(self, manual: Manual, name: str, *, case_fold: bool = False) -> NodeLocation | None:
        """Scan the main file and every subfile from the start for a matching header."""
        for buffer in manual.buffers():
            span = self._find_header(manual, buffer, name, 0, None, case_fold)
            if span is not None:
                return self._location(manual, buffer, span, Strategy.SCAN)
        return None

    def _lookup(self, manual: Manual, name: str, strict_case: bool) -> NodeLocation | None:
        table = manual.tag_table
        if table is None:
            location = self.scan(manual, name, case_fold=False)
            if location is None and not strict_case:
                location = self.scan(manual, name, case_fold=True)
            return location

        entry = table.find(name, case_fold=False)
        folded = False
        if entry is None and not strict_case:
            entry = table.find(name, case_fold=True)
            folded = True
        if entry is None:
            return None
        return self._from_entry(manual, entry, folded)

    def _from_entry(self, manual: Manual, entry: TagTableEntry, folded: bool) -> NodeLocation | None:
        buffer, local = manual.translate(entry.offset)
        if entry.is_anchor:
            return self._anchor(manual, buffer, local, entry.name)

        for slack, strategy in DRIFT_TIERS:
            span = self._find_header(manual, buffer, entry.name, local - slack, local + slack + 1, folded)
            if span is None:
                continue
            if strategy is Strategy.TAG_TABLE_WIDE:
                logger.warning(
                    "Node %s of %s found %d bytes away from its tag table offset",
                    entry.name,
                    manual.name,
                    span.delimiter - local,
                )
            return self._location(manual, buffer, span, strategy)

        logger.debug("Node %s not found near offset %d in %s", entry.name, entry.offset, manual.name)
        return None

    def _anchor(self, manual: Manual, buffer: InfoBuffer, local: int, anchor: str) -> NodeLocation | None:
        position = min(max(local, 0), len(buffer.data))
        span = header_before(buffer.data, position)
        if span is None:
            logger.debug("Anchor %s of %s precedes every node header", anchor, manual.name)
            return None
        location = self._location(manual, buffer, span, Strategy.ANCHOR, anchor=anchor)
        inside = min(max(position, span.start), location.end)
        location.point = len(manual.decode(buffer.data[span.start : inside]))
        return location

    def _find_header(
        self,
        manual: Manual,
        buffer: InfoBuffer,
        name: str,
        start: int,
        stop: int | None,
        case_fold: bool,
    ) -> HeaderSpan | None:
        target = name.casefold() if case_fold else name
        for span in iter_headers(buffer.data, max(start, 0), stop):
            found = header_name(span.line, manual.encoding)
            if (found.casefold() if case_fold else found) == target:
                return span
        return None

    def _location(
        self,
        manual: Manual,
        buffer: InfoBuffer,
        span: HeaderSpan,
        strategy: Strategy,
        *,
        anchor: str | None = None,
    ) -> NodeLocation:
        end = node_end(buffer.data, span.end)
        header = parse_header(manual.decode(span.line))
        return NodeLocation(
            manual=manual.name,
            node=header.node,
            file=buffer.name,
            start=span.start,
            end=end,
            text=manual.decode(buffer.data[span.start : end]),
            header=header,
            strategy=strategy,
            anchor=anchor,
        )
