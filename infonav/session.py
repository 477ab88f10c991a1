"""The navigation engine: one session owning caches, history and the current node."""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from typing import Callable, Iterator, Mapping

from .config import Config
from .errors import (
    InfoError,
    ManualNotFound,
    NoIndexMatch,
    NoMenuInNode,
    NoSuchMenuItem,
    NoSuchReference,
    NodeNotFound,
)
from .format import normalize_name, parse_menu, parse_node_spec, parse_references
from .history import HistoryStack
from .index import INDEX_WORD, IndexAggregator, order_matches
from .locator import DecodeRunner, FileLocator
from .manual import Manual, ManualCache
from .models import (
    AproposResult,
    CrossReference,
    FailurePolicy,
    HistoryRecord,
    IndexEntry,
    MenuItem,
    NodeLocation,
    NodeRef,
    Strategy,
    TocEntry,
)
from .resolver import NodeResolver
from .toc import TOC_NODE, TocBuilder
from .virtual import VirtualEntry, VirtualRegistry, default_registry
from .virtual.apropos import APROPOS_FILE
from .virtual.apropos import topic_node as apropos_topic_node
from .virtual.directory import DIR_FILE, directory_manuals
from .virtual.finder import FINDER_FILE
from .virtual.history import HISTORY_FILE
from .virtual.index import topic_node as index_topic_node

logger = logging.getLogger(__name__)


def _line_point(text: str, line: int) -> int:
    """Offset of line ``line`` of a node; the header line is line 1."""
    offset = 0
    for _ in range(max(line - 1, 0)):
        newline = text.find("\n", offset)
        if newline < 0:
            break
        offset = newline + 1
    return offset


def _pick(labels: list[str], wanted: str) -> int | None:
    """Index of ``wanted`` among ``labels``: exact, case-insensitive, then unique prefix."""
    target = normalize_name(wanted)
    for position, label in enumerate(labels):
        if label == target:
            return position
    folded = target.casefold()
    for position, label in enumerate(labels):
        if label.casefold() == folded:
            return position
    prefixed = [position for position, label in enumerate(labels) if label.casefold().startswith(folded)]
    if len(prefixed) == 1:
        return prefixed[0]
    return None


class InfoSession:
    """Resolve, navigate and derive views over Info manuals."""

    def __init__(
        self,
        config: Config | None = None,
        *,
        environ: Mapping[str, str] | None = None,
        runner: DecodeRunner | None = None,
        registry: VirtualRegistry | None = None,
    ) -> None:
        self.config = config or Config()
        self.locator = FileLocator(self.config.search_path, environ=environ, runner=runner)
        self.resolver = NodeResolver()
        self.toc_builder = TocBuilder()
        self.indexer = IndexAggregator(self.resolver)
        self.manuals = ManualCache(self.locator, on_invalidate=self._forget_manual)
        navigation = self.config.navigation
        self.history = HistoryStack(
            skip_intermediate=navigation.skip_intermediate,
            limit=navigation.history_limit,
        )
        self.registry = registry if registry is not None else default_registry()
        self.current: NodeLocation | None = None
        self._virtual_index: dict[tuple[str, str], list[IndexEntry]] = {}
        self._apropos: dict[str, AproposResult] = {}
        self._index_matches: list[IndexEntry] = []
        self._index_position = 0

    # -- resolution -------------------------------------------------------

    def open(self, name: str) -> Manual:
        return self.manuals.open(name)

    def resolve(self, manual: str, node: str = "Top", *, strict_case: bool = False) -> NodeLocation:
        """Locate a node without touching history; virtual manuals and nodes come first."""
        name = normalize_name(node) or "Top"
        entry = self.registry.match(manual, name)
        if entry is not None:
            return self._resolve_virtual(entry, manual, name, strict_case)
        return self.resolver.resolve(self.open(manual), name, strict_case=strict_case)

    def _resolve_virtual(self, entry: VirtualEntry, manual: str, node: str, strict_case: bool) -> NodeLocation:
        handler = entry.handler
        file_name = handler.find_file(self, manual)
        generated = Manual.from_text(file_name, handler.find_node(self, file_name, node))
        location = self.resolver.scan(generated, node)
        if location is None and not strict_case:
            location = self.resolver.scan(generated, node, case_fold=True)
        if location is None:
            raise NodeNotFound(file_name, node)
        location.strategy = Strategy.VIRTUAL
        logger.debug("Generated (%s)%s with the %s handler", file_name, location.node, handler.name)
        return location

    def toc_of_text(self, manual: str, text: str) -> dict[str, TocEntry]:
        return self.toc_builder.collect(Manual.from_text(manual, text))

    def _forget_manual(self, manual: Manual) -> None:
        self.toc_builder.invalidate(manual)
        self.indexer.invalidate(manual)
        for key in [key for key in self._virtual_index if key[0] == manual.key]:
            del self._virtual_index[key]

    # -- top-level navigation ---------------------------------------------

    def goto(
        self,
        target: str,
        node: str | None = None,
        *,
        strict_case: bool = False,
        policy: FailurePolicy | None = None,
    ) -> NodeLocation:
        """Go to ``(manual)node``, or to ``node`` of manual ``target`` when both are given.

        A node name without a manual refers to the current manual. On failure
        the session is left untouched and ``policy`` decides between raising,
        staying on the current node and going to the manual's Top.
        """
        if node is None:
            ref = parse_node_spec(target, default_manual=self.current.manual if self.current else None)
        else:
            ref = NodeRef(manual=normalize_name(target), node=normalize_name(node) or "Top")
        if ref.manual is None:
            raise InfoError(f"No current manual to look up {ref.node} in; use (manual)node")

        try:
            location = self.resolve(ref.manual, ref.node, strict_case=strict_case)
        except NodeNotFound as exc:
            location = self._fallback(ref.manual, exc, policy or self.config.navigation.failure_policy)
            if location is None:
                raise
            return location
        self._visit(location)
        return location

    def _fallback(self, manual: str, exc: NodeNotFound, policy: FailurePolicy) -> NodeLocation | None:
        if policy is FailurePolicy.RAISE:
            return None
        if policy is FailurePolicy.HISTORY and self.current is not None:
            logger.warning("%s; staying at (%s)%s", exc, self.current.manual, self.current.node)
            return self.current
        try:
            location = self.resolve(manual, "Top")
        except InfoError:
            return None
        logger.warning("%s; going to (%s)Top instead", exc, manual)
        self._visit(location)
        return location

    def _visit(self, location: NodeLocation) -> None:
        self.current = location
        self.history.visit(HistoryRecord(location.manual, location.node, location.point))

    def _require_current(self) -> NodeLocation:
        if self.current is None:
            raise InfoError("No current node")
        return self.current

    def _go(self, ref: NodeRef, origin: NodeLocation) -> NodeLocation:
        location = self.resolve(ref.manual or origin.manual, ref.node)
        self._visit(location)
        return location

    def set_point(self, position: int) -> None:
        current = self._require_current()
        current.point = max(0, min(position, len(current.text)))
        self.history.update_position(current.point)

    # -- pointers ---------------------------------------------------------

    def _follow(self, ref: NodeRef | None, label: str) -> NodeLocation:
        current = self._require_current()
        if ref is None:
            raise InfoError(f"Node has no {label}")
        return self._go(ref, current)

    def next(self) -> NodeLocation:
        return self._follow(self._require_current().next, "Next")

    def prev(self) -> NodeLocation:
        return self._follow(self._require_current().prev, "Previous")

    def up(self) -> NodeLocation:
        """Go to the Up node with point on the menu line of the node we came from."""
        current = self._require_current()
        child = current.node
        parent = self._follow(current.up, "Up")
        match = re.search(r"^\* +" + re.escape(child) + r":", parent.text, re.MULTILINE)
        if match is not None:
            self.set_point(match.start())
        return parent

    def top(self) -> NodeLocation:
        current = self._require_current()
        return self._go(NodeRef(current.manual, "Top"), current)

    @contextmanager
    def _internal_chain(self) -> Iterator[None]:
        current = self.current
        try:
            with self.history.chain():
                yield
        except BaseException:
            self.current = current
            raise

    def forward_node(self) -> NodeLocation:
        """Go to the first menu item, else Next, else the Next of the nearest ancestor."""
        with self._internal_chain():
            return self._forward(descend=True)

    def _forward(self, descend: bool) -> NodeLocation:
        current = self._require_current()
        items = parse_menu(current.text) if descend and not INDEX_WORD.search(current.node) else None
        if items:
            return self._go(items[0].target, current)
        if current.next is not None:
            return self.next()
        up = current.up
        if up is not None and not up.is_foreign and up.node.casefold() != "top":
            self.up()
            return self._forward(descend=False)
        raise InfoError("No pointer forward from this node")

    def backward_node(self) -> NodeLocation:
        """Go to the Prev node and down to its last leaf, or Up when there is no Prev."""
        current = self._require_current()
        prev, up = current.prev, current.up
        if up is not None and up.is_foreign:
            raise InfoError("First node in file")
        if up is not None and (prev is None or prev.node.casefold() == up.node.casefold()):
            return self.up()
        if prev is None:
            raise InfoError("No pointer backward from this node")
        with self._internal_chain():
            location = self.prev()
            seen = {location.node}
            while not INDEX_WORD.search(location.node):
                items = parse_menu(location.text)
                if not items:
                    break
                last = items[-1].target
                if last.is_foreign or last.node in seen:
                    break
                location = self._go(last, location)
                seen.add(location.node)
        return self._require_current()

    # -- menus and references ---------------------------------------------

    def menu_items(self) -> list[MenuItem]:
        current = self._require_current()
        items = parse_menu(current.text)
        if items is None:
            raise NoMenuInNode(current.node)
        return items

    def menu(self, label: str) -> NodeLocation:
        current = self._require_current()
        items = self.menu_items()
        position = _pick([item.label for item in items], label)
        if position is None:
            raise NoSuchMenuItem(label, current.node)
        return self._go(items[position].target, current)

    def references(self) -> list[CrossReference]:
        return parse_references(self._require_current().text)

    def follow_reference(self, label: str) -> NodeLocation:
        current = self._require_current()
        references = self.references()
        position = _pick([reference.label for reference in references], label)
        if position is None:
            raise NoSuchReference(f"No cross-reference named {label} in {current.node}")
        return self._go(references[position].target, current)

    # -- history ------------------------------------------------------------

    def go_back(self) -> NodeLocation:
        return self._travel(self.history.go_back)

    def go_forward(self) -> NodeLocation:
        return self._travel(self.history.go_forward)

    def _travel(self, step: Callable[[], HistoryRecord]) -> NodeLocation:
        saved = self.history.snapshot()
        record = step()
        try:
            location = self.resolve(record.manual, record.node, strict_case=True)
        except InfoError:
            self.history.restore(saved)
            raise
        location.point = record.position
        self.current = location
        return location

    def history_node(self) -> NodeLocation:
        return self.goto(HISTORY_FILE, "Top")

    # -- derived views ------------------------------------------------------

    def _manual_name(self, manual: str | None) -> str:
        if manual is not None:
            return manual
        return self._require_current().manual

    def toc(self, manual: str | None = None) -> dict[str, TocEntry]:
        name = self._manual_name(manual)
        entry = self.registry.match_file(name)
        if entry is not None:
            return entry.handler.toc_nodes(self, name)
        return self.toc_builder.build(self.open(name))

    def toc_node(self, manual: str | None = None) -> NodeLocation:
        return self.goto(self._manual_name(manual), TOC_NODE)

    def index_entries(self, manual: str | None = None, topic: str | None = None) -> list[IndexEntry]:
        return self.indexer.entries(self.open(self._manual_name(manual)), topic)

    def index(self, topic: str) -> NodeLocation:
        """Look ``topic`` up in the current manual's index and go to the best match."""
        manual = self.open(self._manual_name(None))
        matches = self.indexer.search(manual, topic)
        location = self._goto_index_entry(matches[0])
        self._index_matches = matches
        self._index_position = 0
        logger.info("Found %d index matches for %r in %s", len(matches), topic, manual.name)
        return location

    def index_next(self) -> NodeLocation:
        if not self._index_matches:
            raise InfoError("No previous index search")
        position = (self._index_position + 1) % len(self._index_matches)
        location = self._goto_index_entry(self._index_matches[position])
        self._index_position = position
        return location

    def _goto_index_entry(self, entry: IndexEntry) -> NodeLocation:
        ref = parse_node_spec(entry.node, default_manual=entry.manual)
        location = self.resolve(ref.manual or entry.manual, ref.node)
        if entry.line:
            location.point = _line_point(location.text, entry.line)
        self._visit(location)
        return location

    def virtual_index_matches(self, manual: str, topic: str) -> list[IndexEntry]:
        opened = self.open(manual)
        key = (opened.key, topic)
        cached = self._virtual_index.get(key)
        if cached is None:
            cached = order_matches(self.indexer.entries(opened, topic), topic)
            self._virtual_index[key] = cached
        return cached

    def virtual_index_topics(self, manual: str) -> list[str]:
        key = self.open(manual).key
        return [topic for manual_key, topic in self._virtual_index if manual_key == key]

    def virtual_index(self, topic: str) -> NodeLocation:
        manual = self._manual_name(None)
        if not self.virtual_index_matches(manual, topic):
            raise NoIndexMatch(topic)
        return self.goto(manual, index_topic_node(topic))

    def apropos_manuals(self) -> list[str]:
        configured = self.config.index.apropos_manuals
        if configured is not None:
            return list(configured)
        top = self.resolve(DIR_FILE, "Top")
        names: list[str] = []
        for manuals in directory_manuals(top.text).values():
            names.extend(name for name in manuals if name not in names)
        return names

    def apropos(self, topic: str) -> AproposResult:
        cached = self._apropos.get(topic)
        if cached is not None:
            return cached
        result = self.indexer.apropos(topic, self.apropos_manuals(), self.open)
        logger.info(
            "Apropos %r: %d entries, %d manuals skipped",
            topic,
            len(result.entries),
            len(result.failures),
        )
        self._apropos[topic] = result
        return result

    def apropos_topics(self) -> list[str]:
        return list(self._apropos)

    def apropos_node(self, topic: str) -> NodeLocation:
        if not self.apropos(topic).entries:
            raise NoIndexMatch(topic)
        return self.goto(APROPOS_FILE, apropos_topic_node(topic))

    def finder(self, keyword: str | None = None) -> dict[str, list[str]]:
        """Keywords from dir sections and configuration, each with its manuals."""
        keywords: dict[str, list[str]] = {}
        try:
            top = self.resolve(DIR_FILE, "Top")
        except ManualNotFound:
            logger.debug("No directory file; finder uses configured keywords only")
        else:
            for heading, manuals in directory_manuals(top.text).items():
                if heading:
                    keywords.setdefault(heading, []).extend(manuals)
        for name, manuals in self.config.finder.keywords.items():
            bucket = keywords.setdefault(name, [])
            bucket.extend(manual for manual in manuals if manual not in bucket)
        if keyword is None:
            return keywords
        wanted = keyword.casefold()
        selected = {name: manuals for name, manuals in keywords.items() if name.casefold() == wanted}
        if not selected:
            raise InfoError(f"No manuals for keyword {keyword}")
        return selected

    def finder_node(self, keyword: str | None = None) -> NodeLocation:
        return self.goto(FINDER_FILE, keyword or "Top")

    def directory(self) -> NodeLocation:
        return self.goto(DIR_FILE, "Top")
