"""Generated manuals and nodes, dispatched by file or node name pattern."""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..models import TocEntry

if TYPE_CHECKING:
    from ..session import InfoSession

logger = logging.getLogger(__name__)


class VirtualHandler(ABC):
    """Capability set of one virtual manual or node family."""

    name = "virtual"

    def find_file(self, session: "InfoSession", name: str) -> str:
        """Return the canonical manual name for ``name``."""
        return name

    @abstractmethod
    def find_node(self, session: "InfoSession", manual: str, node: str) -> str:
        """Return Info text holding ``node``, with delimiter and header line."""

    def toc_nodes(self, session: "InfoSession", manual: str) -> dict[str, TocEntry]:
        """Table of contents of the generated Top node."""
        return session.toc_of_text(manual, self.find_node(session, manual, "Top"))


@dataclass(frozen=True, slots=True)
class VirtualEntry:
    handler: VirtualHandler
    file_pattern: re.Pattern[str] | None = None
    node_pattern: re.Pattern[str] | None = None


class VirtualRegistry:
    """Ordered pattern table consulted before any file is looked up."""

    def __init__(self) -> None:
        self._entries: list[VirtualEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def register(
        self,
        handler: VirtualHandler,
        *,
        file: str | None = None,
        node: str | None = None,
        flags: int = 0,
    ) -> VirtualEntry:
        if file is None and node is None:
            raise ValueError("A virtual entry needs a file or node pattern.")
        entry = VirtualEntry(
            handler=handler,
            file_pattern=re.compile(file, flags) if file is not None else None,
            node_pattern=re.compile(node, flags) if node is not None else None,
        )
        self._entries.append(entry)
        return entry

    def match_file(self, manual: str | None) -> VirtualEntry | None:
        if not manual:
            return None
        for entry in self._entries:
            if entry.file_pattern is not None and entry.file_pattern.search(manual):
                return entry
        return None

    def match(self, manual: str | None, node: str) -> VirtualEntry | None:
        """File patterns first, then node patterns; first match wins."""
        entry = self.match_file(manual)
        if entry is not None:
            return entry
        for entry in self._entries:
            if entry.node_pattern is not None and entry.node_pattern.search(node):
                return entry
        return None


def default_registry() -> VirtualRegistry:
    from .apropos import AproposHandler
    from .directory import DirectoryHandler
    from .finder import FinderHandler
    from .history import HistoryHandler
    from .index import VirtualIndexHandler
    from .toc import TocHandler

    registry = VirtualRegistry()
    registry.register(DirectoryHandler(), file=r"^dir$", flags=re.IGNORECASE)
    registry.register(HistoryHandler(), file=r"^\*History\*$")
    registry.register(AproposHandler(), file=r"^\*Apropos\*$")
    registry.register(FinderHandler(), file=r"^\*Finder\*$")
    registry.register(TocHandler(), node=r"^\*TOC\*$")
    registry.register(VirtualIndexHandler(), node=r"^\*Index.*\*$")
    logger.debug("Registered %d virtual handlers", len(registry))
    return registry
