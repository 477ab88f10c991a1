"""Exception hierarchy raised by the Info navigation engine."""

from __future__ import annotations


class InfoError(RuntimeError):
    """Base class for all navigation and indexing failures."""


class ManualNotFound(InfoError):
    """Raised when no physical file matches a manual name."""

    def __init__(self, name: str, *, searched: int | None = None) -> None:
        if searched is None:
            message = f"Info file {name} does not exist"
        else:
            message = f"Info file {name} does not exist in any of {searched} directories"
        super().__init__(message)
        self.name = name
        self.searched = searched


class NodeNotFound(InfoError):
    """Raised when every node search strategy has been exhausted."""

    def __init__(self, manual: str, node: str) -> None:
        super().__init__(f"No such node or anchor: ({manual}){node}")
        self.manual = manual
        self.node = node


class MalformedTagTable(InfoError):
    """Raised when a tag table or indirect table cannot be parsed."""


class NoMenuInNode(InfoError):
    """Raised when a menu operation targets a node without a menu."""

    def __init__(self, node: str) -> None:
        super().__init__(f"No menu in node {node}")
        self.node = node


class NoSuchMenuItem(InfoError):
    """Raised when a menu label does not match any item of the current node."""

    def __init__(self, label: str, node: str) -> None:
        super().__init__(f"No such item in menu of {node}: {label}")
        self.label = label
        self.node = node


class NoSuchReference(InfoError):
    """Raised when a cross reference label does not match the current node."""


class NoIndexForManual(InfoError):
    """Raised when a manual has no index nodes."""

    def __init__(self, manual: str) -> None:
        super().__init__(f"No index for manual {manual}")
        self.manual = manual


class NoIndexMatch(InfoError):
    """Raised when an index search finds no entry for a topic."""

    def __init__(self, topic: str) -> None:
        super().__init__(f"No `{topic}' in index")
        self.topic = topic


class HistoryExhausted(InfoError):
    """Raised when there is no history entry to move to."""


class DecoderUnavailableError(InfoError):
    """Raised when the external program for a compressed suffix is missing."""
