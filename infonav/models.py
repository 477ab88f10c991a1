"""Typed representations of Info manuals, nodes and derived structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class EntryKind(str, Enum):
    """Row kind inside a tag table."""

    NODE = "Node"
    REF = "Ref"


class Strategy(str, Enum):
    """Which search path produced a node location."""

    TAG_TABLE = "tag-table"
    TAG_TABLE_WIDE = "tag-table-wide"
    ANCHOR = "anchor"
    SCAN = "scan"
    VIRTUAL = "virtual"


class FailurePolicy(str, Enum):
    """What a top-level navigation does when the node cannot be resolved."""

    RAISE = "raise"
    HISTORY = "history"
    TOP = "top"


@dataclass(frozen=True, slots=True)
class NodeRef:
    """Pointer to a node, optionally qualified with a foreign manual."""

    manual: str | None
    node: str

    def __str__(self) -> str:
        if self.manual is None:
            return self.node
        if self.node == "Top":
            return f"({self.manual})"
        return f"({self.manual}){self.node}"

    @property
    def is_foreign(self) -> bool:
        return self.manual is not None


@dataclass(frozen=True, slots=True)
class NodeHeader:
    """Fields of the line that follows a node delimiter."""

    node: str
    file: str | None = None
    next: NodeRef | None = None
    prev: NodeRef | None = None
    up: NodeRef | None = None


@dataclass(frozen=True, slots=True)
class TagTableEntry:
    """One row of a manual's tag table."""

    name: str
    kind: EntryKind
    offset: int
    subfile: str | None = None

    @property
    def is_anchor(self) -> bool:
        return self.kind is EntryKind.REF


@dataclass(slots=True)
class NodeLocation:
    """A resolved node: where it lives and what its header says."""

    manual: str
    node: str
    file: str | None
    start: int
    end: int
    text: str
    header: NodeHeader
    strategy: Strategy
    anchor: str | None = None
    point: int = 0

    def __post_init__(self) -> None:
        if not self.node:
            raise ValueError("resolved node must have a name")

    @property
    def span(self) -> tuple[int, int]:
        return (self.start, self.end)

    @property
    def next(self) -> NodeRef | None:
        return self.header.next

    @property
    def prev(self) -> NodeRef | None:
        return self.header.prev

    @property
    def up(self) -> NodeRef | None:
        return self.header.up


@dataclass(frozen=True, slots=True)
class MenuItem:
    """A `* Label: Target.` line inside a node's menu."""

    label: str
    target: NodeRef
    description: str = ""


@dataclass(frozen=True, slots=True)
class CrossReference:
    """A `*Note Label: Target.` reference inside node text."""

    label: str
    target: NodeRef


@dataclass(frozen=True, slots=True)
class HistoryRecord:
    """A visited location: manual identity, node name and saved position."""

    manual: str
    node: str
    position: int = 0

    def same_node(self, other: "HistoryRecord") -> bool:
        return self.manual == other.manual and self.node == other.node


@dataclass(slots=True)
class AproposFailure:
    """A manual skipped during an apropos search."""

    manual: str
    reason: str


class TocEntry(BaseModel):
    """Position of one node in a manual's table of contents."""

    node: str = Field(description="Node name.")
    parent: Optional[str] = Field(default=None, description="Local Up node, if any.")
    external_parent: Optional[str] = Field(
        default=None, description="Up pointer naming another manual; recorded, never followed."
    )
    section: Optional[str] = Field(
        default=None, description="Heading of the Top menu section listing this node."
    )
    children: list[str] = Field(default_factory=list, description="Menu items in document order.")


class IndexEntry(BaseModel):
    """A single index line pointing at a node."""

    manual: str = Field(description="Manual the entry was read from.")
    entry: str = Field(description="Index entry text.")
    node: str = Field(description="Target node name.")
    line: Optional[int] = Field(default=None, ge=0, description="Line offset inside the node.")

    @field_validator("entry", "node")
    def _strip(cls, value: str) -> str:
        return value.strip()


@dataclass(slots=True)
class AproposResult:
    """Entries collected across manuals plus the manuals that were skipped."""

    topic: str
    entries: list[IndexEntry] = field(default_factory=list)
    failures: list[AproposFailure] = field(default_factory=list)
