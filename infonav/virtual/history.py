"""The ``*History*`` manual listing visited nodes."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..format import render_header
from ..models import NodeRef
from . import VirtualHandler

if TYPE_CHECKING:
    from ..session import InfoSession

HISTORY_FILE = "*History*"


class HistoryHandler(VirtualHandler):
    name = "history"

    def find_node(self, session: "InfoSession", manual: str, node: str) -> str:
        lines = [render_header(HISTORY_FILE, "Top"), "Recently Visited Nodes\n", "**********************\n\n"]
        lines.append("* Menu:\n\n")
        for record in reversed(session.history.visited):
            if record.manual == HISTORY_FILE:
                continue
            lines.append(f"* {NodeRef(record.manual, record.node)}::\n")
        return "".join(lines)
