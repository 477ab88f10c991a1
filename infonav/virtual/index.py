"""Virtual index nodes: ``*Index*`` and ``*Index for ‘TOPIC’*`` in any manual."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from ..errors import NodeNotFound
from ..format import render_header
from . import VirtualHandler

if TYPE_CHECKING:
    from ..session import InfoSession

INDEX_NODE = "*Index*"
_TOPIC_RE = re.compile(r"^\*Index for ‘(?P<topic>.*)’\*$", re.DOTALL)


def topic_node(topic: str) -> str:
    return f"*Index for ‘{topic}’*"


class VirtualIndexHandler(VirtualHandler):
    name = "virtual-index"

    def find_node(self, session: "InfoSession", manual: str, node: str) -> str:
        if node == INDEX_NODE:
            return self._topics(session, manual)
        match = _TOPIC_RE.match(node)
        if match is None:
            raise NodeNotFound(manual, node)
        topic = match.group("topic")
        lines = [
            render_header(manual, node, up=INDEX_NODE),
            "Virtual Index\n*************\n\n",
            f"Index entries that match ‘{topic}’:\n\n",
            "* Menu:\n\n",
        ]
        for entry in session.virtual_index_matches(manual, topic):
            suffix = f"  (line {entry.line})" if entry.line is not None else ""
            lines.append(f"* {entry.entry}: {entry.node}.{suffix}\n")
        return "".join(lines)

    def _topics(self, session: "InfoSession", manual: str) -> str:
        lines = [
            render_header(manual, INDEX_NODE, up="Top"),
            "Virtual Index\n*************\n\n",
            "This is a list of search results produced by the virtual index for this manual.\n\n",
            "* Menu:\n\n",
        ]
        for topic in session.virtual_index_topics(manual):
            lines.append(f"* {topic_node(topic)}::\n")
        return "".join(lines)
