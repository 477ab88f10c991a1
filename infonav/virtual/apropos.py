"""The ``*Apropos*`` manual holding cross-manual index search results."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from ..errors import NodeNotFound
from ..format import render_header
from . import VirtualHandler

if TYPE_CHECKING:
    from ..session import InfoSession

APROPOS_FILE = "*Apropos*"
_TOPIC_RE = re.compile(r"^Index for ‘(?P<topic>.*)’$", re.DOTALL)


def topic_node(topic: str) -> str:
    return f"Index for ‘{topic}’"


class AproposHandler(VirtualHandler):
    name = "apropos"

    def find_node(self, session: "InfoSession", manual: str, node: str) -> str:
        if node == "Top":
            lines = [
                render_header(APROPOS_FILE, "Top"),
                "Apropos Index\n*************\n\n",
                "This is a list of search results produced by apropos.\n\n",
                "* Menu:\n\n",
            ]
            for topic in session.apropos_topics():
                lines.append(f"* {topic_node(topic)}::\n")
            return "".join(lines)

        match = _TOPIC_RE.match(node)
        if match is None:
            raise NodeNotFound(APROPOS_FILE, node)
        topic = match.group("topic")
        result = session.apropos(topic)
        lines = [
            render_header(APROPOS_FILE, node, up="Top"),
            "Apropos Index\n*************\n\n",
            f"Index entries that match ‘{topic}’:\n\n",
            "* Menu:\n\n",
        ]
        for entry in result.entries:
            suffix = f"  (line {entry.line})" if entry.line is not None else ""
            lines.append(f"* {entry.entry} [{entry.manual}]: ({entry.manual}){entry.node}.{suffix}\n")
        return "".join(lines)
