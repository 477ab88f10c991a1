"""The ``*Finder*`` manual grouping manuals by keyword."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..errors import NodeNotFound
from ..format import render_header
from . import VirtualHandler

if TYPE_CHECKING:
    from ..session import InfoSession

FINDER_FILE = "*Finder*"


class FinderHandler(VirtualHandler):
    name = "finder"

    def find_node(self, session: "InfoSession", manual: str, node: str) -> str:
        keywords = session.finder()
        if node == "Top":
            lines = [
                render_header(FINDER_FILE, "Top"),
                "Finder Keywords\n***************\n\n",
                "* Menu:\n\n",
            ]
            for keyword, manuals in keywords.items():
                lines.append(f"* {keyword}::  {len(manuals)} manuals\n")
            return "".join(lines)

        wanted = node.casefold()
        for keyword, manuals in keywords.items():
            if keyword.casefold() != wanted:
                continue
            lines = [
                render_header(FINDER_FILE, keyword, up="Top"),
                f"Manuals for keyword ‘{keyword}’\n\n",
                "* Menu:\n\n",
            ]
            for name in manuals:
                lines.append(f"* {name}: ({name}).\n")
            return "".join(lines)
        raise NodeNotFound(FINDER_FILE, node)
