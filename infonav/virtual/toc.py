"""The ``*TOC*`` node available in every manual."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..toc import render
from . import VirtualHandler

if TYPE_CHECKING:
    from ..session import InfoSession


class TocHandler(VirtualHandler):
    name = "toc"

    def find_node(self, session: "InfoSession", manual: str, node: str) -> str:
        return render(manual, session.toc(manual))
