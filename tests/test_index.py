from __future__ import annotations

import logging
from pathlib import Path

import pytest

from infonav.config import IndexConfig
from infonav.errors import NoIndexForManual, NoIndexMatch
from infonav.index import IndexAggregator, order_matches
from infonav.locator import FileLocator
from infonav.manual import Manual
from infonav.models import AproposFailure, IndexEntry, Strategy
from infonav.resolver import NodeResolver
from infonav.session import InfoSession

from infotext import INDEX_COOKIE, OLD_PREAMBLE, Node, emacs_nodes, menu, search_config, write_info


def _manual(tmp_path: Path, name: str, nodes: list[Node], **kwargs) -> Manual:
    write_info(tmp_path, name, nodes, **kwargs)
    locator = FileLocator(search_config(tmp_path).search_path)
    return Manual.load(name, locator.locate(name), locator)


def _index_body(*lines: str, cookie: bool = True) -> str:
    return (INDEX_COOKIE if cookie else "") + "\n* Menu:\n\n" + "".join(f"{line}\n" for line in lines)


def _heuristic_nodes() -> list[Node]:
    return [
        Node("Top", menu("Intro", "Command Index"), next="Intro"),
        Node("Intro", "Introduction.\n", next="Command Index", prev="Top", up="Top"),
        Node(
            "Command Index",
            _index_body("* open-file:     Intro.   (line 2)", cookie=False),
            next="Variable Index",
            prev="Intro",
            up="Top",
        ),
        Node(
            "Variable Index",
            _index_body("* file-mode:     Intro.   (line 3)", cookie=False),
            next="Afterword",
            prev="Command Index",
            up="Top",
        ),
        Node("Afterword", "The end.\n", prev="Variable Index", up="Top"),
    ]


def test_cookie_discovery_reads_entries_in_file_order(tmp_path: Path) -> None:
    manual = _manual(tmp_path, "emacs", emacs_nodes())
    indexer = IndexAggregator(NodeResolver())

    assert manual.supports_index_cookies
    assert indexer.index_nodes(manual) == ["Command Index"]
    assert indexer.entries(manual) == [
        IndexEntry(manual="emacs", entry="kill-line", node="Killing", line=3),
        IndexEntry(manual="emacs", entry="kill-region", node="Killing", line=4),
        IndexEntry(manual="emacs", entry="glossary", node="Glossary", line=None),
    ]


def test_heuristic_discovery_follows_next_while_named_index(tmp_path: Path) -> None:
    manual = _manual(tmp_path, "old", _heuristic_nodes(), preamble=OLD_PREAMBLE)
    indexer = IndexAggregator(NodeResolver())

    assert not manual.supports_index_cookies
    assert indexer.index_nodes(manual) == ["Command Index", "Variable Index"]
    assert [entry.entry for entry in indexer.entries(manual, "FILE")] == ["open-file", "file-mode"]


def test_old_generator_ignores_cookie_bytes(tmp_path: Path) -> None:
    nodes = emacs_nodes()
    nodes[0].body = "No menu here.\n"
    manual = _manual(tmp_path, "emacs", nodes, preamble=OLD_PREAMBLE)

    with pytest.raises(NoIndexForManual):
        IndexAggregator(NodeResolver()).entries(manual)


def test_manual_without_index_raises(tmp_path: Path) -> None:
    manual = _manual(tmp_path, "plain", [Node("Top", "Nothing to index.\n")])

    with pytest.raises(NoIndexForManual, match="No index for manual plain"):
        IndexAggregator(NodeResolver()).entries(manual, "anything")


def test_search_puts_exact_matches_first(tmp_path: Path) -> None:
    nodes = emacs_nodes()
    nodes[3].body = _index_body(
        "* delete and kill:      Killing.   (line 2)",
        "* kill:                 Killing.   (line 3)",
        "* kill <1>:             Glossary.",
    )
    manual = _manual(tmp_path, "emacs", nodes)
    indexer = IndexAggregator(NodeResolver())

    matches = indexer.search(manual, "Kill")

    assert [entry.entry for entry in matches] == ["kill", "kill <1>", "delete and kill"]
    with pytest.raises(NoIndexMatch, match="No `yank' in index"):
        indexer.search(manual, "yank")


def test_order_matches_keeps_relative_order() -> None:
    entries = [
        IndexEntry(manual="m", entry="b-topic", node="B"),
        IndexEntry(manual="m", entry="topic", node="A"),
        IndexEntry(manual="m", entry="a-topic", node="C"),
    ]

    assert [entry.node for entry in order_matches(entries, "topic")] == ["A", "B", "C"]


def test_apropos_finds_one_entry_across_two_manuals(tmp_path: Path) -> None:
    killing_body = "".join(f"Paragraph line {number}.\n" for number in range(1, 15))
    write_info(
        tmp_path,
        "emacs",
        [
            Node("Top", menu("Killing", "Index"), next="Killing"),
            Node("Killing", killing_body, next="Index", prev="Top", up="Top"),
            Node(
                "Index",
                _index_body(
                    "* kill-line:                 Killing.   (line 12)",
                    "* yank:                      Killing.   (line 14)",
                ),
                prev="Killing",
                up="Top",
            ),
        ],
    )
    write_info(
        tmp_path,
        "calc",
        [
            Node("Top", menu("Index"), next="Index"),
            Node("Index", _index_body("* evaluate:   Top.   (line 3)"), prev="Top", up="Top"),
        ],
    )
    config = search_config(tmp_path, index=IndexConfig(apropos_manuals=["emacs", "calc"]))
    session = InfoSession(config)

    result = session.apropos("kill")

    assert result.entries == [IndexEntry(manual="emacs", entry="kill-line", node="Killing", line=12)]
    assert result.failures == []
    assert session.apropos("kill") is result

    location = session.apropos_node("kill")
    assert location.strategy is Strategy.VIRTUAL
    assert location.manual == "*Apropos*"
    target = session.menu("kill-line [emacs]")
    assert (target.manual, target.node) == ("emacs", "Killing")


def test_apropos_records_unreadable_manuals(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    write_info(tmp_path, "emacs", emacs_nodes())
    write_info(tmp_path, "plain", [Node("Top", "No index.\n")])
    config = search_config(tmp_path, index=IndexConfig(apropos_manuals=["plain", "missing", "emacs"]))
    session = InfoSession(config)

    with caplog.at_level(logging.WARNING, logger="infonav.index"):
        result = session.apropos("region")

    assert [entry.entry for entry in result.entries] == ["kill-region"]
    assert result.failures == [
        AproposFailure(manual="missing", reason="Info file missing does not exist in any of 1 directories")
    ]
    assert "Skipping manual missing" in caplog.text
    with pytest.raises(NoIndexMatch):
        session.apropos_node("nothing-matches-this")


def test_session_index_moves_point_to_entry_line(tmp_path: Path) -> None:
    write_info(tmp_path, "emacs", emacs_nodes())
    session = InfoSession(search_config(tmp_path))
    session.goto("(emacs)Top")

    location = session.index("kill-line")

    assert location.node == "Killing"
    assert location.text[location.point :].startswith("Killing means erasing text.")

    session.index("kill")
    following = session.index_next()
    assert following.node == "Killing"
    assert following.text[following.point :].startswith("\nThe kill-ring details")
    assert session.index_next().point == location.point


def test_virtual_index_node_lists_matches(tmp_path: Path) -> None:
    write_info(tmp_path, "emacs", emacs_nodes())
    session = InfoSession(search_config(tmp_path))
    session.goto("(emacs)Top")

    location = session.virtual_index("kill")

    assert location.strategy is Strategy.VIRTUAL
    assert location.node == "*Index for ‘kill’*"
    assert [item.label for item in session.menu_items()] == ["kill-line", "kill-region"]
    assert session.menu("kill-region").node == "Killing"

    topics = session.goto("emacs", "*Index*")
    assert [item.target.node for item in session.menu_items()] == ["*Index for ‘kill’*"]
    assert topics.up is not None and topics.up.node == "Top"
    with pytest.raises(NoIndexMatch):
        session.virtual_index("yank")
