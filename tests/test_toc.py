from __future__ import annotations

from pathlib import Path

from infonav.format import parse_menu
from infonav.locator import FileLocator
from infonav.manual import Manual
from infonav.models import Strategy
from infonav.session import InfoSession
from infonav.toc import TocBuilder, outline, render

from infotext import Node, search_config, write_info, write_split

TOP_BODY = (
    "The Manual\n**********\n\n"
    "* Menu:\n\n"
    "Basics\n"
    "* Intro::              Getting started.\n"
    "* Usage::\n\n"
    "Reference\n"
    "* Options::\n\n"
    " -- The Detailed Node Listing --\n\n"
    "Usage\n\n"
    "* Flags::\n"
)


def _nodes() -> list[Node]:
    return [
        Node("Top", TOP_BODY, next="Intro", up="(dir)"),
        Node("Intro", "Intro text.\n", next="Usage", prev="Top", up="Top"),
        Node("Usage", "* Menu:\n\n* Flags::\n* (other)Remote::\n", next="Options", prev="Intro", up="Top"),
        Node("Flags", "Flag text.\n", up="Usage"),
        Node("Options", "Options text.\n", prev="Usage", up="Top"),
        Node("Appendix", "Stray node.\n", up="(other)Top"),
    ]


def _manual(tmp_path: Path) -> Manual:
    write_info(tmp_path, "guide", _nodes())
    locator = FileLocator(search_config(tmp_path).search_path)
    return Manual.load("guide", locator.locate("guide"), locator)


def test_build_records_parents_children_and_sections(tmp_path: Path) -> None:
    toc = TocBuilder().build(_manual(tmp_path))

    assert list(toc) == ["Top", "Intro", "Usage", "Flags", "Options", "Appendix"]
    assert toc["Top"].children == ["Intro", "Usage", "Options", "Flags"]
    assert toc["Usage"].children == ["Flags"]
    assert toc["Flags"].parent == "Usage"
    assert toc["Intro"].section == "Basics"
    assert toc["Usage"].section == "Basics"
    assert toc["Options"].section == "Reference"
    assert toc["Flags"].section is None


def test_foreign_up_is_recorded_but_not_a_parent(tmp_path: Path) -> None:
    toc = TocBuilder().build(_manual(tmp_path))

    assert toc["Appendix"].parent is None
    assert toc["Appendix"].external_parent == "(other)"
    assert toc["Top"].parent is None
    assert toc["Top"].external_parent == "(dir)"


def test_build_is_cached_and_idempotent(tmp_path: Path) -> None:
    manual = _manual(tmp_path)
    builder = TocBuilder()

    first = builder.build(manual)
    assert builder.build(manual) is first

    builder.invalidate(manual)
    rebuilt = builder.build(manual)
    assert rebuilt is not first
    assert rebuilt == first


def test_outline_walks_menus_depth_first_once(tmp_path: Path) -> None:
    toc = TocBuilder().build(_manual(tmp_path))

    rows = [(depth, entry.node) for depth, entry in outline(toc)]

    assert rows == [(0, "Intro"), (0, "Usage"), (1, "Flags"), (0, "Options")]


def test_rendered_toc_is_a_parseable_menu(tmp_path: Path) -> None:
    toc = TocBuilder().build(_manual(tmp_path))

    text = render("guide", toc)
    items = parse_menu(text)

    assert text.startswith("\x1f\nFile: guide,  Node: *TOC*,  Up: Top\n")
    assert items is not None
    assert [item.target.node for item in items] == ["Intro", "Usage", "Flags", "Options"]
    assert "*   Flags::" in text
    assert "\nBasics\n" in text


def test_build_walks_every_subfile(tmp_path: Path) -> None:
    write_split(
        tmp_path,
        "split",
        [
            [Node("Top", "* Menu:\n\n* First::\n* Second::\n"), Node("First", "one\n", up="Top")],
            [Node("Second", "two\n", up="Top")],
        ],
    )
    locator = FileLocator(search_config(tmp_path).search_path)
    manual = Manual.load("split", locator.locate("split"), locator)

    toc = TocBuilder().build(manual)

    assert list(toc) == ["Top", "First", "Second"]
    assert toc["Second"].parent == "Top"


def test_session_serves_toc_node(tmp_path: Path) -> None:
    write_info(tmp_path, "guide", _nodes())
    session = InfoSession(search_config(tmp_path))

    location = session.goto("guide", "*TOC*")

    assert location.strategy is Strategy.VIRTUAL
    assert location.manual == "guide"
    assert location.up is not None and location.up.node == "Top"
    chosen = session.menu("Flags")
    assert chosen.node == "Flags"
    assert chosen.strategy is Strategy.TAG_TABLE
