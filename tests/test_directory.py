from __future__ import annotations

import os
from pathlib import Path

import pytest

from infonav.config import FinderConfig
from infonav.errors import InfoError, ManualNotFound, NodeNotFound
from infonav.models import Strategy
from infonav.session import InfoSession
from infonav.virtual.directory import directory_manuals, merge_directories

from infotext import Node, search_config, write_info

SYSTEM_DIR = (
    "This is the file .../info/dir, which contains the\ntopmost node of the Info hierarchy.\n\n"
    "\x1f\nFile: dir,\tNode: Top,\tThis is the top of the INFO tree\n\n"
    "This is the Info main menu.\n\n"
    "* Menu:\n\n"
    "Emacs\n"
    "* Emacs: (emacs).              The extensible self-documenting\n"
    "                                 text editor.\n\n"
    "Development\n"
    "* Calc: (calc).                Advanced desk calculator.\n"
)

SITE_DIR = (
    "Local additions.\n\n"
    "\x1f\nFile: dir,\tNode: Top\n\n"
    "* Menu:\n\n"
    "EMACS\n"
    "* emacs: (emacs).              Duplicate entry.\n"
    "* Gnus: (gnus).                The news reader.\n\n"
    "Text creation and manipulation\n"
    "* Texinfo: (texinfo).          The GNU documentation format.\n"
    "\x1f\nFile: dir,\tNode: Local Notes\n\nSite notes.\n"
)


def _write_dirs(tmp_path: Path) -> tuple[Path, Path]:
    system, site = tmp_path / "system", tmp_path / "site"
    system.mkdir()
    site.mkdir()
    (system / "dir").write_text(SYSTEM_DIR, encoding="utf-8")
    (site / "dir").write_text(SITE_DIR, encoding="utf-8")
    return system, site


def test_merge_combines_sections_without_duplicates() -> None:
    merged = merge_directories([SYSTEM_DIR, SITE_DIR])

    assert merged.startswith("This is the file .../info/dir")
    assert merged.count("* Emacs: (emacs).") == 1
    assert "* emacs: (emacs)." not in merged
    assert "                                 text editor.\n" in merged
    assert merged.index("* Gnus: (gnus).") < merged.index("\nDevelopment\n")
    assert merged.index("\nDevelopment\n") < merged.index("\nText creation and manipulation\n")
    assert "Node: Local Notes" in merged


def test_merge_is_idempotent() -> None:
    once = merge_directories([SYSTEM_DIR, SITE_DIR])

    assert merge_directories([SYSTEM_DIR, SITE_DIR, SITE_DIR]) == once
    assert merge_directories([SYSTEM_DIR, SYSTEM_DIR]) == merge_directories([SYSTEM_DIR])
    assert merge_directories([]) == ""


def test_directory_manuals_groups_targets_by_heading() -> None:
    top = merge_directories([SYSTEM_DIR, SITE_DIR])

    grouped = directory_manuals(top)

    assert grouped["Emacs"] == ["emacs", "gnus"]
    assert grouped["Development"] == ["calc"]
    assert grouped["Text creation and manipulation"] == ["texinfo"]


def test_directory_manuals_keep_dotted_names() -> None:
    top = (
        "\x1f\nFile: dir,\tNode: Top\n\n* Menu:\n\n"
        "Development\n"
        "* Python: (python3.11).    Python docs.\n"
        "* Guile:\t(guile-3.0)Top.   Scheme.\n"
        "* Emacs: (emacs).   Editor.\n"
    )

    assert directory_manuals(top)["Development"] == ["python3.11", "guile-3.0", "emacs"]


def test_apropos_manuals_include_dotted_dir_entries(tmp_path: Path) -> None:
    (tmp_path / "dir").write_text(
        "\x1f\nFile: dir,\tNode: Top\n\n* Menu:\n\n"
        "Development\n"
        "* Python: (python3.11).    Python docs.\n"
        "* Emacs: (emacs).   Editor.\n",
        encoding="utf-8",
    )
    session = InfoSession(search_config(tmp_path))

    assert session.apropos_manuals() == ["python3.11", "emacs"]


def test_session_serves_merged_dir_node(tmp_path: Path) -> None:
    system, site = _write_dirs(tmp_path)
    write_info(site, "gnus", [Node("Top", "Gnus manual.\n", up="(dir)")])
    session = InfoSession(search_config(system, site))

    location = session.directory()

    assert location.strategy is Strategy.VIRTUAL
    assert (location.manual, location.node) == ("dir", "Top")
    assert [item.label for item in session.menu_items()] == ["Emacs", "Gnus", "Calc", "Texinfo"]
    gnus = session.menu("gnus")
    assert (gnus.manual, gnus.node) == ("gnus", "Top")
    assert session.up().manual == "dir"
    assert session.goto("(dir)Local Notes").text.endswith("Site notes.\n")


def test_dir_is_rebuilt_when_a_file_changes(tmp_path: Path) -> None:
    system, site = _write_dirs(tmp_path)
    session = InfoSession(search_config(system, site))
    session.directory()

    path = site / "dir"
    path.write_text(SITE_DIR.replace("Gnus: (gnus)", "Org: (org)"), encoding="utf-8")
    stamp = path.stat().st_mtime_ns + 1_000_000_000
    os.utime(path, ns=(stamp, stamp))

    session.directory()
    labels = [item.label for item in session.menu_items()]

    assert "Org" in labels
    assert "Gnus" not in labels


def test_missing_dir_files_raise(tmp_path: Path) -> None:
    session = InfoSession(search_config(tmp_path))

    with pytest.raises(ManualNotFound, match="Info file dir does not exist in any of 1 directories"):
        session.directory()


def test_finder_merges_dir_headings_with_configured_keywords(tmp_path: Path) -> None:
    system, site = _write_dirs(tmp_path)
    finder = FinderConfig(keywords={"Editing": "emacs", "emacs": ["info"]})
    session = InfoSession(search_config(system, site, finder=finder))

    keywords = session.finder()

    assert keywords["Emacs"] == ["emacs", "gnus"]
    assert keywords["Editing"] == ["emacs"]
    assert keywords["emacs"] == ["info"]
    assert session.finder("editing") == {"Editing": ["emacs"]}
    with pytest.raises(InfoError, match="No manuals for keyword graphics"):
        session.finder("graphics")


def test_finder_nodes_list_keywords_and_manuals(tmp_path: Path) -> None:
    system, site = _write_dirs(tmp_path)
    session = InfoSession(search_config(system, site))

    top = session.finder_node()
    assert top.manual == "*Finder*"
    assert "* Development::  1 manuals" in top.text

    keyword = session.finder_node("development")
    assert keyword.node == "Development"
    assert [str(item.target) for item in session.menu_items()] == ["(calc)"]
    with pytest.raises(NodeNotFound):
        session.finder_node("graphics")
