from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from infonav.cli import app

from infotext import emacs_nodes, write_info

DIR_TEXT = (
    "Directory of manuals.\n\n"
    "\x1f\nFile: dir,\tNode: Top\n\n"
    "* Menu:\n\n"
    "Editors\n"
    "* Emacs: (emacs).          The extensible editor.\n"
)


def _project(tmp_path: Path) -> Path:
    info = tmp_path / "info"
    write_info(info, "emacs", emacs_nodes())
    (info / "dir").write_text(DIR_TEXT, encoding="utf-8")
    (tmp_path / "infonav.yml").write_text(
        "search_path:\n"
        "  directories: [info]\n"
        "  default_directories: []\n"
        "  use_environment: false\n",
        encoding="utf-8",
    )
    return tmp_path


def _invoke(root: Path, *args: str):
    return CliRunner().invoke(app, [*args, "--config", str(root)])


def test_show_prints_node_and_pointers(tmp_path: Path) -> None:
    result = _invoke(_project(tmp_path), "show", "emacs", "Glossary")

    assert result.exit_code == 0, result.output
    assert "(emacs)Glossary via tag-table" in result.output
    assert "Next: Command Index" in result.output
    assert "Up: Top" in result.output
    assert "Glossary of terms." in result.output


def test_show_json_reports_location(tmp_path: Path) -> None:
    result = _invoke(_project(tmp_path), "show", "emacs", "Kill Ring Anchor", "--json")

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["node"] == "Killing"
    assert payload["anchor"] == "Kill Ring Anchor"
    assert payload["strategy"] == "anchor"
    assert payload["text"][payload["point"] :].startswith("kill-ring details")


def test_show_strips_index_cookie(tmp_path: Path) -> None:
    result = _invoke(_project(tmp_path), "show", "emacs", "Command Index")

    assert result.exit_code == 0, result.output
    assert "\x08" not in result.output
    assert "kill-region" in result.output


def test_show_missing_node_exits_with_error(tmp_path: Path) -> None:
    result = _invoke(_project(tmp_path), "show", "emacs", "Nowhere", "--strict")

    assert result.exit_code == 1
    assert "Cannot show node" in result.output
    assert "No such node or anchor: (emacs)Nowhere" in result.output


def test_locate_prints_path_and_decoder(tmp_path: Path) -> None:
    result = _invoke(_project(tmp_path), "locate", "emacs")

    assert result.exit_code == 0, result.output
    flat = result.output.replace("\n", "")
    assert "emacs.info" in flat
    assert "(identity)" in flat


def test_toc_prints_outline(tmp_path: Path) -> None:
    result = _invoke(_project(tmp_path), "toc", "emacs")

    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert "  Killing" in lines
    assert "  Command Index" in lines


def test_index_lists_entries_and_reports_misses(tmp_path: Path) -> None:
    root = _project(tmp_path)

    found = _invoke(root, "index", "emacs", "kill")
    missing = _invoke(root, "index", "emacs", "yank")

    assert found.exit_code == 0, found.output
    assert "kill-line: Killing (line 3)" in found.output
    assert "glossary" not in found.output
    assert missing.exit_code == 1
    assert "No matches" in missing.output


def test_index_json_lists_every_entry(tmp_path: Path) -> None:
    result = _invoke(_project(tmp_path), "index", "emacs", "--json")

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert [item["entry"] for item in payload] == ["kill-line", "kill-region", "glossary"]
    assert payload[0] == {"manual": "emacs", "entry": "kill-line", "node": "Killing", "line": 3}


def test_apropos_searches_manuals_listed_in_dir(tmp_path: Path) -> None:
    root = _project(tmp_path)

    text = _invoke(root, "apropos", "region")
    as_json = _invoke(root, "apropos", "kill", "--json")

    assert text.exit_code == 0, text.output
    assert "kill-region [emacs]: Killing (line 4)" in text.output
    payload = json.loads(as_json.stdout)
    assert payload["topic"] == "kill"
    assert [item["entry"] for item in payload["entries"]] == ["kill-line", "kill-region"]
    assert payload["failures"] == []


def test_apropos_without_matches_exits_with_error(tmp_path: Path) -> None:
    result = _invoke(_project(tmp_path), "apropos", "nothing-like-this")

    assert result.exit_code == 1
    assert "No matches" in result.output


def test_dir_and_finder_read_directory_file(tmp_path: Path) -> None:
    root = _project(tmp_path)

    listing = _invoke(root, "dir")
    keywords = _invoke(root, "finder")
    unknown = _invoke(root, "finder", "graphics")

    assert listing.exit_code == 0, listing.output
    assert "* Emacs: (emacs)." in listing.output
    assert keywords.exit_code == 0, keywords.output
    assert "Editors: emacs" in keywords.output
    assert unknown.exit_code == 1
    assert "No manuals for keyword graphics" in unknown.output


def test_bad_config_is_a_usage_error(tmp_path: Path) -> None:
    missing = CliRunner().invoke(app, ["show", "emacs", "--config", str(tmp_path / "absent.yml")])
    (tmp_path / "infonav.yml").write_text("log_level: chatty\n", encoding="utf-8")
    invalid = _invoke(tmp_path, "locate", "emacs")

    assert missing.exit_code == 2
    assert invalid.exit_code == 2
