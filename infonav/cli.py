"""CLI entrypoints for browsing Info manuals."""

from __future__ import annotations

import logging
from typing import Annotated, Any, Callable

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from .config import Config, load_config
from .errors import InfoError
from .format import INDEX_COOKIE
from .models import AproposResult, NodeLocation
from .session import InfoSession
from .toc import outline

console = Console()
app = typer.Typer(help="Info manual navigation and indexing toolkit.")

_COOKIE_TEXT = INDEX_COOKIE.decode("latin-1")

ConfigPathOption = Annotated[
    str,
    typer.Option("--config", "-c", help="Path to configuration file or its directory."),
]
VerboseFlag = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Log search strategies and cache activity."),
]
JsonFlag = Annotated[
    bool,
    typer.Option("--json", help="Emit machine-readable JSON."),
]


@app.command()
def show(
    manual: Annotated[str, typer.Argument(..., help="Manual name or path.")],
    node: Annotated[str, typer.Argument(help="Node or anchor name.")] = "Top",
    strict: Annotated[
        bool,
        typer.Option("--strict", help="Do not retry with a case-insensitive match."),
    ] = False,
    json_output: JsonFlag = False,
    config_path: ConfigPathOption = ".",
    verbose: VerboseFlag = False,
) -> None:
    """Print a node and its pointers."""
    session = _session(config_path, verbose)
    location = _run(lambda: session.goto(manual, node, strict_case=strict), "Cannot show node")
    if json_output:
        console.print_json(data=_location_payload(location))
        return
    console.print(
        f"[bold blue]({escape(location.manual)}){escape(location.node)}[/] "
        f"via {location.strategy.value} in {escape(location.file or location.manual)}"
    )
    for label, pointer in (("Next", location.next), ("Prev", location.prev), ("Up", location.up)):
        if pointer is not None:
            console.print(f"[bold]{label}[/]: {escape(str(pointer))}")
    console.print(escape(location.text.replace(_COOKIE_TEXT, "")), highlight=False)


@app.command()
def locate(
    manual: Annotated[str, typer.Argument(..., help="Manual name or path.")],
    config_path: ConfigPathOption = ".",
    verbose: VerboseFlag = False,
) -> None:
    """Print the file a manual name resolves to."""
    session = _session(config_path, verbose)
    located = _run(lambda: session.locator.locate(manual), "Cannot locate manual")
    console.print(f"[bold green]{escape(manual)}[/]: {escape(str(located.path))} ({located.decoder.name})")


@app.command()
def toc(
    manual: Annotated[str, typer.Argument(..., help="Manual name or path.")],
    config_path: ConfigPathOption = ".",
    verbose: VerboseFlag = False,
) -> None:
    """Print the table of contents of a manual."""
    session = _session(config_path, verbose)
    entries = _run(lambda: session.toc(manual), "Cannot build table of contents")
    rows = outline(entries)
    if not rows:
        console.print(f"[bold yellow]No table of contents[/]: {escape(manual)} has no Top menu.")
        return
    section = None
    for depth, entry in rows:
        if depth == 0 and entry.section and entry.section != section:
            section = entry.section
            console.print(f"[bold]{escape(section)}[/]")
        console.print(f"{'  ' * (depth + 1)}{escape(entry.node)}", highlight=False)


@app.command()
def index(
    manual: Annotated[str, typer.Argument(..., help="Manual name or path.")],
    topic: Annotated[str | None, typer.Argument(help="Substring to search for.")] = None,
    json_output: JsonFlag = False,
    config_path: ConfigPathOption = ".",
    verbose: VerboseFlag = False,
) -> None:
    """List the index entries of a manual, optionally filtered by topic."""
    session = _session(config_path, verbose)
    entries = _run(lambda: session.index_entries(manual, topic), "Cannot read index")
    if json_output:
        console.print_json(data=[entry.model_dump() for entry in entries])
        return
    if not entries:
        console.print(f"[bold yellow]No matches[/]: no index entry contains '{escape(topic or '')}'.")
        raise typer.Exit(code=1)
    for entry in entries:
        line = f" (line {entry.line})" if entry.line is not None else ""
        console.print(f"{escape(entry.entry)}: {escape(entry.node)}{line}", highlight=False)


@app.command()
def apropos(
    topic: Annotated[str, typer.Argument(..., help="Substring to search for in every index.")],
    json_output: JsonFlag = False,
    config_path: ConfigPathOption = ".",
    verbose: VerboseFlag = False,
) -> None:
    """Search the indices of every manual listed in the directory."""
    session = _session(config_path, verbose)
    result = _run(lambda: session.apropos(topic), "Apropos failed")
    if json_output:
        console.print_json(data=_apropos_payload(result))
        return
    for entry in result.entries:
        line = f" (line {entry.line})" if entry.line is not None else ""
        console.print(
            escape(f"{entry.entry} [{entry.manual}]: {entry.node}{line}"),
            highlight=False,
        )
    for failure in result.failures:
        console.print(f"[bold yellow]Skipped {escape(failure.manual)}[/]: {escape(failure.reason)}")
    if not result.entries:
        console.print(f"[bold yellow]No matches[/]: nothing found for '{escape(topic)}'.")
        raise typer.Exit(code=1)


@app.command(name="dir")
def directory(
    config_path: ConfigPathOption = ".",
    verbose: VerboseFlag = False,
) -> None:
    """Print the merged directory of all installed manuals."""
    session = _session(config_path, verbose)
    location = _run(session.directory, "Cannot read directory")
    console.print(escape(location.text), highlight=False)


@app.command()
def finder(
    keyword: Annotated[str | None, typer.Argument(help="Keyword to list manuals for.")] = None,
    config_path: ConfigPathOption = ".",
    verbose: VerboseFlag = False,
) -> None:
    """List manual keywords, or the manuals filed under one keyword."""
    session = _session(config_path, verbose)
    keywords = _run(lambda: session.finder(keyword), "Finder failed")
    if not keywords:
        console.print("[bold yellow]No keywords[/]: no directory sections or configured keywords.")
        return
    for name, manuals in keywords.items():
        console.print(f"[bold]{escape(name)}[/]: {escape(', '.join(manuals))}")


def _session(config_path: str, verbose: bool) -> InfoSession:
    config = _load(config_path)
    _configure_logging("DEBUG" if verbose else config.log_level)
    return InfoSession(config)


def _load(path: str) -> Config:
    try:
        return load_config(path)
    except FileNotFoundError as exc:
        raise typer.BadParameter(f"Config file not found: {path}") from exc
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _configure_logging(level: str) -> None:
    logger = logging.getLogger("infonav")
    logger.setLevel(level)
    # Drop handlers from a previous invocation in the same process.
    if logger.hasHandlers():
        logger.handlers.clear()
    logger.addHandler(RichHandler(console=Console(stderr=True), show_path=False))


def _run(action: Callable[[], Any], label: str) -> Any:
    try:
        return action()
    except InfoError as exc:
        console.print(f"[bold red]{label}[/]: {escape(str(exc))}")
        raise typer.Exit(code=1) from exc


def _location_payload(location: NodeLocation) -> dict[str, Any]:
    return {
        "manual": location.manual,
        "node": location.node,
        "file": location.file,
        "span": list(location.span),
        "strategy": location.strategy.value,
        "anchor": location.anchor,
        "point": location.point,
        "next": str(location.next) if location.next else None,
        "prev": str(location.prev) if location.prev else None,
        "up": str(location.up) if location.up else None,
        "text": location.text.replace(_COOKIE_TEXT, ""),
    }


def _apropos_payload(result: AproposResult) -> dict[str, Any]:
    return {
        "topic": result.topic,
        "entries": [entry.model_dump() for entry in result.entries],
        "failures": [{"manual": item.manual, "reason": item.reason} for item in result.failures],
    }
