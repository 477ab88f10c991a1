"""Byte-level conventions of the Info file format and text parsers built on them."""

from __future__ import annotations

import codecs
import re
from dataclasses import dataclass
from typing import Iterator

from .models import CrossReference, MenuItem, NodeHeader, NodeRef

NODE_DELIMITER = b"\x1f"
NAME_QUOTE = "\x7f"
INDEX_COOKIE = b"\x00\x08[index\x00\x08]"
DEFAULT_ENCODING = "utf-8"

# The header line follows the delimiter, optionally after a form feed line.
_HEADER_RE = re.compile(rb"\x1f\x0c?\n(?:\x0c\n)?(?P<line>[^\n\x1f]*Node:[^\n]*)")
_FIELD_RE = re.compile(r"(File|Node|Next|Prev(?:ious)?|Up):[ \t]*")
_GENERATOR_RE = re.compile(rb"(?:makeinfo|texi2any)[ \n]version[ \n](\d+)\.(\d+)")
_CODING_RE = re.compile(rb"coding:[ \t]*([-\w]+)")
_MENU_START_RE = re.compile(r"^\* Menu:", re.MULTILINE | re.IGNORECASE)
_MENU_LINE_RE = re.compile(r"^\* +(?P<label>[^:\n]+):(?P<rest>[^\n]*)$", re.MULTILINE)
_TARGET_RE = re.compile(
    r"[ \t]*(?P<name>(?:\([^)\n]*\))?(?:[^.,\t\n]|[.,](?=[^ \t\n]))*)"
)
_XREF_RE = re.compile(
    r"\*[Nn]ote[ \t\n]+(?P<label>[^:]*?):(?P<rest>:|[ \t\n]*"
    r"(?P<target>(?:\([^)]*\))?(?:[^.,\t\n]|[.,](?=[^ \t\n]))*))"
)
_INDEX_LINE_RE = re.compile(
    r"^\* +(?P<entry>[^\n]*):[ \t]+(?P<target>[^\n]*?)\."
    r"(?:[ \t]*\n?[ \t]*\(line +(?P<line>\d+)\))?[ \t]*$",
    re.MULTILINE,
)
_DETAIL_RE = re.compile(r"^[ \t-]*The Detailed Node Listing", re.IGNORECASE)
_DUPLICATE_SUFFIX_RE = re.compile(r" <\d+>$")
_WHITESPACE_RE = re.compile(r"[ \t\n]+")
GENERATOR_MIN_VERSION = (4, 7)


@dataclass(frozen=True, slots=True)
class HeaderSpan:
    """Byte positions of one node header inside a buffer."""

    delimiter: int
    start: int
    end: int
    line: bytes


def iter_headers(data: bytes, start: int = 0, stop: int | None = None) -> Iterator[HeaderSpan]:
    """Yield node headers whose delimiter lies in ``[start, stop)``."""
    limit = len(data) if stop is None else stop
    for match in _HEADER_RE.finditer(data, max(0, start)):
        if match.start() >= limit:
            return
        yield HeaderSpan(
            delimiter=match.start(),
            start=match.start("line"),
            end=match.end("line"),
            line=match.group("line"),
        )


def node_end(data: bytes, position: int) -> int:
    """Return the position of the next node delimiter, or the end of the buffer."""
    index = data.find(NODE_DELIMITER, position)
    return len(data) if index < 0 else index


def header_before(data: bytes, position: int) -> HeaderSpan | None:
    """Return the last node header starting at or before ``position``."""
    cursor = position
    while cursor >= 0:
        index = data.rfind(NODE_DELIMITER, 0, cursor + 1)
        if index < 0:
            return None
        match = _HEADER_RE.match(data, index)
        if match is not None:
            return HeaderSpan(
                delimiter=index,
                start=match.start("line"),
                end=match.end("line"),
                line=match.group("line"),
            )
        cursor = index - 1
    return None


def read_name(text: str, position: int, terminators: str = ",\t\n") -> tuple[str, int]:
    """Read a node name starting at ``position``; DEL-quoted names may hold terminators."""
    if text.startswith(NAME_QUOTE, position):
        close = text.find(NAME_QUOTE, position + 1)
        if close >= 0:
            return text[position + 1 : close], close + 1
    end = position
    while end < len(text) and text[end] not in terminators:
        end += 1
    return text[position:end].strip(), end


def normalize_name(name: str) -> str:
    """Collapse runs of whitespace the way menu and xref labels wrap."""
    return _WHITESPACE_RE.sub(" ", name).strip()


def parse_node_spec(spec: str, default_manual: str | None = None) -> NodeRef:
    """Parse ``(manual)node`` notation; an empty node means ``Top``."""
    text = normalize_name(spec)
    manual = default_manual
    if text.startswith("("):
        close = text.find(")")
        if close > 0:
            manual = text[1:close].strip() or default_manual
            text = text[close + 1 :].strip()
    return NodeRef(manual=manual, node=text or "Top")


def parse_header(line: str) -> NodeHeader:
    """Extract the File/Node/Next/Prev/Up fields from a header line."""
    fields: dict[str, str] = {}
    position = 0
    while True:
        match = _FIELD_RE.search(line, position)
        if match is None:
            break
        key = match.group(1).lower()
        if key == "previous":
            key = "prev"
        value, position = read_name(line, match.end())
        fields.setdefault(key, value)

    def pointer(key: str) -> NodeRef | None:
        value = fields.get(key)
        if not value:
            return None
        return parse_node_spec(value)

    return NodeHeader(
        node=fields.get("node", ""),
        file=fields.get("file") or None,
        next=pointer("next"),
        prev=pointer("prev"),
        up=pointer("up"),
    )


def header_name(line: bytes, encoding: str = DEFAULT_ENCODING) -> str:
    """Decode a raw header line and return its Node field."""
    return parse_header(line.decode(encoding, errors="replace")).node


def parse_menu(text: str) -> list[MenuItem] | None:
    """Return the menu items of a node, or None when the node has no menu."""
    start = _MENU_START_RE.search(text)
    if start is None:
        return None
    items: list[MenuItem] = []
    for match in _MENU_LINE_RE.finditer(text, start.end()):
        item = _menu_item(match)
        if item is not None:
            items.append(item)
    return items


def menu_sections(text: str) -> list[tuple[str | None, MenuItem]]:
    """Pair each first-level menu item with the heading line above its run.

    Headings are un-indented lines that are not menu items. Reading stops at
    ``The Detailed Node Listing`` or at a second ``* Menu:`` line.
    """
    start = _MENU_START_RE.search(text)
    if start is None:
        return []
    pairs: list[tuple[str | None, MenuItem]] = []
    section: str | None = None
    for line in text[start.end() :].split("\n")[1:]:
        if _MENU_START_RE.match(line) or _DETAIL_RE.search(line):
            break
        if line.startswith("* "):
            match = _MENU_LINE_RE.match(line)
            item = _menu_item(match) if match else None
            if item is not None:
                pairs.append((section, item))
        elif line.strip() and not line[0].isspace():
            section = line.strip()
    return pairs


def _menu_item(match: re.Match[str]) -> MenuItem | None:
    label = normalize_name(match.group("label"))
    rest = match.group("rest")
    if rest.startswith(":"):
        return MenuItem(label=label, target=parse_node_spec(label), description=rest[1:].strip())
    target_match = _TARGET_RE.match(rest)
    name = target_match.group("name") if target_match else ""
    if not name.strip():
        return None
    tail = rest[target_match.end() :] if target_match else ""
    return MenuItem(label=label, target=parse_node_spec(name), description=tail.lstrip(".,\t").strip())


def quote_name(name: str) -> str:
    """DEL-quote a node name that holds a header field terminator."""
    if any(char in name for char in ",\t:"):
        return f"{NAME_QUOTE}{name}{NAME_QUOTE}"
    return name


def render_header(
    file: str,
    node: str,
    *,
    next: str | None = None,
    prev: str | None = None,
    up: str | None = None,
) -> str:
    """Render a node delimiter and header line for generated nodes."""
    fields = [f"File: {file}", f"Node: {quote_name(node)}"]
    for label, value in (("Next", next), ("Prev", prev), ("Up", up)):
        if value:
            fields.append(f"{label}: {quote_name(value) if not value.startswith('(') else value}")
    return "\x1f\n" + ",  ".join(fields) + "\n\n"


def parse_references(text: str) -> list[CrossReference]:
    """Return every ``*Note`` cross reference in order of appearance."""
    references: list[CrossReference] = []
    for match in _XREF_RE.finditer(text):
        label = normalize_name(match.group("label"))
        if not label:
            continue
        if match.group("rest") == ":":
            target = parse_node_spec(label)
        else:
            name = match.group("target") or ""
            if not name.strip():
                continue
            target = parse_node_spec(name)
        references.append(CrossReference(label=label, target=target))
    return references


@dataclass(frozen=True, slots=True)
class IndexLine:
    """Raw fields of an index menu line."""

    entry: str
    target: str
    line: int | None


def iter_index_lines(text: str) -> Iterator[IndexLine]:
    """Yield ``* entry: target.  (line N)`` lines in document order."""
    for match in _INDEX_LINE_RE.finditer(text):
        entry = match.group("entry").strip()
        if entry.lower() == "menu":
            continue
        line = match.group("line")
        yield IndexLine(
            entry=entry,
            target=match.group("target").strip(),
            line=int(line) if line is not None else None,
        )


def strip_duplicate_suffix(entry: str) -> str:
    """Drop the `` <N>`` suffix the generator adds to repeated index entries."""
    return _DUPLICATE_SUFFIX_RE.sub("", entry)


def supports_index_cookies(data: bytes) -> bool:
    """Return True when the generator named in the first lines embeds index cookies."""
    head_end = 0
    for _ in range(4):
        newline = data.find(b"\n", head_end)
        if newline < 0:
            head_end = len(data)
            break
        head_end = newline + 1
    match = _GENERATOR_RE.search(data, 0, head_end)
    if match is None:
        return False
    version = (int(match.group(1)), int(match.group(2)))
    return version >= GENERATOR_MIN_VERSION


def detect_encoding(data: bytes) -> str:
    """Read the ``coding:`` local variable near the end of a file."""
    tail = data[-3000:]
    marker = tail.rfind(b"Local Variables:")
    if marker < 0:
        return DEFAULT_ENCODING
    match = _CODING_RE.search(tail, marker)
    if match is None:
        return DEFAULT_ENCODING
    name = match.group(1).decode("ascii", errors="ignore")
    for suffix in ("-unix", "-dos", "-mac"):
        if name.endswith(suffix):
            name = name[: -len(suffix)]
    try:
        return codecs.lookup(name).name
    except LookupError:
        return DEFAULT_ENCODING
