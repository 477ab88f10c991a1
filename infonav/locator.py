"""Resolve logical manual names to physical files and decode their contents."""

from __future__ import annotations

import bz2
import gzip
import logging
import lzma
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Sequence

from .config import SearchPathConfig
from .errors import DecoderUnavailableError, InfoError, ManualNotFound

logger = logging.getLogger(__name__)

DecodeRunner = Callable[[Sequence[str], bytes], subprocess.CompletedProcess[bytes]]

DIR_FILE_NAMES = ("dir", "localdir")


@dataclass(frozen=True, slots=True)
class Decoder:
    """Decode step bound to a file suffix: identity, in-process, or an external program."""

    name: str
    command: tuple[str, ...] | None = None

    def decode(self, raw: bytes, runner: DecodeRunner | None = None) -> bytes:
        if self.name == "identity":
            return raw
        if self.name == "gzip":
            return gzip.decompress(raw)
        if self.name == "bzip2":
            return bz2.decompress(raw)
        if self.name == "xz":
            return lzma.decompress(raw)
        if self.command is None:
            raise InfoError(f"Decoder '{self.name}' has no implementation.")
        exec_runner = runner or _run_subprocess
        try:
            result = exec_runner(self.command, raw)
        except FileNotFoundError as exc:
            raise DecoderUnavailableError(
                f"'{self.command[0]}' is not installed or not available in PATH."
            ) from exc
        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise InfoError(
                f"{' '.join(self.command)} failed with exit code {result.returncode}: {stderr}"
            )
        return result.stdout


IDENTITY = Decoder("identity")
GZIP = Decoder("gzip")
BZIP2 = Decoder("bzip2")
XZ = Decoder("xz")
UNCOMPRESS = Decoder("uncompress", ("gzip", "-dc"))
ZSTD = Decoder("zstd", ("zstd", "-dc"))

# Tried in order; the empty suffix must stay last.
SUFFIXES: tuple[tuple[str, Decoder], ...] = (
    (".info.Z", UNCOMPRESS),
    (".info.gz", GZIP),
    (".info.z", GZIP),
    (".info.bz2", BZIP2),
    (".info.xz", XZ),
    (".info.lzma", XZ),
    (".info.zst", ZSTD),
    (".info", IDENTITY),
    ("-info.Z", UNCOMPRESS),
    ("-info.gz", GZIP),
    ("-info.z", GZIP),
    ("-info.bz2", BZIP2),
    ("-info.xz", XZ),
    ("-info.zst", ZSTD),
    ("-info", IDENTITY),
    ("/index.gz", GZIP),
    ("/index.bz2", BZIP2),
    ("/index.xz", XZ),
    ("/index.zst", ZSTD),
    ("/index", IDENTITY),
    (".Z", UNCOMPRESS),
    (".gz", GZIP),
    (".z", GZIP),
    (".bz2", BZIP2),
    (".xz", XZ),
    (".lzma", XZ),
    (".zst", ZSTD),
    ("", IDENTITY),
)

_SHORT_SUFFIXES = {
    ".info": ".inf",
    ".info.gz": ".igz",
    ".info.z": ".inz",
    "-info": ".inf",
    "-info.gz": ".igz",
    "-info.z": ".inz",
    "": "",
}


@dataclass(frozen=True, slots=True)
class LocatedFile:
    """A physical file chosen for a manual, with the decoder for its suffix."""

    path: Path
    decoder: Decoder

    def read(self, runner: DecodeRunner | None = None) -> bytes:
        return self.decoder.decode(self.path.read_bytes(), runner)

    def mtime_ns(self) -> int:
        return self.path.stat().st_mtime_ns


class FileLocator:
    """Search the configured directories for a manual, trying each suffix in turn."""

    def __init__(
        self,
        config: SearchPathConfig,
        *,
        environ: Mapping[str, str] | None = None,
        runner: DecodeRunner | None = None,
    ) -> None:
        self._config = config
        self._environ = os.environ if environ is None else environ
        self._runner = runner

    def search_directories(self) -> list[Path]:
        """Explicit directories, INFOPATH (or defaults), then additional directories."""
        config = self._config
        middle: list[Path] = list(config.default_directories)
        infopath = self._environ.get("INFOPATH") if config.use_environment else None
        if infopath:
            middle = []
            for part in infopath.split(os.pathsep):
                if part:
                    middle.append(Path(part).expanduser())
                else:
                    # An empty element splices in the default directories.
                    middle.extend(config.default_directories)

        ordered: list[Path] = []
        for directory in [*config.directories, *middle, *config.additional_directories]:
            if directory not in ordered:
                ordered.append(directory)
        return ordered

    def locate(self, name: str, *, noerror: bool = False) -> LocatedFile | None:
        """Return the first matching file for ``name`` or raise ``ManualNotFound``."""
        if _is_path_like(name):
            base = Path(name).expanduser()
            found = self._probe(base)
            if found is not None:
                return found
            if noerror:
                return None
            raise ManualNotFound(name)

        directories = self.search_directories()
        for directory in directories:
            found = self._probe(directory / name)
            if found is not None:
                logger.debug("Located manual %s at %s", name, found.path)
                return found
        if noerror:
            return None
        raise ManualNotFound(name, searched=len(directories))

    def locate_in(self, directory: Path, name: str) -> LocatedFile | None:
        """Find a file (typically an indirect subfile) next to its main file."""
        return self._probe(directory / name)

    def find_dir_files(self) -> list[LocatedFile]:
        """Return every directory file on the search path, once per real path."""
        seen: set[str] = set()
        found: list[LocatedFile] = []
        for directory in self.search_directories():
            for file_name in DIR_FILE_NAMES:
                located = self._probe(directory / file_name)
                if located is None:
                    continue
                real = os.path.realpath(located.path)
                if real in seen:
                    continue
                seen.add(real)
                found.append(located)
        return found

    def read(self, located: LocatedFile) -> bytes:
        return located.read(self._runner)

    def _probe(self, base: Path) -> LocatedFile | None:
        verbatim = _known_suffix(base.name)
        if verbatim is not None and base.is_file():
            return LocatedFile(base, verbatim)

        found = self._probe_suffixes(base)
        if found is not None:
            return found
        lowered = base.name.lower()
        if lowered != base.name:
            return self._probe_suffixes(base.with_name(lowered))
        return None

    def _probe_suffixes(self, base: Path) -> LocatedFile | None:
        for suffix, decoder in SUFFIXES:
            candidate = Path(f"{base}{suffix}")
            if candidate.is_file():
                return LocatedFile(candidate, decoder)
            if not self._config.long_file_names:
                short = _short_name(base, suffix)
                if short is not None and short != candidate and short.is_file():
                    return LocatedFile(short, decoder)
        return None


def _is_path_like(name: str) -> bool:
    return os.path.isabs(os.path.expanduser(name)) or name.startswith(("./", "../"))


def _known_suffix(file_name: str) -> Decoder | None:
    for suffix, decoder in SUFFIXES:
        if suffix and "/" not in suffix and file_name.endswith(suffix) and file_name != suffix:
            return decoder
    return None


def _short_name(base: Path, suffix: str) -> Path | None:
    short_suffix = _SHORT_SUFFIXES.get(suffix)
    if short_suffix is None:
        return None
    stem = base.name.split(".", 1)[0][:8]
    return base.with_name(f"{stem}{short_suffix}")


def _run_subprocess(command: Sequence[str], raw: bytes) -> subprocess.CompletedProcess[bytes]:
    return subprocess.run(  # noqa: S603
        list(command),
        input=raw,
        capture_output=True,
        check=False,
    )
