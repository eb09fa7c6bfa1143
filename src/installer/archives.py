"""Unpacking of zip and tar.gz distributions into an exploded directory.

Every archive is expected to wrap a single root folder which is stripped.
Symbolic links are recreated, deferring the ones whose target is not
extracted yet, and falling back to a copy of the target on filesystems
refusing links.
"""
from __future__ import annotations

import logging
import os
import shutil
import stat
import tarfile
import time
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import IO, List, Optional

from constants import ArchiveKinds
from common.errors import ExtractionError
from common.logging_utils import extra_context, Timer

logger = logging.getLogger(__name__)

_EXECUTABLE_MODE = 0o755


@dataclass
class _PendingLink:
    """A link entry waiting for its target, or for a copy fallback."""

    path: Path
    target: str

    @property
    def resolved(self) -> Path:
        return Path(os.path.normpath(self.path.parent / self.target))


class Archives:
    """Zip and tar.gz extractor with symlink support and an executable-bit heuristic."""

    def unpack(self, archive, destination: Path) -> Path:
        """Unpack ``archive`` into ``destination`` stripping the root folder.

        Args:
            archive: Archive with a kind (``zip`` or ``tar.gz``) and a location.
            destination: Target directory, created when missing.

        Returns:
            Path: The destination.

        Raises:
            ExtractionError: Unknown kind, malformed archive, unsafe entry or I/O failure.
                A destination created by this call is removed before raising.
        """
        destination = Path(destination)
        created = not destination.exists()
        try:
            kind = ArchiveKinds(getattr(archive.kind, "value", archive.kind))
        except ValueError as e:
            raise ExtractionError(f"Unknown archive type: '{archive.kind}'") from e

        with Timer() as t:
            try:
                destination.mkdir(parents=True, exist_ok=True)
                if kind == ArchiveKinds.ZIP:
                    self._unzip(Path(archive.location), destination)
                else:
                    self._untar(Path(archive.location), destination)
            except ExtractionError:
                if created:
                    self.delete(destination)
                raise
            except (zipfile.BadZipFile, tarfile.TarError, EOFError, OSError, UnicodeDecodeError) as e:
                if created:
                    self.delete(destination)
                raise ExtractionError(f"Can't extract {archive.location}: {e}") from e

        logger.debug(
            "Unpacked %s to %s",
            archive.location,
            destination,
            extra=extra_context(
                event="unpack",
                component="archives",
                action=kind.value,
                outcome="success",
                duration_ms=t.duration_ms(),
                target=str(destination),
            ),
        )
        return destination

    def delete(self, path: Path) -> None:
        """Remove a file, a link or a whole tree; missing paths are ignored."""
        path = Path(path)
        if path.is_symlink() or path.is_file():
            path.unlink()
        elif path.is_dir():
            shutil.rmtree(path)

    def _unzip(self, location: Path, destination: Path) -> None:
        links: List[_PendingLink] = []
        copies: List[_PendingLink] = []
        with zipfile.ZipFile(location) as zf:
            for info in zf.infolist():
                out = self._target(destination, info.filename)
                if out is None:
                    continue
                mode = info.external_attr >> 16
                if info.is_dir():
                    out.mkdir(parents=True, exist_ok=True)
                elif stat.S_ISLNK(mode):
                    link = _PendingLink(out, zf.read(info).decode("utf-8"))
                    self._link(destination, link, links, copies)
                else:
                    with zf.open(info) as src:
                        self._write(out, src, time.mktime(info.date_time + (0, 0, -1)))
        self._finish_links(links, copies)

    def _untar(self, location: Path, destination: Path) -> None:
        links: List[_PendingLink] = []
        copies: List[_PendingLink] = []
        # stream mode, entries are consumed in archive order
        with tarfile.open(location, mode="r|gz") as tar:
            for member in tar:
                out = self._target(destination, member.name)
                if out is None:
                    continue
                if member.isdir():
                    out.mkdir(parents=True, exist_ok=True)
                elif member.issym():
                    self._link(destination, _PendingLink(out, member.linkname), links, copies)
                elif member.islnk():
                    source = self._target(destination, member.linkname)
                    if source is None:
                        logger.warning("Ignoring hard link %s to %s", member.name, member.linkname)
                        continue
                    copies.append(_PendingLink(out, os.path.relpath(source, out.parent)))
                elif member.isfile():
                    src = tar.extractfile(member)
                    if src is None:
                        continue
                    with src:
                        self._write(out, src, member.mtime)
                else:
                    logger.debug("Skipping special entry %s", member.name)
        self._finish_links(links, copies)

    @staticmethod
    def _target(destination: Path, name: str) -> Optional[Path]:
        """Map an entry name to its output path, None when nothing remains once stripped."""
        normalized = name.replace("\\", "/")
        if normalized.startswith("/") or (len(normalized) > 1 and normalized[1] == ":"):
            raise ExtractionError(f"Absolute entry path rejected: '{name}'")
        segments = [s for s in normalized.split("/") if s not in ("", ".")]
        if ".." in segments:
            raise ExtractionError(f"Entry escaping the destination rejected: '{name}'")
        if len(segments) < 2:
            return None
        out = destination.joinpath(*segments[1:])
        # a previously extracted link must not redirect writes outside
        root = os.path.realpath(destination)
        parent = os.path.realpath(out.parent)
        if parent != root and not parent.startswith(root + os.sep):
            raise ExtractionError(f"Entry escaping the destination rejected: '{name}'")
        return out

    def _link(self, destination: Path, link: _PendingLink,
              links: List[_PendingLink], copies: List[_PendingLink]) -> None:
        root = os.path.normpath(os.path.abspath(destination))
        resolved = os.path.normpath(os.path.abspath(link.resolved))
        if os.path.isabs(link.target) or (resolved != root and not resolved.startswith(root + os.sep)):
            raise ExtractionError(f"Link {link.path.name} -> {link.target} points outside the archive")
        link.path.parent.mkdir(parents=True, exist_ok=True)
        if not link.resolved.exists():
            links.append(link)
            return
        self._create_link(link, copies)

    def _create_link(self, link: _PendingLink, copies: List[_PendingLink]) -> None:
        try:
            os.symlink(link.target, link.path)
        except OSError as e:
            logger.debug("Can't create link %s (%s), will copy it", link.path, e)
            copies.append(link)
            return
        self._set_executable_if_needed(link.path)

    def _finish_links(self, links: List[_PendingLink], copies: List[_PendingLink]) -> None:
        # deferred links may target each other, retry until a pass creates nothing
        pending = list(links)
        progress = True
        while pending and progress:
            ready = [link for link in pending if link.resolved.exists()]
            pending = [link for link in pending if link not in ready]
            for link in ready:
                self._create_link(link, copies)
            progress = bool(ready)
        for link in pending:
            logger.warning("Dropping link %s, its target %s is not in the archive", link.path, link.target)
        for link in copies:
            source = link.resolved
            if not source.exists():
                logger.warning("Dropping %s, its target %s is not in the archive", link.path, link.target)
                continue
            link.path.parent.mkdir(parents=True, exist_ok=True)
            if source.is_dir():
                shutil.copytree(source, link.path, symlinks=True)
            else:
                shutil.copy2(source, link.path)
                self._set_executable_if_needed(link.path)

    def _write(self, out: Path, src: IO[bytes], mtime: float) -> None:
        out.parent.mkdir(parents=True, exist_ok=True)
        with open(out, "wb") as dst:
            shutil.copyfileobj(src, dst)
        os.utime(out, (mtime, mtime))
        self._set_executable_if_needed(out)

    def _set_executable_if_needed(self, out: Path) -> None:
        """chmod follows links, so a link in bin/ makes its target executable."""
        if os.name != "nt" and self._is_executable(out):
            out.chmod(_EXECUTABLE_MODE)

    @staticmethod
    def _is_executable(out: Path) -> bool:
        parent = out.parent.name
        name = out.name
        if parent == "bin":
            return not os.access(out, os.X_OK)
        if parent == "lib":
            return "exec" in name or name.startswith("j") or (name.startswith("lib") and ".so" in name)
        return False
