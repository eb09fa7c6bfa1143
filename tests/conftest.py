"""Shared fixtures: an in-memory HTTP client and archive builders."""

import asyncio
import io
import stat
import tarfile
import zipfile
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from common.http_client import NOOP_PROGRESS, HttpResponse

# (kind, name, payload): kind is "dir", "file", "symlink" or "hardlink";
# payload is the file content or the link target
Entry = Tuple[str, str, object]

ENTRY_MTIME = 1700000000


class FakeHttpClient:
    """Records requests and answers them from registered routes (404 otherwise)."""

    def __init__(self):
        self.routes: Dict[str, Tuple[int, bytes, Dict[str, str], Optional[List[Dict[str, str]]]]] = {}
        self.calls: List[Tuple[str, str, Dict[str, str]]] = []
        self.authentications: Dict[str, str] = {}
        self.delay = 0.0

    def route(self, url: str, body=b"", status: int = 200, headers: Optional[Dict[str, str]] = None,
              chain_headers: Optional[List[Dict[str, str]]] = None) -> None:
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.routes[url] = (status, body, dict(headers or {}), chain_headers)

    def urls(self, method: Optional[str] = None) -> List[str]:
        return [url for m, url, _ in self.calls if method is None or m == method]

    def register_authentication_for(self, base_url: str, header: Optional[str]) -> None:
        if header:
            self.authentications[base_url] = header

    async def send(self, url: str, headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        self.calls.append(("GET", url, dict(headers or {})))
        await asyncio.sleep(self.delay)
        status, body, response_headers, chain = self.routes.get(url, (404, b"not found", {}, None))
        return HttpResponse(status, url, response_headers, body.decode("utf-8"),
                            chain or [response_headers])

    async def download_to_file(self, url: str, target: Path, progress_listener=NOOP_PROGRESS,
                               headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        self.calls.append(("DOWNLOAD", url, dict(headers or {})))
        await asyncio.sleep(self.delay)
        status, body, response_headers, chain = self.routes.get(url, (404, b"not found", {}, None))
        if 200 <= status <= 299:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(body)
            progress_listener(target.name, 1.0)
            return HttpResponse(status, url, response_headers, "", chain or [response_headers])
        return HttpResponse(status, url, response_headers, body.decode("utf-8"), chain or [response_headers])


def build_tar_gz(entries: List[Entry]) -> bytes:
    out = io.BytesIO()
    with tarfile.open(fileobj=out, mode="w:gz") as tar:
        for kind, name, payload in entries:
            info = tarfile.TarInfo(name)
            info.mtime = ENTRY_MTIME
            if kind == "dir":
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tar.addfile(info)
            elif kind == "symlink":
                info.type = tarfile.SYMTYPE
                info.linkname = str(payload)
                tar.addfile(info)
            elif kind == "hardlink":
                info.type = tarfile.LNKTYPE
                info.linkname = str(payload)
                tar.addfile(info)
            else:
                data = payload if isinstance(payload, bytes) else str(payload).encode("utf-8")
                info.size = len(data)
                info.mode = 0o644
                tar.addfile(info, io.BytesIO(data))
    return out.getvalue()


def build_zip(entries: List[Entry]) -> bytes:
    out = io.BytesIO()
    with zipfile.ZipFile(out, "w") as zf:
        for kind, name, payload in entries:
            info = zipfile.ZipInfo(name, date_time=(2023, 11, 14, 22, 13, 20))
            info.create_system = 3
            if kind == "dir":
                info.external_attr = ((stat.S_IFDIR | 0o755) << 16) | 0x10
                zf.writestr(info, b"")
            elif kind == "symlink":
                info.external_attr = (stat.S_IFLNK | 0o777) << 16
                zf.writestr(info, str(payload))
            else:
                info.external_attr = (stat.S_IFREG | 0o644) << 16
                data = payload if isinstance(payload, bytes) else str(payload).encode("utf-8")
                zf.writestr(info, data)
    return out.getvalue()


SIMPLE_ENTRIES: List[Entry] = [
    ("dir", "root-1.2.3/", None),
    ("file", "root-1.2.3/entry.txt", "you got an archive"),
]


@pytest.fixture
def http_client():
    """In-memory HTTP client."""
    return FakeHttpClient()


@pytest.fixture
def simple_tar_gz() -> bytes:
    """A tar.gz wrapping ``entry.txt`` in a root folder."""
    return build_tar_gz(SIMPLE_ENTRIES)


@pytest.fixture
def simple_zip() -> bytes:
    """A zip wrapping ``entry.txt`` in a root folder."""
    return build_zip(SIMPLE_ENTRIES)
