from __future__ import annotations

import hashlib
import io
import json
import tarfile
from pathlib import Path
from typing import Any, Callable, Sequence

import httpx
import pytest

from tbv.errors import ProcessError
from tbv.services.http import HttpClient

REGISTRY = "https://registry.test"
TARBALL_URL = "https://registry.test/pkg/-/pkg-1.0.0.tgz"
COMMIT = "0123456789abcdef0123456789abcdef01234567"

DEFAULT_FILES = {
    "package.json": b'{"name":"pkg","version":"1.0.0"}\n',
    "index.js": b"module.exports = 42;\n",
    "lib/util.js": b"exports.id = (x) => x;\n",
}


def make_tarball(files: dict[str, bytes], prefix: str = "package") -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        dir_info = tarfile.TarInfo(prefix)
        dir_info.type = tarfile.DIRTYPE
        tar.addfile(dir_info)
        for name, data in sorted(files.items()):
            info = tarfile.TarInfo(f"{prefix}/{name}")
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def registry_document(
    *,
    name: str = "pkg",
    version: str = "1.0.0",
    tarball: bytes | None = None,
    repository: Any = "default",
    git_head: str | None = COMMIT,
    tarball_url: str | None = TARBALL_URL,
) -> dict[str, Any]:
    record: dict[str, Any] = {"name": name, "version": version, "dist": {}}
    if repository == "default":
        record["repository"] = {"type": "git", "url": "git+https://github.com/acme/pkg.git"}
    elif repository is not None:
        record["repository"] = repository
    if git_head:
        record["gitHead"] = git_head
    if tarball_url:
        record["dist"]["tarball"] = tarball_url
    if tarball is not None:
        record["dist"]["shasum"] = hashlib.sha1(tarball).hexdigest()
    return {"name": name, "dist-tags": {"latest": version}, "versions": {version: record}}


def make_http(routes: dict[str, Any]) -> HttpClient:
    """Serve `routes` (url -> dict|bytes|int status) through httpx.MockTransport."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = routes.get(str(request.url))
        if body is None:
            return httpx.Response(404, json={"error": "Not found"})
        if isinstance(body, int):
            return httpx.Response(body)
        if isinstance(body, (bytes, bytearray)):
            return httpx.Response(200, content=bytes(body))
        return httpx.Response(200, content=json.dumps(body).encode("utf-8"))

    return HttpClient(transport=httpx.MockTransport(handler))


class FakeRunner:
    """In-memory stand-in for ProcessRunner. `handler(argv, cwd)` returns stdout or raises ProcessError."""

    def __init__(self, handler: Callable[[list[str], Path], str] | None = None) -> None:
        self.calls: list[tuple[list[str], Path]] = []
        self.cwd_existed: list[bool] = []
        self._handler = handler or (lambda argv, cwd: "")

    async def run(self, command: Sequence[str], cwd: Path) -> str:
        argv = [str(c) for c in command]
        self.calls.append((argv, Path(cwd)))
        self.cwd_existed.append(Path(cwd).is_dir())
        return self._handler(argv, Path(cwd))

    def commands(self, binary: str | None = None) -> list[list[str]]:
        return [argv for argv, _ in self.calls if binary is None or argv[0] == binary]


class FakeToolchain:
    """Simulates git/node/npm for one checked-out package."""

    def __init__(
        self,
        files: dict[str, bytes] | None = None,
        *,
        npm_version: str = "10.2.4",
        needs_install: bool = False,
        failing_refs: set[str] | None = None,
        install_fails: bool = False,
        artifact: str = "pkg-1.0.0.tgz",
    ) -> None:
        self.files = dict(DEFAULT_FILES if files is None else files)
        self.npm_version = npm_version
        self.needs_install = needs_install
        self.failing_refs = failing_refs or set()
        self.install_fails = install_fails
        self.artifact = artifact
        self.installed = False

    def __call__(self, argv: list[str], cwd: Path) -> str:
        tool, args = argv[0], argv[1:]
        if tool == "git":
            if args[:1] == ["fetch"] and args[-1] in self.failing_refs:
                raise ProcessError(argv, cwd, 128, stderr=f"fatal: couldn't find remote ref {args[-1]}")
            return ""
        if tool == "node" and args == ["--version"]:
            return "v20.11.0\n"
        if tool == "npm" and args == ["--version"]:
            return f"{self.npm_version}\n"
        if argv in (["npm", "ci"], ["cipm"]):
            if self.install_fails:
                raise ProcessError(argv, cwd, 1, stderr="npm ERR! missing package-lock.json")
            self.installed = True
            return ""
        if tool == "npm" and args[:1] == ["pack"]:
            if self.needs_install and not self.installed:
                raise ProcessError(argv, cwd, 1, stderr="sh: tsc: command not found")
            (cwd / self.artifact).write_bytes(make_tarball(self.files))
            return f"npm notice tarball\n{self.artifact}\n"
        raise ProcessError(argv, cwd, 127, stderr=f"ENOENT:{tool}")


@pytest.fixture
def published() -> bytes:
    return make_tarball(DEFAULT_FILES)
