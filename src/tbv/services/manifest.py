from __future__ import annotations

import asyncio
import base64
import hashlib
import io
import tarfile
from pathlib import Path, PurePosixPath
from typing import BinaryIO

from tbv.errors import ComparisonError
from tbv.models.manifest import Manifest, ManifestDiff
from tbv.services.http import HttpClient


def member_key(name: str) -> str:
    """Normalized manifest key: POSIX relative path without the leading `package/` segment."""
    parts = [p for p in PurePosixPath(name.replace("\\", "/")).parts if p not in {"", ".", "/"}]
    if len(parts) > 1:
        parts = parts[1:]
    return "/".join(parts)


def _sha256_stream(f: BinaryIO) -> str:
    h = hashlib.sha256()
    for chunk in iter(lambda: f.read(1024 * 1024), b""):
        h.update(chunk)
    return h.hexdigest()


def manifest_from_tar(fileobj: BinaryIO) -> Manifest:
    manifest: Manifest = {}
    try:
        with tarfile.open(fileobj=fileobj, mode="r:*") as tar:
            for member in tar:
                if not member.isfile():
                    continue
                extracted = tar.extractfile(member)
                if extracted is None:
                    continue
                with extracted:
                    manifest[member_key(member.name)] = _sha256_stream(extracted)
    except (tarfile.TarError, OSError, EOFError) as e:
        raise ComparisonError(f"Unreadable tarball: {e}") from e
    return manifest


def manifest_from_file(path: Path) -> Manifest:
    if not path.is_file():
        raise ComparisonError(f"Package file not found: {path}")
    with path.open("rb") as f:
        return manifest_from_tar(f)


def manifest_from_bytes(data: bytes) -> Manifest:
    return manifest_from_tar(io.BytesIO(data))


def check_integrity(data: bytes, *, shasum: str | None = None, integrity: str | None = None) -> None:
    """Match downloaded bytes against the registry's `dist.shasum` (sha1 hex) and SRI `integrity`."""
    if shasum:
        got = hashlib.sha1(data).hexdigest()
        if got != shasum.strip().lower():
            raise ComparisonError(f"Published tarball shasum mismatch (expected {shasum}, got {got})")
    if integrity:
        for token in integrity.split():
            algo, _, digest = token.partition("-")
            if algo not in {"sha256", "sha384", "sha512"} or not digest:
                continue
            got = base64.b64encode(hashlib.new(algo, data).digest()).decode("ascii")
            if got != digest:
                raise ComparisonError(f"Published tarball integrity mismatch ({algo})")


def diff_manifests(local: Manifest, remote: Manifest) -> ManifestDiff:
    return ManifestDiff(
        added=sorted(set(local) - set(remote)),
        removed=sorted(set(remote) - set(local)),
        modified=sorted(p for p in set(local) & set(remote) if local[p] != remote[p]),
    )


class ManifestComparator:
    def __init__(self, http: HttpClient) -> None:
        self._http = http

    async def remote_manifest(
        self, uri: str, *, shasum: str | None = None, integrity: str | None = None
    ) -> Manifest:
        data = await self._http.get_bytes(uri)
        check_integrity(data, shasum=shasum, integrity=integrity)
        return await asyncio.to_thread(manifest_from_bytes, data)

    async def compare(
        self,
        local_artifact: Path,
        remote_uri: str,
        *,
        shasum: str | None = None,
        integrity: str | None = None,
    ) -> ManifestDiff:
        # wait for both sides before surfacing either failure
        local, remote = await asyncio.gather(
            asyncio.to_thread(manifest_from_file, local_artifact),
            self.remote_manifest(remote_uri, shasum=shasum, integrity=integrity),
            return_exceptions=True,
        )
        for side in (local, remote):
            if isinstance(side, BaseException):
                raise side
        return diff_manifests(local, remote)
