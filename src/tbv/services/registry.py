from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

from tbv.errors import ConfigurationError, NetworkError, ResolutionError
from tbv.models.package import PackageDescriptor, RegistryMetadata
from tbv.services.http import HttpClient


_HOSTED_SHORTHANDS = {
    "github": "github.com",
    "gitlab": "gitlab.com",
    "bitbucket": "bitbucket.org",
}
_SHORTHAND_RE = re.compile(r"^(github|gitlab|bitbucket):([\w.-]+/[\w.-]+?)(?:#.*)?$")
_SCP_RE = re.compile(r"^(?:[\w.-]+@)?([\w.-]+\.[\w.-]+):/?([^#]+?)(?:#.*)?$")
_BARE_GITHUB_RE = re.compile(r"^([\w.-]+/[\w.-]+?)(?:#.*)?$")
_SSH_SCHEMES = {"ssh", "git+ssh", "git"}


def normalize_repo_url(raw: str) -> str:
    """Canonical HTTPS form of a repository URL (host + path, no credentials/fragment).

    Accepts `git+https://`, `git://`, `git+ssh://user@host/...`, scp-style
    `git@host:owner/repo.git`, hosted shorthands (`github:owner/repo`) and bare `owner/repo`.
    """
    s = str(raw or "").strip()
    if not s:
        raise ConfigurationError("Repository URL is empty")

    if "://" in s:
        parts = urlsplit(s)
        host = parts.hostname or ""
        if not host:
            raise ConfigurationError(f"Cannot parse repository URL: {raw}")
        try:
            port = parts.port
        except ValueError:
            # `git+ssh://git@host:owner/repo.git` is scp syntax behind a scheme.
            return normalize_repo_url(s.split("://", 1)[1])
        # ssh ports never apply to the https endpoint
        if port and parts.scheme not in _SSH_SCHEMES:
            host = f"{host}:{port}"
        path = parts.path or ""
        if parts.query:
            path += f"?{parts.query}"
        return f"https://{host}{path}"

    m = _SHORTHAND_RE.match(s)
    if m:
        return f"https://{_HOSTED_SHORTHANDS[m.group(1)]}/{m.group(2)}"

    m = _SCP_RE.match(s)
    if m:
        return f"https://{m.group(1).lower()}/{m.group(2)}"

    m = _BARE_GITHUB_RE.match(s)
    if m:
        return f"https://github.com/{m.group(1)}"

    raise ConfigurationError(f"Cannot parse repository URL: {raw}")


def document_url(registry_url: str, descriptor: PackageDescriptor) -> str:
    return f"{registry_url.rstrip('/')}/{descriptor.full_name}"


def resolve_version(document: dict[str, Any], version_spec: str | None) -> str:
    tag = version_spec or "latest"
    dist_tags = document.get("dist-tags") or {}
    resolved = (dist_tags.get(tag) if isinstance(dist_tags, dict) else None) or version_spec
    if not resolved:
        raise ResolutionError(f"Cannot resolve version {tag}")
    return str(resolved)


def find_version_record(document: dict[str, Any], version: str) -> dict[str, Any]:
    versions = document.get("versions") or {}
    record = versions.get(version) if isinstance(versions, dict) else None
    if not isinstance(record, dict):
        raise ResolutionError(f"Cannot find info for version {version}")
    return record


def repository_url(record: dict[str, Any], version: str) -> str:
    repo = record.get("repository")
    if not repo:
        raise ConfigurationError(f"Repository is not specified for version {version}")
    # package.json allows the string shorthand; it always means git.
    if isinstance(repo, str):
        repo = {"type": "git", "url": repo}
    if not isinstance(repo, dict):
        raise ConfigurationError(f"Unsupported repository field for version {version}")

    if repo.get("type") != "git":
        raise ConfigurationError(f"Non-git ({repo.get('type')}) repository specified for version {version}")

    url = str(repo.get("url") or "").strip()
    if not url:
        raise ConfigurationError(f"Repository URL is not specified for version {version}")
    return normalize_repo_url(url)


def git_head(record: dict[str, Any]) -> str | None:
    return str(record.get("gitHead") or "").strip() or None


@dataclass(frozen=True)
class VersionLookup:
    version: str
    record: dict[str, Any]
    tarball_uri: str
    shasum: str | None
    integrity: str | None


class RegistryResolver:
    def __init__(self, http: HttpClient, registry_url: str) -> None:
        self._http = http
        self._registry_url = registry_url

    async def fetch_document(self, descriptor: PackageDescriptor) -> dict[str, Any]:
        url = document_url(self._registry_url, descriptor)
        try:
            doc = await self._http.get_json(url)
        except NetworkError as e:
            raise NetworkError(f"Error fetching package data from registry ({e})") from e
        if not isinstance(doc, dict):
            raise NetworkError(f"Unexpected registry response for {descriptor.full_name}")
        return doc

    async def lookup(self, descriptor: PackageDescriptor) -> VersionLookup:
        doc = await self.fetch_document(descriptor)
        version = resolve_version(doc, descriptor.version_spec)
        record = find_version_record(doc, version)

        dist = record.get("dist") or {}
        if not isinstance(dist, dict):
            raise ResolutionError(f"Unexpected dist entry for version {version}")
        tarball = str(dist.get("tarball") or "").strip()
        if not tarball:
            raise ResolutionError(f"Tarball URL is not specified for version {version}")

        return VersionLookup(
            version=version,
            record=record,
            tarball_uri=tarball,
            shasum=record.get("_shasum") or dist.get("shasum") or None,
            integrity=dist.get("integrity") or None,
        )

    @staticmethod
    def metadata(lookup: VersionLookup, repo_url: str) -> RegistryMetadata:
        return RegistryMetadata(
            resolved_version=lookup.version,
            repo_url=repo_url,
            git_head=git_head(lookup.record),
            shasum=lookup.shasum,
            integrity=lookup.integrity,
            tarball_uri=lookup.tarball_uri,
        )
