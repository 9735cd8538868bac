from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PackageDescriptor:
    name: str
    scope: str | None = None
    version_spec: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.scope}/{self.name}" if self.scope else self.name

    def __str__(self) -> str:
        if self.version_spec:
            return f"{self.full_name}@{self.version_spec}"
        return self.full_name


@dataclass(frozen=True)
class RegistryMetadata:
    resolved_version: str
    repo_url: str
    git_head: str | None = None
    shasum: str | None = None
    integrity: str | None = None
    tarball_uri: str | None = None
