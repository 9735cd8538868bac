from __future__ import annotations

from tbv.errors import DescriptorError
from tbv.models.package import PackageDescriptor


def parse_descriptor(raw: str) -> PackageDescriptor:
    """Split `[@scope/]name[@versionSpec]` into its parts.

    An omitted or empty version is `None` (resolved downstream as the `latest` dist-tag).
    """
    s = str(raw or "").strip()
    if not s:
        raise DescriptorError("Empty package descriptor")

    scope: str | None = None
    rest = s
    if s.startswith("@"):
        if "/" not in s:
            raise DescriptorError(f"Scoped descriptor is missing a package name: {raw!r}")
        scope, rest = s.split("/", 1)
        if scope == "@":
            raise DescriptorError(f"Empty scope in descriptor: {raw!r}")

    name, _, version = rest.partition("@")
    if not name:
        raise DescriptorError(f"Missing package name in descriptor: {raw!r}")
    if "/" in name:
        raise DescriptorError(f"Unexpected '/' in package name: {raw!r}")

    return PackageDescriptor(name=name, scope=scope, version_spec=version.strip() or None)
