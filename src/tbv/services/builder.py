from __future__ import annotations

import re
from pathlib import Path

from tbv.errors import BuildError, InstallError, ProcessError
from tbv.services.process import Runner

_VERSION_RE = re.compile(r"^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:-([0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$")


def parse_version(raw: str) -> tuple[tuple[int, int, int], tuple[str, ...]]:
    m = _VERSION_RE.match(str(raw or "").strip())
    if not m:
        raise ValueError(f"Not a version: {raw!r}")
    core = (int(m.group(1)), int(m.group(2) or 0), int(m.group(3) or 0))
    pre = tuple(m.group(4).split(".")) if m.group(4) else ()
    return core, pre


def _cmp(a, b) -> int:
    return (a > b) - (a < b)


def _cmp_prerelease(a: tuple[str, ...], b: tuple[str, ...]) -> int:
    # A release sorts after any of its prereleases.
    if not a or not b:
        return _cmp(not a, not b)
    for x, y in zip(a, b):
        if x == y:
            continue
        if x.isdigit() and y.isdigit():
            return _cmp(int(x), int(y))
        # numeric identifiers sort before alphanumeric ones
        if x.isdigit() != y.isdigit():
            return -1 if x.isdigit() else 1
        return _cmp(x, y)
    return _cmp(len(a), len(b))


def compare_versions(a: str, b: str) -> int:
    """Semver ordering: -1 if a < b, 0 if equal, 1 if a > b (build metadata ignored)."""
    core_a, pre_a = parse_version(a)
    core_b, pre_b = parse_version(b)
    return _cmp(core_a, core_b) or _cmp_prerelease(pre_a, pre_b)


def select_installer(
    npm_version: str,
    *,
    threshold: str = "5.7.0",
    npm_bin: str = "npm",
    legacy_installer: str = "cipm",
) -> list[str]:
    if compare_versions(npm_version, threshold) < 0:
        return [legacy_installer]
    return [npm_bin, "ci"]


def artifact_name(pack_stdout: str) -> str:
    lines = [ln.strip() for ln in (pack_stdout or "").strip().splitlines() if ln.strip()]
    if not lines:
        raise BuildError("npm pack produced no output")
    return lines[-1]


class ArtifactBuilder:
    def __init__(
        self,
        runner: Runner,
        *,
        npm_bin: str = "npm",
        node_bin: str = "node",
        legacy_installer: str = "cipm",
        clean_install_min_npm: str = "5.7.0",
    ) -> None:
        self._runner = runner
        self._npm = npm_bin
        self._node = node_bin
        self._legacy = legacy_installer
        self._threshold = clean_install_min_npm

    async def _version_of(self, binary: str, workspace: Path) -> str | None:
        try:
            out = await self._runner.run([binary, "--version"], workspace)
        except ProcessError:
            return None
        return out.strip() or None

    async def tool_versions(self, workspace: Path) -> dict[str, str | None]:
        return {
            "node": await self._version_of(self._node, workspace),
            "npm": await self._version_of(self._npm, workspace),
        }

    async def pack(self, workspace: Path) -> Path:
        try:
            stdout = await self._runner.run([self._npm, "pack", "--unsafe-perm"], workspace)
        except ProcessError as e:
            raise BuildError(f"Error creating package from remote files: {e}") from e
        return workspace / artifact_name(stdout)

    async def install(self, workspace: Path, npm_version: str | None) -> list[str]:
        """Deterministic dependency install; returns the command that ran."""
        if not npm_version:
            raise InstallError("Error installing dependencies: npm version unknown")
        try:
            command = select_installer(
                npm_version,
                threshold=self._threshold,
                npm_bin=self._npm,
                legacy_installer=self._legacy,
            )
        except ValueError as e:
            raise InstallError(f"Error installing dependencies: {e}") from e
        try:
            await self._runner.run(command, workspace)
        except ProcessError as e:
            raise InstallError(f"Error installing dependencies: {e}") from e
        return command
