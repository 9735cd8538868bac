from __future__ import annotations

import json
import logging
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path

from tbv.config import Settings, settings
from tbv.errors import BuildError, ComparisonError, ProcessError, StageError
from tbv.models.manifest import ManifestDiff
from tbv.models.package import PackageDescriptor, RegistryMetadata
from tbv.models.progress import ProgressReport, StageKey, StageStatus
from tbv.models.result import VerificationResult
from tbv.services.builder import ArtifactBuilder
from tbv.services.checkout import RepositoryCheckout
from tbv.services.descriptor import parse_descriptor
from tbv.services.fallback import Strategy, first_success
from tbv.services.http import HttpClient
from tbv.services.manifest import ManifestComparator
from tbv.services.process import ProcessRunner, Runner
from tbv.services.registry import RegistryResolver, repository_url
from tbv.services.workspace import TempAllocator

trace_logger = logging.getLogger("tbv.trace")


@dataclass
class _Run:
    descriptor: PackageDescriptor
    progress: ProgressReport
    metadata: RegistryMetadata | None = None
    refspec: str | None = None
    artifact: Path | None = None
    diff: ManifestDiff | None = None
    tool_versions: dict[str, str | None] = field(default_factory=dict)

    def result(self) -> VerificationResult:
        ok = (not self.progress.has_failed) and self.progress.get(StageKey.COMPARE).status == StageStatus.PASS
        return VerificationResult(
            ok=ok,
            descriptor=str(self.descriptor),
            report=self.progress,
            metadata=self.metadata,
            refspec=self.refspec,
            artifact=self.artifact.name if self.artifact else None,
            diff=self.diff,
            tool_versions=self.tool_versions,
        )


class Verifier:
    """Check that a published tarball matches what its source commit packs to.

    Stages run strictly in order (registry, repo, gitHead, checkout, install, pack,
    compare). The first failing stage stops the pipeline; the ephemeral workspace is
    removed on every exit path.
    """

    def __init__(
        self,
        *,
        runner: Runner | None = None,
        http: HttpClient | None = None,
        allocator: TempAllocator | None = None,
        config: Settings | None = None,
        registry_url: str | None = None,
        trace: logging.Logger | None = None,
    ) -> None:
        cfg = config or settings
        self._runner = runner or ProcessRunner()
        self._http = http or HttpClient(timeout_sec=cfg.http_timeout_sec, user_agent=cfg.user_agent)
        self._allocator = allocator or TempAllocator(cfg.workspace_root)
        self._trace = trace or trace_logger

        self._registry = RegistryResolver(self._http, registry_url or cfg.registry_url)
        self._checkout = RepositoryCheckout(self._runner, git_bin=cfg.git_bin)
        self._builder = ArtifactBuilder(
            self._runner,
            npm_bin=cfg.npm_bin,
            node_bin=cfg.node_bin,
            legacy_installer=cfg.legacy_installer,
            clean_install_min_npm=cfg.clean_install_min_npm,
        )
        self._comparator = ManifestComparator(self._http)

    async def verify(
        self,
        descriptor: str | PackageDescriptor,
        *,
        progress: ProgressReport | None = None,
    ) -> VerificationResult:
        """Run the whole pipeline. Raises only `DescriptorError` or unexpected internal errors."""
        pkg = descriptor if isinstance(descriptor, PackageDescriptor) else parse_descriptor(descriptor)
        run = _Run(descriptor=pkg, progress=progress or ProgressReport.create())
        try:
            await self._pipeline(run)
        except (StageError, ProcessError):
            # already recorded on the failing stage
            pass
        return run.result()

    async def _pipeline(self, run: _Run) -> None:
        progress = run.progress

        with progress.stage(StageKey.REGISTRY):
            lookup = await self._registry.lookup(run.descriptor)

        with progress.stage(StageKey.REPO):
            repo_url = repository_url(lookup.record, lookup.version)
        meta = run.metadata = self._registry.metadata(lookup, repo_url)

        with progress.stage(StageKey.GIT_HEAD) as stage:
            if not meta.git_head:
                stage.warn(f"GitHead is not specified for version {meta.resolved_version}")

        with ExitStack() as scope:
            with progress.stage(StageKey.CHECKOUT):
                workspace = scope.enter_context(self._allocator.workspace())
                run.refspec = await self._checkout.checkout(
                    workspace, meta.repo_url, meta.git_head, meta.resolved_version
                )

            run.tool_versions = await self._builder.tool_versions(workspace)
            run.artifact = await self._build(progress, workspace, run.tool_versions.get("npm"))

            with progress.stage(StageKey.COMPARE):
                run.diff = await self._comparator.compare(
                    run.artifact,
                    meta.tarball_uri or "",
                    shasum=meta.shasum,
                    integrity=meta.integrity,
                )
                self._trace.debug(
                    "manifest diff for %s:\n%s", run.descriptor, json.dumps(run.diff.model_dump(), indent=2)
                )
                if not run.diff.is_empty:
                    raise ComparisonError(run.diff.summary())

    async def _build(self, progress: ProgressReport, workspace: Path, npm_version: str | None) -> Path:
        async def _pack_only() -> Path:
            artifact = await self._builder.pack(workspace)
            progress.update(StageKey.INSTALL, StageStatus.SKIPPED)
            return artifact

        async def _install_then_pack() -> Path:
            progress.update(StageKey.PACK, StageStatus.PENDING, "Waiting for dependencies")
            with progress.stage(StageKey.INSTALL):
                await self._builder.install(workspace, npm_version)
            progress.update(StageKey.PACK, StageStatus.WORKING)
            return await self._builder.pack(workspace)

        with progress.stage(StageKey.PACK):
            outcome = await first_success(
                [Strategy("pack", _pack_only), Strategy("install+pack", _install_then_pack)],
                recover=(BuildError,),
            )
            if not outcome.succeeded or outcome.value is None:
                raise BuildError(outcome.attempts[-1].error or "Error creating package")
            return outcome.value
