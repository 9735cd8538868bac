from __future__ import annotations

from pathlib import Path

from tbv.errors import CheckoutError, ProcessError
from tbv.services.fallback import FallbackOutcome, Strategy, first_success
from tbv.services.process import Runner


def short_ref(refspec: str) -> str:
    """Commit hashes are shown as a 7-char prefix; tags are left alone."""
    if refspec.startswith("tags/"):
        return refspec
    return refspec[:7]


def fetch_refspecs(commit: str | None, version: str) -> list[str]:
    """The recorded commit alone when known; otherwise `v<version>`, then `<version>`."""
    if commit:
        return [commit]
    return [f"tags/v{version}", f"tags/{version}"]


class RepositoryCheckout:
    """Shallow checkout of one commit into a caller-owned workspace."""

    def __init__(self, runner: Runner, git_bin: str = "git") -> None:
        self._runner = runner
        self._git = git_bin

    async def _git_run(self, workspace: Path, *args: str) -> str:
        return await self._runner.run([self._git, *args], workspace)

    async def init(self, workspace: Path, repo_url: str) -> None:
        try:
            await self._git_run(workspace, "init", "--quiet")
            await self._git_run(workspace, "remote", "add", "origin", repo_url)
        except ProcessError as e:
            raise CheckoutError(f"Error initializing git repo in temp directory ({e})") from e

    async def fetch(self, workspace: Path, commit: str | None, version: str) -> FallbackOutcome[str]:
        def _attempt(ref: str) -> Strategy[str]:
            async def _run() -> str:
                await self._git_run(workspace, "fetch", "--depth", "1", "origin", ref)
                return ref

            return Strategy(name=ref, run=_run)

        outcome = await first_success([_attempt(r) for r in fetch_refspecs(commit, version)])
        if not outcome.succeeded:
            tried = " or ".join(short_ref(r) for r in outcome.tried)
            raise CheckoutError(f"Unable to fetch from remote ({tried})")
        return outcome

    async def checkout_head(self, workspace: Path) -> None:
        try:
            await self._git_run(workspace, "checkout", "--quiet", "FETCH_HEAD")
        except ProcessError as e:
            raise CheckoutError(f"Unable to checkout FETCH_HEAD ({e})") from e

    async def checkout(self, workspace: Path, repo_url: str, commit: str | None, version: str) -> str:
        """Populate `workspace` with the tree at the first fetchable refspec; returns that refspec."""
        await self.init(workspace, repo_url)
        outcome = await self.fetch(workspace, commit, version)
        await self.checkout_head(workspace)
        return outcome.value or ""
