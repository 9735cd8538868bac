from __future__ import annotations

from pathlib import Path
from typing import Sequence


class TbvError(Exception):
    """Base class for every error raised by tbv."""


class DescriptorError(TbvError, ValueError):
    """Malformed `[@scope/]name[@version]` descriptor."""


class ProgressError(TbvError):
    """Illegal stage transition."""


class StageError(TbvError):
    """Expected failure of a pipeline stage. The message is shown to the user."""


class NetworkError(StageError):
    pass


class ResolutionError(StageError):
    pass


class ConfigurationError(StageError):
    pass


class WorkspaceError(StageError):
    pass


class CheckoutError(StageError):
    pass


class InstallError(StageError):
    pass


class BuildError(StageError):
    pass


class ComparisonError(StageError):
    pass


class ProcessError(TbvError):
    def __init__(
        self,
        command: Sequence[str],
        cwd: Path,
        returncode: int,
        stderr: str = "",
        stdout: str = "",
    ) -> None:
        self.command = list(command)
        self.cwd = cwd
        self.returncode = returncode
        self.stderr = stderr
        self.stdout = stdout
        detail = (stderr or stdout).strip()
        msg = f"`{' '.join(self.command)}` exited with {returncode}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)
