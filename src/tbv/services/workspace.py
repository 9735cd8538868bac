from __future__ import annotations

import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from tbv.errors import WorkspaceError


class TempAllocator:
    def __init__(self, root: str | Path | None = None) -> None:
        self._root = Path(root) if root else None

    def allocate(self) -> Path:
        try:
            if self._root is not None:
                self._root.mkdir(parents=True, exist_ok=True)
            return Path(tempfile.mkdtemp(prefix="tbv-", dir=self._root))
        except OSError as e:
            raise WorkspaceError(f"Error creating temp directory: {e}") from e

    def release(self, path: Path) -> None:
        # Idempotent: releasing twice (or a path that never existed) is a no-op.
        if path.exists():
            shutil.rmtree(path)

    @contextmanager
    def workspace(self) -> Iterator[Path]:
        path = self.allocate()
        try:
            yield path
        finally:
            self.release(path)
