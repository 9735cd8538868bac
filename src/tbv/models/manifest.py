from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

# path (first tarball segment stripped) -> sha256 hex of the member's contents
Manifest = dict[str, str]


class ManifestDiff(BaseModel):
    model_config = ConfigDict(extra="ignore")

    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)
    modified: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.modified)

    def summary(self) -> str:
        return (
            f"{len(self.added)} files added, {len(self.modified)} files modified, "
            f"and {len(self.removed)} files removed."
        )
