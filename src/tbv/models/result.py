from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from tbv.models.manifest import ManifestDiff
from tbv.models.package import RegistryMetadata
from tbv.models.progress import ProgressReport


class VerificationResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ok: bool
    descriptor: str
    report: ProgressReport
    metadata: RegistryMetadata | None = None
    refspec: str | None = None
    artifact: str | None = None
    diff: ManifestDiff | None = None
    tool_versions: dict[str, str | None] = Field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.ok

    def as_dict(self) -> dict[str, Any]:
        out = self.model_dump(mode="json", exclude={"report"})
        out["stages"] = self.report.as_dict()
        return out
