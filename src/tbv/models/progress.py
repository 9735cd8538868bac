from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Callable, Iterator

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from tbv.errors import ProcessError, ProgressError, StageError


class StageStatus(str, Enum):
    PENDING = "pending"
    WORKING = "working"
    PASS = "pass"
    FAIL = "fail"
    WARN = "warn"
    SKIPPED = "skipped"


class StageKey(str, Enum):
    REGISTRY = "registry"
    REPO = "repo"
    GIT_HEAD = "gitHead"
    CHECKOUT = "checkout"
    INSTALL = "install"
    PACK = "pack"
    COMPARE = "compare"


# Insertion order is execution order.
STAGE_TITLES: dict[StageKey, str] = {
    StageKey.REGISTRY: "Fetch package data from registry",
    StageKey.REPO: "Version contains repository URL",
    StageKey.GIT_HEAD: "Version contains gitHead",
    StageKey.CHECKOUT: "Shallow checkout",
    StageKey.INSTALL: "Install npm packages",
    StageKey.PACK: "Create package",
    StageKey.COMPARE: "Compare package contents",
}

_ALLOWED: dict[StageStatus, set[StageStatus]] = {
    StageStatus.PENDING: {StageStatus.WORKING, StageStatus.SKIPPED, StageStatus.FAIL},
    # working -> pending: a stage parked while another stage runs (pack waiting on install).
    StageStatus.WORKING: {
        StageStatus.PASS,
        StageStatus.FAIL,
        StageStatus.WARN,
        StageStatus.SKIPPED,
        StageStatus.PENDING,
    },
    StageStatus.PASS: set(),
    StageStatus.FAIL: set(),
    StageStatus.WARN: set(),
    StageStatus.SKIPPED: set(),
}


def _now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


class Stage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key: StageKey
    title: str
    status: StageStatus = StageStatus.PENDING
    message: str | None = None


class Transition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    key: StageKey
    from_status: StageStatus
    to_status: StageStatus
    message: str | None = None
    at: str = Field(default_factory=_now_iso)


Listener = Callable[[Stage], None]


class StageHandle:
    """Handed out by `ProgressReport.stage()`; picks the terminal status on a clean exit."""

    def __init__(self, key: StageKey) -> None:
        self.key = key
        self.status = StageStatus.PASS
        self.message: str | None = None

    def warn(self, message: str) -> None:
        self.status = StageStatus.WARN
        self.message = message

    def skip(self, message: str | None = None) -> None:
        self.status = StageStatus.SKIPPED
        self.message = message


class ProgressReport(BaseModel):
    model_config = ConfigDict(extra="ignore")

    stages: dict[str, Stage] = Field(default_factory=dict)
    transitions: list[Transition] = Field(default_factory=list)

    _listeners: list[Listener] = PrivateAttr(default_factory=list)

    @classmethod
    def create(cls) -> "ProgressReport":
        return cls(stages={k.value: Stage(key=k, title=t) for k, t in STAGE_TITLES.items()})

    @property
    def has_failed(self) -> bool:
        return any(s.status == StageStatus.FAIL for s in self.stages.values())

    @property
    def failed_stage(self) -> Stage | None:
        for s in self.stages.values():
            if s.status == StageStatus.FAIL:
                return s
        return None

    def get(self, key: StageKey | str) -> Stage:
        return self.stages[StageKey(key).value]

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def update(self, key: StageKey | str, status: StageStatus, message: str | None = None) -> Stage:
        stage = self.get(key)
        if self.has_failed and status != StageStatus.PENDING:
            raise ProgressError(f"pipeline already failed; refusing {stage.key.value} -> {status.value}")
        if status not in _ALLOWED[stage.status]:
            raise ProgressError(f"illegal transition for {stage.key.value}: {stage.status.value} -> {status.value}")

        self.transitions.append(
            Transition(key=stage.key, from_status=stage.status, to_status=status, message=message)
        )
        stage.status = status
        stage.message = message
        for listener in list(self._listeners):
            listener(stage)
        return stage

    @contextmanager
    def stage(self, key: StageKey) -> Iterator[StageHandle]:
        """Run one stage: `working` on entry, `pass`/`warn`/`skipped` on exit, `fail` on error.

        Stage failures are recorded and re-raised so the caller can stop the pipeline.
        A failure already recorded by a nested stage is left as the only `fail`.
        """
        self.update(key, StageStatus.WORKING)
        handle = StageHandle(key)
        try:
            yield handle
        except (StageError, ProcessError) as exc:
            self._fail(key, str(exc))
            raise
        except Exception as exc:
            self._fail(key, f"Unexpected error: {type(exc).__name__}: {exc}")
            raise
        except BaseException:
            self._fail(key, "Interrupted")
            raise
        self.update(key, handle.status, handle.message)

    def _fail(self, key: StageKey, message: str) -> None:
        if not self.has_failed:
            self.update(key, StageStatus.FAIL, message)

    def as_dict(self) -> dict[str, dict[str, str | None]]:
        return {
            k: {"title": s.title, "status": s.status.value, "message": s.message}
            for k, s in self.stages.items()
        }
