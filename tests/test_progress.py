from __future__ import annotations

import pytest

from tbv.errors import BuildError, InstallError, ProgressError
from tbv.models.progress import ProgressReport, Stage, StageKey, StageStatus


def test_create_lists_stages_in_execution_order() -> None:
    progress = ProgressReport.create()
    assert list(progress.stages) == ["registry", "repo", "gitHead", "checkout", "install", "pack", "compare"]
    assert all(s.status == StageStatus.PENDING for s in progress.stages.values())
    assert not progress.has_failed


def test_stage_scope_passes_on_clean_exit() -> None:
    progress = ProgressReport.create()
    with progress.stage(StageKey.REGISTRY):
        assert progress.get("registry").status == StageStatus.WORKING
    assert progress.get(StageKey.REGISTRY).status == StageStatus.PASS
    assert [(t.from_status, t.to_status) for t in progress.transitions] == [
        (StageStatus.PENDING, StageStatus.WORKING),
        (StageStatus.WORKING, StageStatus.PASS),
    ]


def test_warn_is_not_a_failure() -> None:
    progress = ProgressReport.create()
    with progress.stage(StageKey.GIT_HEAD) as stage:
        stage.warn("GitHead is not specified for version 1.0.0")
    git_head = progress.get(StageKey.GIT_HEAD)
    assert git_head.status == StageStatus.WARN
    assert git_head.message == "GitHead is not specified for version 1.0.0"
    assert not progress.has_failed


def test_stage_error_marks_fail_and_reraises() -> None:
    progress = ProgressReport.create()
    with pytest.raises(BuildError):
        with progress.stage(StageKey.PACK):
            raise BuildError("Error creating package")
    assert progress.get(StageKey.PACK).status == StageStatus.FAIL
    assert progress.get(StageKey.PACK).message == "Error creating package"
    assert progress.has_failed
    assert progress.failed_stage is not None and progress.failed_stage.key == StageKey.PACK


def test_unexpected_error_is_labelled() -> None:
    progress = ProgressReport.create()
    with pytest.raises(RuntimeError):
        with progress.stage(StageKey.CHECKOUT):
            raise RuntimeError("boom")
    assert progress.get(StageKey.CHECKOUT).message == "Unexpected error: RuntimeError: boom"


def test_no_transition_beyond_pending_after_failure() -> None:
    progress = ProgressReport.create()
    progress.update(StageKey.REGISTRY, StageStatus.WORKING)
    progress.update(StageKey.REGISTRY, StageStatus.FAIL, "Error fetching package data from registry")
    with pytest.raises(ProgressError):
        progress.update(StageKey.REPO, StageStatus.WORKING)
    assert progress.get(StageKey.REPO).status == StageStatus.PENDING


@pytest.mark.parametrize(
    "start,target",
    [
        (StageStatus.PENDING, StageStatus.PASS),
        (StageStatus.PENDING, StageStatus.WARN),
    ],
)
def test_illegal_transitions_are_rejected(start: StageStatus, target: StageStatus) -> None:
    progress = ProgressReport.create()
    assert progress.get(StageKey.REPO).status == start
    with pytest.raises(ProgressError):
        progress.update(StageKey.REPO, target)


def test_terminal_status_is_final() -> None:
    progress = ProgressReport.create()
    with progress.stage(StageKey.REPO):
        pass
    with pytest.raises(ProgressError):
        progress.update(StageKey.REPO, StageStatus.WORKING)


def test_nested_failure_leaves_outer_stage_pending() -> None:
    progress = ProgressReport.create()
    with pytest.raises(InstallError):
        with progress.stage(StageKey.PACK):
            progress.update(StageKey.PACK, StageStatus.PENDING, "Waiting for dependencies")
            with progress.stage(StageKey.INSTALL):
                raise InstallError("Error installing dependencies")
    assert progress.get(StageKey.INSTALL).status == StageStatus.FAIL
    assert progress.get(StageKey.PACK).status == StageStatus.PENDING
    assert [s.key for s in progress.stages.values() if s.status == StageStatus.FAIL] == [StageKey.INSTALL]


def test_listeners_see_every_update() -> None:
    progress = ProgressReport.create()
    seen: list[tuple[str, str]] = []

    def listener(stage: Stage) -> None:
        seen.append((stage.key.value, stage.status.value))

    progress.subscribe(listener)
    with progress.stage(StageKey.REGISTRY):
        pass
    progress.update(StageKey.INSTALL, StageStatus.SKIPPED)
    assert seen == [("registry", "working"), ("registry", "pass"), ("install", "skipped")]


def test_as_dict_shape() -> None:
    progress = ProgressReport.create()
    out = progress.as_dict()
    assert out["checkout"] == {"title": "Shallow checkout", "status": "pending", "message": None}
