from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from tbv.errors import BuildError, ProcessError
from tbv.services.fallback import Strategy, first_success


def _ok(value: str) -> Strategy[str]:
    async def run() -> str:
        return value

    return Strategy(value, run)


def _fail(name: str, exc: Exception) -> Strategy[str]:
    async def run() -> str:
        raise exc

    return Strategy(name, run)


def test_first_strategy_wins() -> None:
    outcome = asyncio.run(first_success([_ok("a"), _ok("b")]))
    assert outcome.succeeded
    assert outcome.value == "a"
    assert outcome.winner == "a"
    assert outcome.tried == ["a"]


def test_falls_through_recoverable_errors() -> None:
    err = ProcessError(["git", "fetch"], Path("."), 128, stderr="no such ref")
    outcome = asyncio.run(first_success([_fail("a", err), _ok("b")]))
    assert outcome.succeeded
    assert outcome.winner == "b"
    assert [a.ok for a in outcome.attempts] == [False, True]
    assert "no such ref" in (outcome.attempts[0].error or "")


def test_all_failing_reports_every_attempt() -> None:
    outcome = asyncio.run(
        first_success([_fail("a", BuildError("first")), _fail("b", BuildError("second"))])
    )
    assert not outcome.succeeded
    assert outcome.value is None
    assert outcome.tried == ["a", "b"]
    assert outcome.diagnostic == "a: first; b: second"


def test_non_recoverable_error_propagates() -> None:
    called: list[str] = []

    async def later() -> str:
        called.append("later")
        return "x"

    with pytest.raises(KeyError):
        asyncio.run(first_success([_fail("a", KeyError("boom")), Strategy("later", later)]))
    assert called == []


def test_recover_filter_is_respected() -> None:
    err = ProcessError(["npm", "pack"], Path("."), 1)
    with pytest.raises(ProcessError):
        asyncio.run(first_success([_fail("a", err), _ok("b")], recover=(BuildError,)))
