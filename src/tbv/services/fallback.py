from __future__ import annotations

from dataclasses import dataclass, field
from typing import Awaitable, Callable, Generic, Sequence, TypeVar

from tbv.errors import ProcessError, StageError

T = TypeVar("T")


@dataclass(frozen=True)
class Strategy(Generic[T]):
    name: str
    run: Callable[[], Awaitable[T]]


@dataclass(frozen=True)
class Attempt:
    name: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class FallbackOutcome(Generic[T]):
    succeeded: bool
    value: T | None = None
    winner: str | None = None
    attempts: list[Attempt] = field(default_factory=list)

    @property
    def tried(self) -> list[str]:
        return [a.name for a in self.attempts]

    @property
    def diagnostic(self) -> str:
        if self.succeeded:
            return f"{self.winner} succeeded"
        return "; ".join(f"{a.name}: {a.error}" for a in self.attempts)


async def first_success(
    strategies: Sequence[Strategy[T]],
    *,
    recover: tuple[type[BaseException], ...] = (ProcessError, StageError),
) -> FallbackOutcome[T]:
    """Try `strategies` in order until one returns without a recoverable error."""
    attempts: list[Attempt] = []
    for strategy in strategies:
        try:
            value = await strategy.run()
        except recover as e:
            attempts.append(Attempt(strategy.name, str(e) or type(e).__name__))
            continue
        attempts.append(Attempt(strategy.name))
        return FallbackOutcome(succeeded=True, value=value, winner=strategy.name, attempts=attempts)
    return FallbackOutcome(succeeded=False, attempts=attempts)
