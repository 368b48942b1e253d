"""Per-unit outcomes collected into a pass-level report."""

from dataclasses import dataclass, field
from typing import Generic, Iterator, List, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class UnitResult(Generic[T]):
    """
    Outcome of one unit of work (one account's feed, one update, one publish).

    A failed unit may still carry a partial ``value``.
    """

    key: str
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, key: str, value: Optional[T] = None) -> "UnitResult[T]":
        return cls(key=key, ok=True, value=value)

    @classmethod
    def failure(cls, key: str, error: BaseException, value: Optional[T] = None) -> "UnitResult[T]":
        return cls(key=key, ok=False, value=value, error=f"{type(error).__name__}: {error}")


@dataclass
class PassReport(Generic[T]):
    """Results of every unit in a pass, in completion order of the join."""

    name: str
    results: List[UnitResult[T]] = field(default_factory=list)

    def add(self, result: UnitResult[T]) -> None:
        self.results.append(result)

    def extend(self, results: List[UnitResult[T]]) -> None:
        self.results.extend(results)

    def __iter__(self) -> Iterator[UnitResult[T]]:
        return iter(self.results)

    def __len__(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> List[UnitResult[T]]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> List[UnitResult[T]]:
        return [r for r in self.results if not r.ok]

    @property
    def ok(self) -> bool:
        return not self.failed

    def values(self) -> List[T]:
        """Values of every unit that produced one, partial failures included."""
        return [r.value for r in self.results if r.value is not None]

    def summary(self) -> str:
        return f"{self.name}: {len(self.succeeded)} succeeded, {len(self.failed)} failed"
