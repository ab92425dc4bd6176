from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Literal, TypeVar

T = TypeVar("T")

FailureKind = Literal["validation", "network", "server", "not_found"]


@dataclass(frozen=True)
class GatewayResult(Generic[T]):
    """
    Outcome of a gateway operation.

    Gateway calls never raise; callers branch on `ok`. `warnings` carries
    partial failures (for example a media upload that fell back to the local
    reference) on otherwise successful results.
    """

    ok: bool
    data: T | None = None
    error: str | None = None
    kind: FailureKind | None = None
    status_code: int | None = None
    warnings: tuple[str, ...] = ()

    @classmethod
    def success(cls, data: T, *, warnings: tuple[str, ...] = ()) -> "GatewayResult[T]":
        return cls(ok=True, data=data, warnings=tuple(warnings))

    @classmethod
    def failure(
        cls,
        error: str,
        *,
        kind: FailureKind,
        status_code: int | None = None,
    ) -> "GatewayResult[T]":
        return cls(ok=False, error=error, kind=kind, status_code=status_code)

    def unwrap(self) -> T:
        if not self.ok or self.data is None:
            raise ValueError(self.error or "gateway result has no data")
        return self.data
