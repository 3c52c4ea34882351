"""Tagged results used by the generation pipelines.

Pipeline stages never signal an expected failure by raising; they return a
:class:`StageResult` that is ``ok`` (the value is usable), ``degraded`` (the
stage failed but produced its documented fallback) or ``fatal`` (the
enclosing pipeline must stop).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

from flask import current_app

from ..errors import JourneyLensError

T = TypeVar("T")


class StageStatus(str, enum.Enum):
    OK = "ok"
    DEGRADED = "degraded"
    FATAL = "fatal"


@dataclass(frozen=True)
class StageResult(Generic[T]):
    status: StageStatus
    value: Optional[T] = None
    error: Optional[str] = None
    exception: Optional[BaseException] = None

    @classmethod
    def ok(cls, value: T) -> "StageResult[T]":
        return cls(StageStatus.OK, value)

    @classmethod
    def degraded(cls, fallback: T, error: str) -> "StageResult[T]":
        return cls(StageStatus.DEGRADED, fallback, error)

    @classmethod
    def fatal(cls, error: str, exception: Optional[BaseException] = None) -> "StageResult[T]":
        return cls(StageStatus.FATAL, None, error, exception)

    @property
    def is_fatal(self) -> bool:
        return self.status is StageStatus.FATAL


def run_stage(name: str, fn: Callable[[], T], *, fallback: Any) -> StageResult[T]:
    """Run ``fn`` and turn a service failure into a degraded result."""

    try:
        return StageResult.ok(fn())
    except JourneyLensError as exc:
        current_app.logger.warning("Stage '%s' failed; using fallback. Error: %s", name, exc)
        return StageResult.degraded(fallback, str(exc))


@dataclass(frozen=True)
class ParseAttempt:
    """Outcome of one step in a parser chain."""

    ok: bool
    value: Any = None
    method: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def success(cls, value: Any, method: str) -> "ParseAttempt":
        return cls(True, value, method)

    @classmethod
    def failure(cls, reason: str) -> "ParseAttempt":
        return cls(False, reason=reason)
