"""Data models shared by the checkers and the aggregator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from ..constants import EvaluationStage, VerdictLevel


@dataclass(frozen=True)
class Signal:
    """One reason code and the risk it contributes."""

    reason: str
    weight: float = 0.0


@dataclass
class CheckResult:
    """Pure result of one check: signals to merge into the evaluation."""

    signals: list[Signal] = field(default_factory=list)
    trusted: bool = False

    def add(self, reason: str, weight: float = 0.0) -> None:
        self.signals.append(Signal(str(reason), weight))

    def extend(self, other: "CheckResult") -> None:
        self.signals.extend(other.signals)
        self.trusted = self.trusted or other.trusted

    @property
    def added_risk(self) -> float:
        seen: set[str] = set()
        total = 0.0
        for signal in self.signals:
            if signal.reason in seen:
                continue
            seen.add(signal.reason)
            total += signal.weight
        return total

    @property
    def reasons(self) -> list[str]:
        return list(dict.fromkeys(signal.reason for signal in self.signals))

    def __bool__(self) -> bool:
        return bool(self.signals)


@dataclass(frozen=True)
class ImpersonationResult:
    is_impersonation: bool
    reasons: tuple[str, ...] = ()
    matched_brand: Optional[str] = None


@dataclass(frozen=True)
class Verdict:
    level: VerdictLevel
    risk: float
    reasons: tuple[str, ...] = ()

    def as_dict(self) -> dict:
        return {"level": str(self.level), "risk": self.risk, "reasons": list(self.reasons)}


@dataclass(frozen=True)
class IframeInfo:
    src: str
    hidden: bool = False
    width: Optional[int] = None
    height: Optional[int] = None
    has_onload: bool = False


@dataclass(frozen=True)
class PageContext:
    """Facts about the page a link was found on, supplied by the caller."""

    page_url: Optional[str] = None
    has_password_field: bool = False
    scripts: tuple[str, ...] = ()
    iframes: tuple[IframeInfo, ...] = ()

    @classmethod
    def build(
        cls,
        page_url: Optional[str] = None,
        has_password_field: bool = False,
        scripts: Iterable[str] = (),
        iframes: Iterable[IframeInfo] = (),
    ) -> "PageContext":
        return cls(page_url, has_password_field, tuple(scripts), tuple(iframes))


class EvaluationContext:
    """Per-URL running score and unique reasons for one evaluation.

    Score and reasons only grow; a reason's weight counts the first time it
    is merged. Stages move strictly forward.
    """

    def __init__(self, url: str):
        self.url = url
        self.score = 0.0
        self.stage = EvaluationStage.UNSCORED
        self._reasons: dict[str, float] = {}

    @property
    def reasons(self) -> tuple[str, ...]:
        return tuple(self._reasons)

    def add(self, reason: str, weight: float = 0.0) -> bool:
        reason = str(reason)
        if reason in self._reasons:
            return False
        self._reasons[reason] = weight
        self.score += max(0.0, weight)
        return True

    def merge(self, result: CheckResult) -> None:
        for signal in result.signals:
            self.add(signal.reason, signal.weight)

    def advance(self, stage: EvaluationStage) -> None:
        if stage <= self.stage:
            raise RuntimeError(f"Cannot move evaluation from {self.stage.name} to {stage.name}")
        self.stage = stage
