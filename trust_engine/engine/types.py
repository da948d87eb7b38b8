from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Optional

from ..types import ContentType, ViolationCategory, ViolationSeverity, ViolationType

RuleMode = Literal["strict", "warn"]


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    REGEX_MATCH = "regex_match"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IN_LIST = "in_list"
    NOT_IN_LIST = "not_in_list"


@dataclass(slots=True, frozen=True)
class Condition:
    field: str
    operator: ConditionOperator
    value: Any = None
    case_sensitive: bool = False


@dataclass(slots=True, frozen=True)
class Rule:
    id: str
    name: str
    conditions: tuple[Condition, ...]
    priority: int = 0
    severity: ViolationSeverity = ViolationSeverity.MEDIUM
    content_types: frozenset[ContentType] = frozenset()
    active: bool = True
    violation_type: ViolationType = ViolationType.MISLEADING_INFO
    category: ViolationCategory = ViolationCategory.COMMUNITY

    def applies_to(self, content_type: ContentType) -> bool:
        return not self.content_types or content_type in self.content_types


@dataclass(slots=True)
class ValidationIssue:
    level: Literal["error", "warning"]
    code: str
    where: str
    msg: str
    hint: str | None = None


@dataclass(slots=True)
class LoadResult:
    status: Literal["ok", "invalid", "error"]
    mode: RuleMode
    rules: list[Rule]
    issues: list[ValidationIssue]
    counts: dict[str, int]


@dataclass(slots=True)
class EvaluationPolicy:
    mode: RuleMode = "warn"
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("trust_engine.engine.rules"))
    _warned_keys: set[str] = field(default_factory=set, init=False)

    @property
    def strict(self) -> bool:
        return self.mode == "strict"

    def warn_once(self, message: str, key: Optional[str] = None) -> None:
        if self.strict:
            return
        cache_key = key or message
        if cache_key in self._warned_keys:
            return
        self._warned_keys.add(cache_key)
        self.logger.warning(message)

    @classmethod
    def from_mode(cls, mode: str | None) -> "EvaluationPolicy":
        normalized = (mode or "warn").strip().lower()
        if normalized not in {"strict", "warn"}:
            normalized = "warn"
        return cls(mode=normalized)  # type: ignore[arg-type]
