"""Interpreter for structured rule conditions over content records."""

from __future__ import annotations

import logging
import math
import re
from enum import Enum
from typing import Any, Iterable, Iterator, Mapping, Optional

from ..errors import EvaluationError
from ..types import ContentRecord, ContentType, ContentViolation, DetectionMethod
from .types import Condition, ConditionOperator, EvaluationPolicy, Rule

logger = logging.getLogger(__name__)

RULE_VIOLATION_CONFIDENCE = 0.8
RULE_VIOLATION_SCORE = 80.0

_NUMERIC_PREFIX_RE = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "<missing>"


MISSING: Any = _Missing()

__all__ = [
    "MISSING",
    "RULE_VIOLATION_CONFIDENCE",
    "RULE_VIOLATION_SCORE",
    "RuleSet",
    "resolve_field",
    "evaluate_condition",
    "evaluate_rule",
    "evaluate_rules",
]


def resolve_field(record: Any, path: str) -> Any:
    """Walk a dotted path over attributes and mapping keys; ``MISSING`` when absent."""

    current = record
    for part in path.split("."):
        if current is None or current is MISSING:
            return MISSING
        if isinstance(current, Mapping):
            current = current.get(part, MISSING)
        else:
            current = getattr(current, part, MISSING)
    return MISSING if current is None else current


def _scalar(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return value


def _text(value: Any, case_sensitive: bool) -> str:
    text = str(_scalar(value))
    return text if case_sensitive else text.lower()


def _fold(value: Any, case_sensitive: bool) -> Any:
    value = _scalar(value)
    if isinstance(value, str) and not case_sensitive:
        return value.lower()
    return value


def _to_number(value: Any) -> float:
    value = _scalar(value)
    if isinstance(value, bool):
        return math.nan
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _NUMERIC_PREFIX_RE.match(value)
        if match:
            return float(match.group(0))
    return math.nan


def _is_collection(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


def evaluate_condition(
    condition: Condition,
    actual: Any,
    *,
    pattern: Optional[re.Pattern[str]] = None,
) -> bool:
    """Apply one operator to a resolved field value.

    A missing field is false for every operator except ``not_equals``
    (true unless the expected value is null) and ``not_contains`` (true).
    """

    op = condition.operator
    sensitive = condition.case_sensitive
    expected = condition.value

    if actual is MISSING:
        if op is ConditionOperator.NOT_EQUALS:
            return expected is not None
        return op is ConditionOperator.NOT_CONTAINS

    if op is ConditionOperator.EQUALS:
        return _fold(actual, sensitive) == _fold(expected, sensitive)
    if op is ConditionOperator.NOT_EQUALS:
        return _fold(actual, sensitive) != _fold(expected, sensitive)
    if op in (ConditionOperator.CONTAINS, ConditionOperator.NOT_CONTAINS):
        if _is_collection(actual):
            found = _fold(expected, sensitive) in [_fold(item, sensitive) for item in actual]
        else:
            found = _text(expected, sensitive) in _text(actual, sensitive)
        return found if op is ConditionOperator.CONTAINS else not found
    if op is ConditionOperator.STARTS_WITH:
        return _text(actual, sensitive).startswith(_text(expected, sensitive))
    if op is ConditionOperator.ENDS_WITH:
        return _text(actual, sensitive).endswith(_text(expected, sensitive))
    if op is ConditionOperator.REGEX_MATCH:
        if pattern is None:
            pattern = _compile_pattern(condition)
        return pattern.search(str(_scalar(actual))) is not None
    if op is ConditionOperator.GREATER_THAN:
        return _to_number(actual) > _to_number(expected)
    if op is ConditionOperator.LESS_THAN:
        return _to_number(actual) < _to_number(expected)
    if op in (ConditionOperator.IN_LIST, ConditionOperator.NOT_IN_LIST):
        if not _is_collection(expected):
            return False
        member = _fold(actual, sensitive) in [_fold(item, sensitive) for item in expected]
        return member if op is ConditionOperator.IN_LIST else not member
    raise EvaluationError(f"unsupported operator: {op!r}")


def _compile_pattern(condition: Condition) -> re.Pattern[str]:
    flags = 0 if condition.case_sensitive else re.IGNORECASE
    try:
        return re.compile(str(condition.value), flags)
    except re.error as exc:
        raise EvaluationError(f"invalid regex {condition.value!r} on {condition.field}: {exc}") from exc


class RuleSet:
    """Immutable, priority-ordered set of active rules with regexes compiled up front."""

    __slots__ = ("_rules", "_patterns", "_pattern_errors")

    def __init__(self, rules: Iterable[Rule]) -> None:
        active = [rule for rule in rules if rule.active]
        active.sort(key=lambda rule: rule.priority, reverse=True)
        self._rules: tuple[Rule, ...] = tuple(active)
        self._patterns: dict[tuple[int, int], re.Pattern[str]] = {}
        self._pattern_errors: dict[tuple[int, int], str] = {}
        for rule in self._rules:
            for index, condition in enumerate(rule.conditions):
                if condition.operator is not ConditionOperator.REGEX_MATCH:
                    continue
                try:
                    self._patterns[(id(rule), index)] = _compile_pattern(condition)
                except EvaluationError as exc:
                    self._pattern_errors[(id(rule), index)] = str(exc)

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def for_content(self, content_type: ContentType) -> list[Rule]:
        return [rule for rule in self._rules if rule.applies_to(content_type)]

    def pattern_for(self, rule: Rule, index: int) -> Optional[re.Pattern[str]]:
        key = (id(rule), index)
        error = self._pattern_errors.get(key)
        if error is not None:
            raise EvaluationError(error)
        return self._patterns.get(key)


def evaluate_rule(rule: Rule, record: Any, ruleset: Optional[RuleSet] = None) -> bool:
    """True when every condition of ``rule`` holds for ``record``.

    Raises :class:`EvaluationError` when a condition cannot be evaluated.
    """

    if not rule.conditions:
        return False
    for index, condition in enumerate(rule.conditions):
        actual = resolve_field(record, condition.field)
        pattern = None
        if ruleset is not None and actual is not MISSING:
            pattern = ruleset.pattern_for(rule, index)
        if not evaluate_condition(condition, actual, pattern=pattern):
            return False
    return True


def _violation(rule: Rule, record: ContentRecord) -> ContentViolation:
    return ContentViolation(
        content_id=record.id,
        rule_id=rule.id,
        rule_name=rule.name,
        violation_type=rule.violation_type,
        category=rule.category,
        severity=rule.severity,
        description=f"Rule violation: {rule.name}",
        detected_by=DetectionMethod.AUTO_KEYWORD,
        confidence=RULE_VIOLATION_CONFIDENCE,
        score=RULE_VIOLATION_SCORE,
    )


def evaluate_rules(
    ruleset: RuleSet,
    record: ContentRecord,
    policy: Optional[EvaluationPolicy] = None,
) -> list[ContentViolation]:
    """Run every applicable rule; a rule that fails to evaluate counts as not violated."""

    active_policy = policy or EvaluationPolicy()
    violations: list[ContentViolation] = []
    for rule in ruleset.for_content(record.content_type):
        if not rule.conditions:
            active_policy.warn_once(f"rule {rule.id} has no conditions; skipped", key=f"empty:{rule.id}")
            continue
        try:
            matched = evaluate_rule(rule, record, ruleset)
        except EvaluationError as exc:
            message = f"rule {rule.id} evaluation failed: {exc}"
            if active_policy.strict:
                logger.error(message)
            else:
                active_policy.warn_once(message, key=f"eval:{rule.id}")
            continue
        if matched:
            violations.append(_violation(rule, record))
    return violations
