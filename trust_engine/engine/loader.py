from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Mapping, Sequence

import yaml
from jsonschema import Draft7Validator

from ..errors import ConfigurationError
from ..types import ContentType, ViolationCategory, ViolationSeverity, ViolationType
from .conditions import RuleSet
from .types import (
    Condition,
    ConditionOperator,
    EvaluationPolicy,
    LoadResult,
    Rule,
    RuleMode,
    ValidationIssue,
)

__all__ = [
    "RULE_SCHEMA",
    "load_rules_result",
    "load_ruleset",
    "parse_rule",
]

_ALLOWED_KEYS = {"version", "mode", "rules"}
_LIST_OPERATORS = {ConditionOperator.IN_LIST.value, ConditionOperator.NOT_IN_LIST.value}


def _enum_values(enum_cls: Any) -> list[str]:
    return [member.value for member in enum_cls]


CONDITION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["field", "operator"],
    "properties": {
        "field": {"type": "string", "minLength": 1},
        "operator": {"enum": _enum_values(ConditionOperator)},
        "value": {},
        "case_sensitive": {"type": "boolean"},
    },
    "additionalProperties": False,
}

RULE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["id", "conditions"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "name": {"type": "string"},
        "priority": {"type": "integer"},
        "severity": {"enum": _enum_values(ViolationSeverity)},
        "violation_type": {"enum": _enum_values(ViolationType)},
        "category": {"enum": _enum_values(ViolationCategory)},
        "content_types": {
            "type": "array",
            "items": {"enum": _enum_values(ContentType)},
            "uniqueItems": True,
        },
        "active": {"type": "boolean"},
        "conditions": {"type": "array", "minItems": 1, "items": CONDITION_SCHEMA},
    },
    "additionalProperties": False,
}

_RULE_VALIDATOR = Draft7Validator(RULE_SCHEMA)


def _record_issue(
    issues: list[ValidationIssue],
    counts: dict[str, int],
    level: str,
    code: str,
    where: str,
    msg: str,
    hint: str | None = None,
) -> None:
    issues.append(ValidationIssue(level=level, code=code, where=where, msg=msg, hint=hint))  # type: ignore[arg-type]
    counts["errors" if level == "error" else "warnings"] += 1


def _format_path(prefix: str, path: Sequence[Any]) -> str:
    where = prefix
    for part in path:
        where += f"[{part}]" if isinstance(part, int) else f".{part}"
    return where


def parse_rule(entry: Mapping[str, Any]) -> Rule:
    """Build a :class:`Rule` from an already schema-valid mapping."""

    conditions = tuple(
        Condition(
            field=str(item["field"]),
            operator=ConditionOperator(item["operator"]),
            value=item.get("value"),
            case_sensitive=bool(item.get("case_sensitive", False)),
        )
        for item in entry["conditions"]
    )
    rule_id = str(entry["id"]).strip()
    return Rule(
        id=rule_id,
        name=str(entry.get("name") or rule_id),
        conditions=conditions,
        priority=int(entry.get("priority", 0)),
        severity=ViolationSeverity(entry.get("severity", ViolationSeverity.MEDIUM.value)),
        content_types=frozenset(ContentType(value) for value in entry.get("content_types") or ()),
        active=bool(entry.get("active", True)),
        violation_type=ViolationType(entry.get("violation_type", ViolationType.MISLEADING_INFO.value)),
        category=ViolationCategory(entry.get("category", ViolationCategory.COMMUNITY.value)),
    )


def load_rules_result(
    path: str | Path,
    *,
    policy: EvaluationPolicy | None = None,
    override_mode: RuleMode | None = None,
) -> LoadResult:
    logger = policy.logger if policy else logging.getLogger("trust_engine.engine.rules")
    counts = {"rules": 0, "inactive": 0, "disabled_rules": 0, "errors": 0, "warnings": 0}
    issues: list[ValidationIssue] = []
    fallback_mode: RuleMode = override_mode or (policy.mode if policy else "warn")

    try:
        with Path(path).open("r", encoding="utf-8") as fp:
            raw_data = yaml.safe_load(fp) or {}
    except OSError as exc:
        _record_issue(issues, counts, "error", "R1-IO", "top-level", f"Failed to read rules file: {exc}")
        return LoadResult(status="error", mode=fallback_mode, rules=[], issues=issues, counts=counts)
    except yaml.YAMLError as exc:
        _record_issue(issues, counts, "error", "R1-YAML", "top-level", f"Failed to parse YAML: {exc}")
        return LoadResult(status="error", mode=fallback_mode, rules=[], issues=issues, counts=counts)

    if not isinstance(raw_data, Mapping):
        _record_issue(issues, counts, "error", "R1-V001", "top-level", "Rules configuration must be a mapping")
        return LoadResult(status="error", mode=fallback_mode, rules=[], issues=issues, counts=counts)

    yaml_mode = str(raw_data.get("mode", "")).strip().lower() or None
    if yaml_mode not in {"warn", "strict"}:
        yaml_mode = None
    cli_mode = override_mode or (policy.mode if policy else None)
    mode: RuleMode = cli_mode or yaml_mode or "warn"  # type: ignore[assignment]
    strict = mode == "strict"
    invalid = False

    unknown_keys = sorted(str(key) for key in set(raw_data.keys()) - _ALLOWED_KEYS)
    if unknown_keys:
        level = "error" if strict else "warning"
        _record_issue(
            issues,
            counts,
            level,
            "R1-K001",
            "top-level",
            f"Unknown keys detected: {', '.join(unknown_keys)}",
            "Only version, mode and rules are read.",
        )

    if raw_data.get("version") != 1:
        _record_issue(issues, counts, "error", "R1-V001", "version", "rules file must declare version: 1")
        invalid = True

    rules_raw = raw_data.get("rules")
    if rules_raw is None:
        rules_raw = []
    if not isinstance(rules_raw, Sequence) or isinstance(rules_raw, (str, bytes)):
        _record_issue(issues, counts, "error", "R1-V001", "rules", "rules must be a sequence")
        return LoadResult(status="error", mode=mode, rules=[], issues=issues, counts=counts)

    seen_ids: set[str] = set()
    valid_rules: list[Rule] = []
    disabled: list[str] = []

    for index, entry in enumerate(rules_raw):
        where = f"rules[{index}]"
        schema_errors = sorted(_RULE_VALIDATOR.iter_errors(entry), key=lambda err: [str(part) for part in err.path])
        if schema_errors:
            for err in schema_errors:
                _record_issue(issues, counts, "error", "R1-S001", _format_path(where, err.path), err.message)
            invalid = True
            if isinstance(entry, Mapping) and entry.get("id"):
                disabled.append(str(entry["id"]))
            continue

        rule_id = str(entry["id"]).strip()
        if rule_id in seen_ids:
            _record_issue(issues, counts, "error", "R1-D001", where, f"Duplicate rule id: {rule_id}")
            invalid = True
            disabled.append(rule_id)
            continue
        seen_ids.add(rule_id)

        broken = False
        for cond_index, condition in enumerate(entry["conditions"]):
            cond_where = f"{where}.conditions[{cond_index}]"
            operator = condition["operator"]
            if operator in _LIST_OPERATORS and not isinstance(condition.get("value"), list):
                _record_issue(issues, counts, "error", "R1-C001", cond_where, f"{operator} requires a list value")
                broken = True
            elif operator == ConditionOperator.REGEX_MATCH.value:
                try:
                    re.compile(str(condition.get("value")))
                except re.error as exc:
                    level = "error" if strict else "warning"
                    _record_issue(
                        issues,
                        counts,
                        level,
                        "R1-X001",
                        cond_where,
                        f"Invalid regex {condition.get('value')!r}: {exc}",
                        "The condition evaluates to false until the pattern is fixed.",
                    )
                    broken = broken or strict
        if broken:
            invalid = True
            disabled.append(rule_id)
            continue

        rule = parse_rule(entry)
        if not rule.active:
            counts["inactive"] += 1
        valid_rules.append(rule)

    counts["rules"] = len(valid_rules)
    counts["disabled_rules"] = len(disabled)

    if strict and counts["errors"] > 0:
        return LoadResult(status="error", mode=mode, rules=[], issues=issues, counts=counts)

    status = "invalid" if invalid else "ok"
    if status == "invalid":
        logger.warning(
            "rules loader: %s loaded with %d error(s); disabled=%s",
            path,
            counts["errors"],
            ",".join(disabled) or "-",
        )
    return LoadResult(status=status, mode=mode, rules=valid_rules, issues=issues, counts=counts)  # type: ignore[arg-type]


def load_ruleset(path: str | Path, *, mode: RuleMode | None = None) -> RuleSet:
    """Load and compile a rules file; fatal problems raise :class:`ConfigurationError`."""

    result = load_rules_result(path, override_mode=mode)
    if result.status == "error":
        details = "; ".join(f"{issue.code} {issue.where}: {issue.msg}" for issue in result.issues if issue.level == "error")
        raise ConfigurationError(f"failed to load rules from {path}: {details}")
    return RuleSet(result.rules)
