from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from trust_engine.engine.loader import load_rules_result, load_ruleset
from trust_engine.engine.types import ConditionOperator
from trust_engine.errors import ConfigurationError
from trust_engine.types import ContentType, ViolationSeverity


def _write_yaml(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "rules.yaml"
    path.write_text(textwrap.dedent(content).strip() + "\n", encoding="utf-8")
    return path


_BASE = """
version: 1
rules:
  - id: no-replicas
    name: Replica listings
    priority: 10
    severity: high
    content_types: [product_listing]
    conditions:
      - field: content
        operator: regex_match
        value: "\\\\breplica\\\\b"
  - id: vip-only
    priority: 20
    conditions:
      - field: author_id
        operator: in_list
        value: [blocked-1, blocked-2]
"""


def test_valid_file_loads(tmp_path: Path) -> None:
    result = load_rules_result(_write_yaml(tmp_path, _BASE))
    assert result.status == "ok"
    assert result.mode == "warn"
    assert result.counts["rules"] == 2
    assert result.issues == []
    replica = next(rule for rule in result.rules if rule.id == "no-replicas")
    assert replica.severity is ViolationSeverity.HIGH
    assert replica.content_types == frozenset({ContentType.PRODUCT_LISTING})
    assert replica.conditions[0].operator is ConditionOperator.REGEX_MATCH
    assert replica.conditions[0].value == r"\breplica\b"


def test_ruleset_is_priority_ordered(tmp_path: Path) -> None:
    ruleset = load_ruleset(_write_yaml(tmp_path, _BASE))
    assert [rule.id for rule in ruleset] == ["vip-only", "no-replicas"]


def test_version_mismatch_warn_invalid(tmp_path: Path) -> None:
    result = load_rules_result(_write_yaml(tmp_path, _BASE.replace("version: 1", "version: 2")))
    assert result.status == "invalid"
    assert [issue.code for issue in result.issues] == ["R1-V001"]
    assert result.counts["rules"] == 2


def test_version_mismatch_strict_error(tmp_path: Path) -> None:
    path = _write_yaml(tmp_path, _BASE.replace("version: 1", "version: 2"))
    result = load_rules_result(path, override_mode="strict")
    assert result.status == "error"
    assert result.rules == []
    with pytest.raises(ConfigurationError):
        load_ruleset(path, mode="strict")


def test_unknown_top_level_keys(tmp_path: Path) -> None:
    path = _write_yaml(tmp_path, _BASE + "\nextras: true\n")
    warn = load_rules_result(path)
    assert warn.status == "ok"
    assert warn.issues[0].code == "R1-K001"
    assert warn.issues[0].level == "warning"
    assert load_rules_result(path, override_mode="strict").status == "error"


def test_yaml_mode_used_without_override(tmp_path: Path) -> None:
    path = _write_yaml(tmp_path, "mode: strict\n" + _BASE.replace("version: 1", "version: 3"))
    assert load_rules_result(path).status == "error"
    assert load_rules_result(path, override_mode="warn").status == "invalid"


def test_schema_errors_disable_the_rule(tmp_path: Path) -> None:
    path = _write_yaml(
        tmp_path,
        _BASE
        + """
  - id: broken
    severity: extreme
    conditions:
      - field: title
        operator: fuzzy
""",
    )
    result = load_rules_result(path)
    assert result.status == "invalid"
    assert {issue.code for issue in result.issues} == {"R1-S001"}
    assert [rule.id for rule in result.rules] == ["no-replicas", "vip-only"]
    assert result.counts["disabled_rules"] == 1


def test_duplicate_ids(tmp_path: Path) -> None:
    path = _write_yaml(
        tmp_path,
        _BASE
        + """
  - id: vip-only
    conditions:
      - field: title
        operator: contains
        value: x
""",
    )
    result = load_rules_result(path)
    assert [issue.code for issue in result.issues] == ["R1-D001"]
    assert len(result.rules) == 2


def test_list_operator_requires_list(tmp_path: Path) -> None:
    path = _write_yaml(tmp_path, _BASE.replace("value: [blocked-1, blocked-2]", "value: blocked-1"))
    result = load_rules_result(path)
    assert [issue.code for issue in result.issues] == ["R1-C001"]
    assert [rule.id for rule in result.rules] == ["no-replicas"]


def test_invalid_regex_warns_in_warn_mode_and_fails_in_strict(tmp_path: Path) -> None:
    path = _write_yaml(tmp_path, _BASE.replace('"\\\\breplica\\\\b"', '"(replica"'))
    warn = load_rules_result(path)
    assert warn.status == "ok"
    assert warn.issues[0].code == "R1-X001"
    assert warn.issues[0].level == "warning"
    assert len(warn.rules) == 2

    strict = load_rules_result(path, override_mode="strict")
    assert strict.status == "error"
    assert strict.issues[0].level == "error"


def test_missing_file_and_bad_yaml(tmp_path: Path) -> None:
    missing = load_rules_result(tmp_path / "absent.yaml")
    assert missing.status == "error"
    assert missing.issues[0].code == "R1-IO"

    bad = tmp_path / "bad.yaml"
    bad.write_text("rules: [\n", encoding="utf-8")
    result = load_rules_result(bad)
    assert result.status == "error"
    assert result.issues[0].code == "R1-YAML"


def test_inactive_rules_are_counted(tmp_path: Path) -> None:
    path = _write_yaml(tmp_path, _BASE.replace("priority: 20", "priority: 20\n    active: false"))
    result = load_rules_result(path)
    assert result.counts["inactive"] == 1
    assert [rule.id for rule in load_ruleset(path)] == ["no-replicas"]
