from __future__ import annotations

import logging

import pytest

from trust_engine.engine.conditions import (
    MISSING,
    RULE_VIOLATION_CONFIDENCE,
    RuleSet,
    evaluate_condition,
    evaluate_rule,
    evaluate_rules,
    resolve_field,
)
from trust_engine.engine.types import Condition, ConditionOperator, EvaluationPolicy, Rule
from trust_engine.types import ContentRecord, ContentType, ViolationSeverity

Op = ConditionOperator


def _record(**overrides) -> ContentRecord:
    data = dict(
        id="c1",
        author_id="seller-7",
        content_type=ContentType.PRODUCT_LISTING,
        content="Vintage lamp in great condition",
        title="SPAM deal",
        metadata={"price": "149.99 USD", "tags": ["Lamp", "vintage"], "seller": {"tier": "gold"}},
    )
    data.update(overrides)
    return ContentRecord(**data)


def _rule(*conditions: Condition, rule_id: str = "r1", priority: int = 0, **kwargs) -> Rule:
    return Rule(id=rule_id, name=f"Rule {rule_id}", conditions=tuple(conditions), priority=priority, **kwargs)


def test_title_contains_is_case_insensitive_by_default() -> None:
    rule = _rule(Condition(field="title", operator=Op.CONTAINS, value="spam", case_sensitive=False))
    assert evaluate_rule(rule, _record())


def test_case_sensitive_flag_is_honoured() -> None:
    condition = Condition(field="title", operator=Op.CONTAINS, value="spam", case_sensitive=True)
    assert not evaluate_condition(condition, "SPAM deal")
    assert evaluate_condition(condition, "spam deal")


def test_resolve_dotted_paths_over_attributes_and_mappings() -> None:
    record = _record()
    assert resolve_field(record, "metadata.seller.tier") == "gold"
    assert resolve_field(record, "content_type") is ContentType.PRODUCT_LISTING
    assert resolve_field(record, "metadata.missing.deeper") is MISSING
    assert resolve_field(record, "nope") is MISSING
    assert resolve_field(_record(title=None), "title") is MISSING


@pytest.mark.parametrize(
    ("operator", "value", "expected"),
    [
        (Op.EQUALS, "x", False),
        (Op.NOT_EQUALS, "x", True),
        (Op.NOT_EQUALS, None, False),
        (Op.CONTAINS, "x", False),
        (Op.NOT_CONTAINS, "x", True),
        (Op.STARTS_WITH, "x", False),
        (Op.ENDS_WITH, "x", False),
        (Op.REGEX_MATCH, ".*", False),
        (Op.GREATER_THAN, 0, False),
        (Op.LESS_THAN, 0, False),
        (Op.IN_LIST, ["x"], False),
        (Op.NOT_IN_LIST, ["x"], False),
    ],
)
def test_missing_field_truth_table(operator: ConditionOperator, value: object, expected: bool) -> None:
    condition = Condition(field="metadata.absent", operator=operator, value=value)
    assert evaluate_condition(condition, MISSING) is expected


@pytest.mark.parametrize(
    ("operator", "actual", "value", "expected"),
    [
        (Op.EQUALS, "Gold", "gold", True),
        (Op.NOT_EQUALS, "Gold", "silver", True),
        (Op.STARTS_WITH, "Vintage lamp", "VINT", True),
        (Op.ENDS_WITH, "Vintage lamp", "LAMP", True),
        (Op.NOT_CONTAINS, "Vintage lamp", "chair", True),
        (Op.GREATER_THAN, "149.99 USD", 100, True),
        (Op.LESS_THAN, "149.99 USD", "100", False),
        (Op.GREATER_THAN, "abc", 1, False),
        (Op.IN_LIST, "Seller-7", ["seller-7", "seller-9"], True),
        (Op.NOT_IN_LIST, "seller-8", ["seller-7"], True),
        (Op.IN_LIST, "seller-7", "seller-7", False),
        (Op.CONTAINS, ["Lamp", "vintage"], "lamp", True),
        (Op.EQUALS, ContentType.IMAGE, "image", True),
    ],
)
def test_operator_semantics(operator: ConditionOperator, actual: object, value: object, expected: bool) -> None:
    assert evaluate_condition(Condition(field="f", operator=operator, value=value), actual) is expected


def test_regex_match_ignores_case_unless_sensitive() -> None:
    loose = Condition(field="title", operator=Op.REGEX_MATCH, value=r"^spam\b")
    strict = Condition(field="title", operator=Op.REGEX_MATCH, value=r"^spam\b", case_sensitive=True)
    assert evaluate_condition(loose, "SPAM deal")
    assert not evaluate_condition(strict, "SPAM deal")


def test_all_conditions_must_hold() -> None:
    rule = _rule(
        Condition(field="title", operator=Op.CONTAINS, value="spam"),
        Condition(field="metadata.seller.tier", operator=Op.EQUALS, value="bronze"),
    )
    assert not evaluate_rule(rule, _record())


def test_rule_without_conditions_never_matches() -> None:
    assert not evaluate_rule(_rule(), _record())


def test_ruleset_orders_by_priority_and_drops_inactive() -> None:
    low = _rule(Condition(field="title", operator=Op.CONTAINS, value="x"), rule_id="low", priority=1)
    high = _rule(Condition(field="title", operator=Op.CONTAINS, value="x"), rule_id="high", priority=9)
    off = _rule(Condition(field="title", operator=Op.CONTAINS, value="x"), rule_id="off", priority=50, active=False)
    ruleset = RuleSet([low, off, high])
    assert [rule.id for rule in ruleset] == ["high", "low"]
    assert len(ruleset) == 2


def test_rules_scoped_to_content_types() -> None:
    only_reviews = _rule(
        Condition(field="title", operator=Op.CONTAINS, value="spam"),
        content_types=frozenset({ContentType.USER_REVIEW}),
    )
    assert evaluate_rules(RuleSet([only_reviews]), _record()) == []
    assert len(evaluate_rules(RuleSet([only_reviews]), _record(content_type=ContentType.USER_REVIEW))) == 1


def test_violation_carries_fixed_confidence() -> None:
    rule = _rule(
        Condition(field="title", operator=Op.CONTAINS, value="spam"),
        severity=ViolationSeverity.HIGH,
    )
    (violation,) = evaluate_rules(RuleSet([rule]), _record())
    assert violation.rule_id == "r1"
    assert violation.confidence == RULE_VIOLATION_CONFIDENCE
    assert violation.severity is ViolationSeverity.HIGH
    assert violation.description == "Rule violation: Rule r1"


def test_bad_regex_rule_does_not_block_other_rules(caplog: pytest.LogCaptureFixture) -> None:
    broken = _rule(Condition(field="title", operator=Op.REGEX_MATCH, value="(unclosed"), rule_id="broken", priority=5)
    good = _rule(Condition(field="title", operator=Op.CONTAINS, value="deal"), rule_id="good")
    policy = EvaluationPolicy()
    with caplog.at_level(logging.WARNING):
        violations = evaluate_rules(RuleSet([broken, good]), _record(), policy)
        evaluate_rules(RuleSet([broken, good]), _record(), policy)
    assert [violation.rule_id for violation in violations] == ["good"]
    messages = [record.getMessage() for record in caplog.records if "broken" in record.getMessage()]
    assert len(messages) == 1


def test_strict_policy_logs_evaluation_errors_every_time(caplog: pytest.LogCaptureFixture) -> None:
    broken = _rule(Condition(field="title", operator=Op.REGEX_MATCH, value="[z-a]"), rule_id="broken")
    policy = EvaluationPolicy(mode="strict")
    with caplog.at_level(logging.ERROR, logger="trust_engine.engine.conditions"):
        assert evaluate_rules(RuleSet([broken]), _record(), policy) == []
        assert evaluate_rules(RuleSet([broken]), _record(), policy) == []
    assert len([record for record in caplog.records if record.levelno == logging.ERROR]) == 2


def test_bad_regex_on_missing_field_is_simply_false() -> None:
    broken = _rule(Condition(field="metadata.absent", operator=Op.REGEX_MATCH, value="(unclosed"))
    assert evaluate_rules(RuleSet([broken]), _record()) == []
