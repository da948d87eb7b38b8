from __future__ import annotations

from .conditions import RuleSet, evaluate_condition, evaluate_rule, evaluate_rules, resolve_field
from .loader import load_rules_result, load_ruleset
from .types import Condition, ConditionOperator, EvaluationPolicy, Rule

__all__ = [
    "Condition",
    "ConditionOperator",
    "EvaluationPolicy",
    "Rule",
    "RuleSet",
    "evaluate_condition",
    "evaluate_rule",
    "evaluate_rules",
    "resolve_field",
    "load_rules_result",
    "load_ruleset",
]
