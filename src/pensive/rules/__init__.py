"""Rule evaluation engine and taxonomy rule compilation."""

from pensive.rules.compiler import compile_taxonomy_rules
from pensive.rules.engine import (
    RuleEngine,
    compare_values,
    evaluate_condition,
    evaluate_conditions,
    evaluate_rules,
    rule_applies,
)

__all__ = [
    "RuleEngine",
    "compare_values",
    "compile_taxonomy_rules",
    "evaluate_condition",
    "evaluate_conditions",
    "evaluate_rules",
    "rule_applies",
]
