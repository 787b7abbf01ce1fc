"""Rule evaluation over the flat AND/OR condition language.

Conditions of a rule are split by their ``logic`` flag into an AND-group and
an OR-group. Every AND condition must hold and, when the OR-group is not
empty, at least one OR condition must hold. A rule without conditions always
matches. Malformed conditions never hold.

Evaluation is pure: identical pathway and rule inputs give identical
results, with items ordered by rule priority and then action order.
"""

from __future__ import annotations

from collections.abc import Sequence
from numbers import Real
from typing import TYPE_CHECKING, Any

from pensive.models.results import ResultItem, ValidationResult
from pensive.models.rules import (
    CombinationCondition,
    ExclusionCondition,
    HasPlotBlockCondition,
    HasTagCondition,
    MalformedCondition,
    TagCountCondition,
    ValidationRule,
)
from pensive.observability.logging import get_logger
from pensive.rules.compiler import compile_taxonomy_rules

if TYPE_CHECKING:
    from pensive.models.rules import RuleAction, RuleCondition
    from pensive.models.taxonomy import PathwayItem
    from pensive.store.protocols import RuleStore, TaxonomySnapshot

log = get_logger(__name__)

_BUCKETS = {
    "error": "errors",
    "warning": "warnings",
    "suggestion": "suggestions",
    "suggest_alternative": "suggestions",
    "block": "blocked_combinations",
}


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def compare_values(actual: Any, operator: str, expected: Any) -> bool:
    """Compare ``actual`` against ``expected`` with a rule operator.

    Unsupported operators and operand types compare as False.
    """
    if operator == "equals":
        if isinstance(actual, bool) != isinstance(expected, bool):
            return False
        return bool(actual == expected)
    if operator in ("gt", "lt"):
        if not (_is_number(actual) and _is_number(expected)):
            return False
        return actual > expected if operator == "gt" else actual < expected
    if operator == "contains":
        return str(expected) in str(actual)
    if operator in ("in", "not_in"):
        if not isinstance(expected, (list, tuple, set, frozenset)):
            return False
        return (actual in expected) == (operator == "in")
    return False


def rule_applies(rule: ValidationRule, pathway: Sequence[PathwayItem]) -> bool:
    """True when ``applies_to`` is empty or names any item's type, category or name."""
    if not rule.applies_to:
        return True
    targets = set(rule.applies_to)
    return any(
        item.type in targets or item.name in targets or (item.category or "") in targets
        for item in pathway
    )


def _evaluate(condition: RuleCondition, pathway: Sequence[PathwayItem]) -> bool:
    if isinstance(condition, HasTagCondition):
        return any(i.type == "tag" and i.name == condition.value for i in pathway)
    if isinstance(condition, HasPlotBlockCondition):
        return any(i.type == "plot_block" and i.name == condition.value for i in pathway)
    if isinstance(condition, TagCountCondition):
        count = sum(
            1
            for i in pathway
            if i.type == "tag"
            and (condition.field is None or i.category == condition.field)
            and (condition.names is None or i.name in condition.names)
        )
        return compare_values(count, condition.operator, condition.value)
    if isinstance(condition, CombinationCondition):
        names = {i.name for i in pathway}
        return all(value in names for value in condition.value)
    if isinstance(condition, ExclusionCondition):
        names = {i.name for i in pathway}
        return any(value in names for value in condition.value)
    return False


def evaluate_condition(condition: RuleCondition, pathway: Sequence[PathwayItem]) -> bool:
    """Evaluate one condition; ``negate`` inverts well-formed conditions only."""
    if isinstance(condition, MalformedCondition):
        return False
    result = _evaluate(condition, pathway)
    return not result if condition.negate else result


def evaluate_conditions(
    conditions: Sequence[RuleCondition],
    pathway: Sequence[PathwayItem],
) -> bool:
    """Apply the flat two-bucket AND/OR semantics to a condition list."""
    and_group = [c for c in conditions if c.logic == "AND"]
    or_group = [c for c in conditions if c.logic == "OR"]

    if not all(evaluate_condition(c, pathway) for c in and_group):
        return False
    if or_group and not any(evaluate_condition(c, pathway) for c in or_group):
        return False
    return True


def _fire(rule: ValidationRule, action: RuleAction, result: ValidationResult) -> None:
    bucket: list[ResultItem] = getattr(result, _BUCKETS[action.type])
    bucket.append(
        ResultItem(
            rule=rule.name,
            message=action.message,
            severity=action.severity,
            fix=action.suggested_fix,
            rule_id=rule.id,
        )
    )


def evaluate_rules(
    pathway: Sequence[PathwayItem],
    rules: Sequence[ValidationRule],
) -> ValidationResult:
    """Evaluate ``rules`` against ``pathway``.

    Rules run in priority order, highest first; equal priorities keep their
    given order. Inactive rules are skipped.
    """
    result = ValidationResult()
    matched = 0
    for rule in sorted(rules, key=lambda r: -r.priority):
        if not rule.is_active:
            continue
        result.rules_evaluated += 1
        if rule.malformed_conditions:
            log.warning(
                "malformed_conditions",
                rule_id=rule.id,
                count=len(rule.malformed_conditions),
                reason=rule.malformed_conditions[0].reason,
            )
        if not rule_applies(rule, pathway):
            continue
        if not evaluate_conditions(rule.conditions, pathway):
            continue
        matched += 1
        for action in rule.actions:
            _fire(rule, action, result)

    log.debug(
        "rules_evaluated",
        rule_count=result.rules_evaluated,
        matched=matched,
        is_valid=result.is_valid,
    )
    return result


class RuleEngine:
    """Loads a fandom's rules and evaluates pathways against them.

    Stored rules come from the rule store. When ``compile_taxonomy`` is set,
    rules compiled from the fandom's tag classes, tags and plot blocks are
    appended after them, so stored rules win ties in priority.
    """

    def __init__(
        self,
        rule_store: RuleStore,
        *,
        compile_taxonomy: bool = True,
        compiled_priority: int = 0,
    ) -> None:
        self._rule_store = rule_store
        self._compile_taxonomy = compile_taxonomy
        self._compiled_priority = compiled_priority

    def load_rules(
        self,
        fandom_id: str,
        snapshot: TaxonomySnapshot | None = None,
    ) -> list[ValidationRule]:
        """Return stored rules plus compiled taxonomy rules, highest priority first."""
        rules = list(self._rule_store.list_active_rules(fandom_id))
        if self._compile_taxonomy and snapshot is not None:
            rules.extend(compile_taxonomy_rules(snapshot, priority=self._compiled_priority))
        return sorted(rules, key=lambda r: -r.priority)

    def validate_pathway(
        self,
        pathway: Sequence[PathwayItem],
        fandom_id: str,
        snapshot: TaxonomySnapshot | None = None,
    ) -> ValidationResult:
        return evaluate_rules(pathway, self.load_rules(fandom_id, snapshot))

    def evaluate(
        self,
        pathway: Sequence[PathwayItem],
        rules: Sequence[ValidationRule],
    ) -> ValidationResult:
        return evaluate_rules(pathway, rules)
