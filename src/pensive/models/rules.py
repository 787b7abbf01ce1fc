"""Rule language: conditions, actions and validation rules.

Each condition kind is its own model carrying only the fields it uses,
discriminated by ``type``. Raw condition rows that fail validation are
hydrated into :class:`MalformedCondition`, which always evaluates to false,
so one bad row never aborts a whole rule set. Action rows that fail
validation are dropped with a warning.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)

from pensive.observability.logging import get_logger

log = get_logger(__name__)

Operator = Literal["equals", "contains", "gt", "lt", "in", "not_in"]
Logic = Literal["AND", "OR"]
ActionType = Literal["error", "warning", "suggestion", "suggest_alternative", "block"]
Severity = Literal["low", "medium", "high", "critical"]


class _ConditionBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    logic: Logic = "AND"
    group_id: str | None = None
    negate: bool = False


class HasTagCondition(_ConditionBase):
    """Pathway contains a tag with exactly this name.

    ``operator`` is kept as stored; membership is always an exact name match.
    """

    type: Literal["has_tag"] = "has_tag"
    operator: Operator = "equals"
    value: str = Field(min_length=1)


class HasPlotBlockCondition(_ConditionBase):
    """Pathway contains a plot block with exactly this name.

    ``operator`` is kept as stored; membership is always an exact name match.
    """

    type: Literal["has_plot_block"] = "has_plot_block"
    operator: Operator = "equals"
    value: str = Field(min_length=1)


class TagCountCondition(_ConditionBase):
    """Number of tag items compared against ``value``.

    When ``field`` is set only tag items whose category equals it are counted;
    when ``names`` is set only tag items with one of those names are counted.
    ``contains`` tests ``value`` as a substring of the stringified count.
    """

    type: Literal["tag_count"] = "tag_count"
    operator: Operator = "equals"
    value: int | str | list[int]
    field: str | None = None
    names: list[str] | None = None

    @model_validator(mode="after")
    def _check_operator_value(self) -> TagCountCondition:
        wants_list = self.operator in ("in", "not_in")
        if wants_list != isinstance(self.value, list):
            msg = f"operator '{self.operator}' does not accept value {self.value!r}"
            raise ValueError(msg)
        if self.operator != "contains" and isinstance(self.value, str):
            msg = f"operator '{self.operator}' needs a number, got {self.value!r}"
            raise ValueError(msg)
        return self


class _NameListCondition(_ConditionBase):
    value: list[str] = Field(min_length=1)

    @field_validator("value", mode="before")
    @classmethod
    def _coerce_to_list(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value


class CombinationCondition(_NameListCondition):
    """Every listed name appears among the pathway item names."""

    type: Literal["combination"] = "combination"


class ExclusionCondition(_NameListCondition):
    """The pathway breaks an exclusion: one of the listed names is present.

    Negate it to test that none of the names is present.
    """

    type: Literal["exclusion"] = "exclusion"


class MalformedCondition(_ConditionBase):
    """A condition row that could not be validated. Never matches."""

    type: Literal["malformed"] = "malformed"
    raw: dict[str, Any] = Field(default_factory=dict)
    reason: str = ""


RuleCondition = Annotated[
    HasTagCondition
    | HasPlotBlockCondition
    | TagCountCondition
    | CombinationCondition
    | ExclusionCondition
    | MalformedCondition,
    Field(discriminator="type"),
]

_WELL_FORMED = TypeAdapter(
    Annotated[
        HasTagCondition
        | HasPlotBlockCondition
        | TagCountCondition
        | CombinationCondition
        | ExclusionCondition,
        Field(discriminator="type"),
    ]
)


def parse_condition(data: Any) -> RuleCondition:
    """Hydrate a raw condition row.

    Rows that fail validation become a :class:`MalformedCondition` that keeps
    the row's ``logic`` flag (when readable) so it still occupies its group.

    Args:
        data: A mapping as stored, or an already-built condition.

    Returns:
        A well-formed condition, or a MalformedCondition.
    """
    if isinstance(data, _ConditionBase):
        return data  # type: ignore[return-value]
    try:
        return _WELL_FORMED.validate_python(data)
    except ValidationError as e:
        raw = dict(data) if isinstance(data, dict) else {"value": data}
        logic = raw.get("logic") if raw.get("logic") in ("AND", "OR") else "AND"
        return MalformedCondition(
            logic=logic,
            group_id=raw.get("group_id") if isinstance(raw.get("group_id"), str) else None,
            raw=raw,
            reason=f"{e.error_count()} validation error(s): {e.errors()[0]['msg']}",
        )


class RuleAction(BaseModel):
    """What happens when a rule matches."""

    model_config = ConfigDict(frozen=True)

    type: ActionType
    severity: Severity = "medium"
    message: str = Field(min_length=1)
    suggested_fix: str | None = None


class ValidationRule(BaseModel):
    """A condition-to-action unit scoped to a fandom.

    Higher ``priority`` is evaluated first. ``applies_to`` lists item types,
    categories or names; an empty list applies the rule to every pathway.
    """

    id: str = Field(min_length=1)
    fandom_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    category: str = "general"
    priority: int = 0
    is_active: bool = True
    applies_to: list[str] = Field(default_factory=list)
    conditions: list[RuleCondition] = Field(default_factory=list)
    actions: list[RuleAction] = Field(default_factory=list)

    @field_validator("conditions", mode="before")
    @classmethod
    def _hydrate_conditions(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        return [parse_condition(item) for item in value]

    @model_validator(mode="before")
    @classmethod
    def _drop_invalid_actions(cls, data: Any) -> Any:
        if not isinstance(data, dict) or not isinstance(data.get("actions"), list):
            return data
        kept: list[Any] = []
        for index, raw in enumerate(data["actions"]):
            if isinstance(raw, RuleAction):
                kept.append(raw)
                continue
            try:
                kept.append(RuleAction.model_validate(raw))
            except ValidationError as e:
                log.warning(
                    "rule_action_dropped",
                    rule_id=data.get("id"),
                    index=index,
                    error=e.errors()[0]["msg"],
                )
        return {**data, "actions": kept}

    @property
    def malformed_conditions(self) -> list[MalformedCondition]:
        """Conditions that failed validation at hydration."""
        return [c for c in self.conditions if isinstance(c, MalformedCondition)]
