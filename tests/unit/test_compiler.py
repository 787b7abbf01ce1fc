"""Tests for compiling taxonomy constraints into rules."""

from __future__ import annotations

from pensive.models import (
    CategoryRestrictions,
    ClassDependencies,
    Fandom,
    InstanceLimits,
    MutualExclusion,
    PlotBlock,
    RequiredContext,
    Tag,
    TagClass,
)
from pensive.rules.compiler import compile_taxonomy_rules
from pensive.rules.engine import evaluate_rules
from pensive.store.memory import InMemoryTaxonomyStore
from pensive.store.protocols import TaxonomySnapshot
from tests.fixtures.taxonomy_fixtures import plot_item, tag_item


def _rule_ids(snapshot: TaxonomySnapshot) -> list[str]:
    return [r.id for r in compile_taxonomy_rules(snapshot)]


class TestCompiledRuleIds:
    """Tests for which rules the fixture taxonomy compiles to."""

    def test_fixture_rule_ids(self, hp_snapshot: TaxonomySnapshot) -> None:
        """Every constraint in the fixture taxonomy yields one named rule."""
        assert _rule_ids(hp_snapshot) == [
            "tag_class:tc-pairing:within_class",
            "tag_class:tc-era:max_instances",
            "tag:t-hurt:enhances",
            "tag:t-fixit:requires",
            "plot_block:pb-audit:enabled_by",
            "plot_block:pb-dark:conflicts",
        ]

    def test_missing_fandom_compiles_nothing(self) -> None:
        """A snapshot without a fandom has no rules."""
        assert compile_taxonomy_rules(TaxonomySnapshot(fandom=None)) == []

    def test_compiled_rules_use_given_priority(self, hp_snapshot: TaxonomySnapshot) -> None:
        """Priority is applied to every compiled rule."""
        rules = compile_taxonomy_rules(hp_snapshot, priority=7)
        assert {r.priority for r in rules} == {7}
        assert {r.fandom_id for r in rules} == {"hp"}

    def test_unresolved_references_skipped(self) -> None:
        """Dangling ids do not produce rules."""
        store = InMemoryTaxonomyStore()
        store.add_fandom(Fandom(id="f", name="F"))
        store.add_tag(Tag(id="a", fandom_id="f", name="a", requires=["missing"]))
        assert _rule_ids(store.get("f")) == []


class TestCompiledRuleBehaviour:
    """Tests that compiled rules fire on the fixture taxonomy."""

    def test_within_class_blocks_two_pairings(self, hp_snapshot: TaxonomySnapshot) -> None:
        """Two pairing tags together are blocked."""
        pathway = [
            tag_item("t-hh", "harry/hermione", "ship", 0),
            tag_item("t-hg", "harry/ginny", "ship", 1),
        ]
        result = evaluate_rules(pathway, compile_taxonomy_rules(hp_snapshot))
        assert [b.rule_id for b in result.blocked_combinations] == [
            "tag_class:tc-pairing:within_class"
        ]
        assert not result.is_valid

    def test_single_pairing_allowed(self, hp_snapshot: TaxonomySnapshot) -> None:
        """One pairing tag passes."""
        result = evaluate_rules(
            [tag_item("t-hh", "harry/hermione", "ship", 0)],
            compile_taxonomy_rules(hp_snapshot),
        )
        assert result.is_valid
        assert result.blocked_combinations == []

    def test_era_limit(self, hp_snapshot: TaxonomySnapshot) -> None:
        """More than one era tag is an error."""
        pathway = [
            tag_item("t-marauders", "marauders-era", "era", 0),
            tag_item("t-trio", "golden-trio-era", "era", 1),
        ]
        result = evaluate_rules(pathway, compile_taxonomy_rules(hp_snapshot))
        assert [e.rule_id for e in result.errors] == ["tag_class:tc-era:max_instances"]

    def test_tag_requires(self, hp_snapshot: TaxonomySnapshot) -> None:
        """fix-it without time-travel is an error carrying a fix."""
        rules = compile_taxonomy_rules(hp_snapshot)
        result = evaluate_rules([tag_item("t-fixit", "fix-it", "trope", 0)], rules)
        assert [e.rule_id for e in result.errors] == ["tag:t-fixit:requires"]
        assert result.errors[0].fix == "Add time-travel"

        satisfied = evaluate_rules(
            [
                tag_item("t-fixit", "fix-it", "trope", 0),
                tag_item("t-tt", "time-travel", "trope", 1),
            ],
            rules,
        )
        assert satisfied.errors == []

    def test_tag_enhances_suggests(self, hp_snapshot: TaxonomySnapshot) -> None:
        """hurt/comfort without angst suggests adding it."""
        rules = compile_taxonomy_rules(hp_snapshot)
        result = evaluate_rules([tag_item("t-hurt", "hurt/comfort", "genre", 0)], rules)
        assert [s.message for s in result.suggestions] == ["hurt/comfort pairs well with: angst"]
        assert result.is_valid

        with_angst = evaluate_rules(
            [
                tag_item("t-hurt", "hurt/comfort", "genre", 0),
                tag_item("t-angst", "angst", "genre", 1),
            ],
            rules,
        )
        assert with_angst.suggestions == []

    def test_enabled_by(self, hp_snapshot: TaxonomySnapshot) -> None:
        """Gringotts Audit needs Goblin Inheritance."""
        rules = compile_taxonomy_rules(hp_snapshot)
        alone = evaluate_rules([plot_item("pb-audit", "Gringotts Audit", "inheritance", 0)], rules)
        assert [e.rule_id for e in alone.errors] == ["plot_block:pb-audit:enabled_by"]

        enabled = evaluate_rules(
            [
                plot_item("pb-gi", "Goblin Inheritance", "inheritance", 0),
                plot_item("pb-audit", "Gringotts Audit", "inheritance", 1),
            ],
            rules,
        )
        assert enabled.is_valid

    def test_plot_block_conflict(self, hp_snapshot: TaxonomySnapshot) -> None:
        """Dark Harry and Light Lord Harry cannot be combined."""
        pathway = [
            plot_item("pb-dark", "Dark Harry", "character-arc", 0),
            plot_item("pb-light", "Light Lord Harry", "character-arc", 1),
        ]
        result = evaluate_rules(pathway, compile_taxonomy_rules(hp_snapshot))
        assert [b.rule_id for b in result.blocked_combinations] == [
            "plot_block:pb-dark:conflicts"
        ]


def _class_store(tag_class: TagClass, extra_tags: list[Tag] | None = None) -> InMemoryTaxonomyStore:
    store = InMemoryTaxonomyStore()
    store.add_fandom(Fandom(id="f", name="F"))
    store.add_tag_class(tag_class)
    store.add_tag(Tag(id="m1", fandom_id="f", name="member-one", category="c", tag_class_id="tc"))
    store.add_tag(Tag(id="m2", fandom_id="f", name="member-two", category="c", tag_class_id="tc"))
    store.add_tag(Tag(id="x", fandom_id="f", name="outsider", category="banned"))
    store.add_tag(Tag(id="y", fandom_id="f", name="partner", category="welcome"))
    store.add_plot_block(PlotBlock(id="pb", fandom_id="f", name="Setup", category="arc"))
    for tag in extra_tags or []:
        store.add_tag(tag)
    return store


class TestTagClassSubRules:
    """Tests for the remaining tag class sub-rules."""

    def test_conflicting_tags(self) -> None:
        """A class tag plus a conflicting tag is blocked."""
        store = _class_store(
            TagClass(
                id="tc",
                fandom_id="f",
                name="cls",
                mutual_exclusion=MutualExclusion(conflicting_tags=["x"]),
            )
        )
        rules = compile_taxonomy_rules(store.get("f"))
        blocked = evaluate_rules(
            [tag_item("m1", "member-one", "c", 0), tag_item("x", "outsider", "banned", 1)], rules
        )
        assert [b.rule_id for b in blocked.blocked_combinations] == ["tag_class:tc:conflicts"]
        alone = evaluate_rules([tag_item("x", "outsider", "banned", 0)], rules)
        assert alone.blocked_combinations == []

    def test_required_tags(self) -> None:
        """Class tags without their required context are errors."""
        store = _class_store(
            TagClass(
                id="tc",
                fandom_id="f",
                name="cls",
                required_context=RequiredContext(required_tags=["y"]),
            )
        )
        rules = compile_taxonomy_rules(store.get("f"))
        result = evaluate_rules([tag_item("m1", "member-one", "c", 0)], rules)
        assert [e.rule_id for e in result.errors] == ["tag_class:tc:required_tags"]

    def test_min_and_exact_instances(self) -> None:
        """Minimum and exact counts apply only once the class is in use."""
        store = _class_store(
            TagClass(
                id="tc",
                fandom_id="f",
                name="cls",
                instance_limits=InstanceLimits(min_instances=2, exact_instances=2),
            )
        )
        rules = compile_taxonomy_rules(store.get("f"))
        one = evaluate_rules([tag_item("m1", "member-one", "c", 0)], rules)
        assert [e.rule_id for e in one.errors] == [
            "tag_class:tc:min_instances",
            "tag_class:tc:exact_instances",
        ]
        none = evaluate_rules([tag_item("y", "partner", "welcome", 0)], rules)
        assert none.errors == []
        two = evaluate_rules(
            [tag_item("m1", "member-one", "c", 0), tag_item("m2", "member-two", "c", 1)], rules
        )
        assert two.errors == []

    def test_category_restrictions(self) -> None:
        """Excluded categories block; missing applicable categories warn."""
        store = _class_store(
            TagClass(
                id="tc",
                fandom_id="f",
                name="cls",
                category_restrictions=CategoryRestrictions(
                    excluded_categories=["banned"],
                    applicable_categories=["welcome"],
                    required_plot_blocks=["pb"],
                ),
            )
        )
        rules = compile_taxonomy_rules(store.get("f"))
        result = evaluate_rules(
            [tag_item("m1", "member-one", "c", 0), tag_item("x", "outsider", "banned", 1)], rules
        )
        assert [b.rule_id for b in result.blocked_combinations] == [
            "tag_class:tc:excluded_categories"
        ]
        assert [w.rule_id for w in result.warnings] == ["tag_class:tc:applicable_categories"]
        assert [e.rule_id for e in result.errors] == ["tag_class:tc:required_plot_blocks"]

        happy = evaluate_rules(
            [
                tag_item("m1", "member-one", "c", 0),
                tag_item("y", "partner", "welcome", 1),
                plot_item("pb", "Setup", "arc", 2),
            ],
            rules,
        )
        assert happy.is_valid
        assert happy.warnings == []

    def test_class_dependencies(self) -> None:
        """Class-level requires and enhances compile like tag ones."""
        store = _class_store(
            TagClass(
                id="tc",
                fandom_id="f",
                name="cls",
                dependencies=ClassDependencies(requires=["y"], enhances=["x"]),
            )
        )
        rules = compile_taxonomy_rules(store.get("f"))
        result = evaluate_rules([tag_item("m1", "member-one", "c", 0)], rules)
        assert [e.rule_id for e in result.errors] == ["tag_class:tc:requires"]
        assert [s.rule_id for s in result.suggestions] == ["tag_class:tc:enhances"]

    def test_class_without_members_compiles_nothing(self) -> None:
        """A class no active tag belongs to has no rules."""
        store = InMemoryTaxonomyStore()
        store.add_fandom(Fandom(id="f", name="F"))
        store.add_tag_class(
            TagClass(
                id="tc",
                fandom_id="f",
                name="cls",
                instance_limits=InstanceLimits(max_instances=1),
            )
        )
        assert _rule_ids(store.get("f")) == []


class TestPlotBlockRules:
    """Tests for plot block relationship lists."""

    def test_requires_soft_requires_and_excludes(self) -> None:
        """Hard requirements error, soft ones warn, excluded categories block."""
        store = InMemoryTaxonomyStore()
        store.add_fandom(Fandom(id="f", name="F"))
        store.add_plot_block(PlotBlock(id="a", fandom_id="f", name="Alpha", category="arc"))
        store.add_plot_block(PlotBlock(id="b", fandom_id="f", name="Beta", category="arc"))
        store.add_plot_block(
            PlotBlock(
                id="c",
                fandom_id="f",
                name="Gamma",
                category="twist",
                requires=["a"],
                soft_requires=["b"],
                excludes_categories=["genre"],
            )
        )
        store.add_tag(Tag(id="t", fandom_id="f", name="fluff", category="genre"))
        rules = compile_taxonomy_rules(store.get("f"))

        result = evaluate_rules(
            [plot_item("c", "Gamma", "twist", 0), tag_item("t", "fluff", "genre", 1)], rules
        )
        assert [e.rule_id for e in result.errors] == ["plot_block:c:requires"]
        assert [w.rule_id for w in result.warnings] == ["plot_block:c:soft_requires"]
        assert [b.rule_id for b in result.blocked_combinations] == [
            "plot_block:c:excludes_categories"
        ]
