"""Load taxonomy fixtures (YAML or JSON) into a store.

A fixture is a mapping with optional top-level lists ``fandoms``, ``tag_classes``,
``tags``, ``plot_blocks``, ``stories`` and ``rules``; each entry is the
field mapping of the corresponding model.
"""

from __future__ import annotations

from pathlib import Path  # noqa: TC003 - used at runtime
from typing import Any, Protocol

from pydantic import ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from pensive.errors import PensiveError
from pensive.models.rules import ValidationRule
from pensive.models.taxonomy import Fandom, PlotBlock, Story, Tag, TagClass
from pensive.observability.logging import get_logger

log = get_logger(__name__)


class TaxonomyWriter(Protocol):
    def add_fandom(self, fandom: Fandom) -> None: ...
    def add_tag(self, tag: Tag) -> None: ...
    def add_tag_class(self, tag_class: TagClass) -> None: ...
    def add_plot_block(self, plot_block: PlotBlock) -> None: ...
    def add_story(self, story: Story) -> None: ...
    def add_rule(self, rule: ValidationRule) -> None: ...


class SeedError(PensiveError):
    """Raised when a fixture file cannot be read or contains invalid records."""

    def __init__(self, path: Path | None, reason: str) -> None:
        self.path = path
        self.reason = reason
        where = f" at {path}" if path is not None else ""
        super().__init__(f"Failed to load fixture{where}: {reason}")


def load_seed_file(path: Path) -> dict[str, Any]:
    """Read a YAML or JSON fixture file.

    Raises:
        SeedError: If the file is missing, unparsable or not a mapping.
    """
    if not path.exists():
        raise SeedError(path, "File not found")

    yaml = YAML(typ="safe")
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.load(f)
    except YAMLError as e:
        raise SeedError(path, str(e)) from e

    if not isinstance(data, dict):
        raise SeedError(path, "Top level must be a mapping")
    return data


def seed_store(store: TaxonomyWriter, data: dict[str, Any]) -> dict[str, int]:
    """Validate fixture records and write them to ``store``.

    Every section is validated before the first write, so an invalid
    record leaves the store untouched.

    Args:
        store: Any store exposing the ``add_*`` write methods.
        data: Fixture mapping as returned by :func:`load_seed_file`.

    Returns:
        Count of records written per section.

    Raises:
        SeedError: If any record fails validation.
    """
    sections: list[tuple[str, type[Any], Any]] = [
        ("fandoms", Fandom, store.add_fandom),
        ("tag_classes", TagClass, store.add_tag_class),
        ("tags", Tag, store.add_tag),
        ("plot_blocks", PlotBlock, store.add_plot_block),
        ("stories", Story, store.add_story),
        ("rules", ValidationRule, store.add_rule),
    ]
    validated: list[tuple[str, list[Any], Any]] = []
    for section, model, add in sections:
        records = []
        for index, entry in enumerate(data.get(section) or []):
            try:
                records.append(model.model_validate(entry))
            except ValidationError as e:
                raise SeedError(None, f"{section}[{index}]: {e.errors()[0]['msg']}") from e
        validated.append((section, records, add))

    counts: dict[str, int] = {}
    for section, records, add in validated:
        for record in records:
            add(record)
        counts[section] = len(records)
    log.info("store_seeded", **counts)
    return counts
