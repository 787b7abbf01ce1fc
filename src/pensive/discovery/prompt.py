"""Free-text writing prompt rendered from a pathway."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from pensive.validation.shape import ordered

if TYPE_CHECKING:
    from pensive.models.taxonomy import PathwayItem

EMPTY_PROMPT = "Create a new story with your favorite elements."


def generate_prompt(pathway: Sequence[PathwayItem], highlights: Sequence[str] = ()) -> str:
    """Render e.g. ``Write a story featuring A, B with X and Y.``

    Without tags the plot blocks are introduced with "involving". Novelty
    highlights, when present, follow on a new paragraph.
    """
    if not pathway:
        return EMPTY_PROMPT

    items = ordered(pathway)
    tags = [i.name for i in items if i.type == "tag"]
    plots = [i.name for i in items if i.type == "plot_block"]

    text = "Write a story"
    if tags:
        text += f" featuring {', '.join(tags)}"
    if plots:
        text += f" {'with' if tags else 'involving'} {' and '.join(plots)}"
    if highlights:
        text += f"\n\nNovel aspects to explore: {', '.join(highlights)}"
    return text + "."
