"""Pathway shape checks and fandom scope/hierarchy validation."""

from pensive.validation.scope import (
    EntityRelationships,
    HierarchyEdge,
    check_hierarchy,
    detect_circular_dependencies,
    pathway_scope_result,
    relationships_from_snapshot,
    validate_entity_relationships,
    validate_fandom_scope,
)
from pensive.validation.shape import validate_pathway_shape

__all__ = [
    "EntityRelationships",
    "HierarchyEdge",
    "check_hierarchy",
    "detect_circular_dependencies",
    "pathway_scope_result",
    "relationships_from_snapshot",
    "validate_entity_relationships",
    "validate_fandom_scope",
    "validate_pathway_shape",
]
