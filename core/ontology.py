"""
LINEAGE ONTOLOGY - The Vocabulary of the Graph

If schemas.py is the Grammar (how we structure records),
ontology.py is the Dictionary (the words we can use).

This module defines the closed vocabularies used by the engine:
- ObjectType: What a node represents (table, view, sticky note, ...)
- NodeState / EdgeState: Flags carried by live graph elements
- Direction: Upstream or downstream traversal
- ReferenceSource: Where relationships are discovered, in priority order

Object types are opaque to the engine except for filter matching.
There is no class hierarchy per type: a node is a record tagged with one of
these values.
"""
from enum import Enum
from typing import Tuple


# =============================================================================
# OBJECT TYPES
# =============================================================================

class ObjectType(str, Enum):
    """Types of objects that can appear on the lineage canvas."""
    # Warehouse objects
    TABLE = "table"
    VIEW = "view"
    STAGE = "stage"
    DATASET = "dataset"
    MODEL = "model"
    EXTERNAL = "external"
    # Synthetic / annotation objects
    GROUP = "group"
    DOCUMENTATION = "documentation"
    STICKY_NOTE = "sticky_note"
    EMPTY_CARD = "empty_card"


# =============================================================================
# ELEMENT STATES
# =============================================================================

class NodeState(str, Enum):
    """Flags carried by a node that lives in the graph."""
    IN_GRAPH = "in-graph"
    VISIBLE = "visible"
    HIDDEN = "hidden"
    SELECTED = "selected"
    FOCUSED = "focused"
    EXPANDED_UPSTREAM = "expanded-upstream"
    EXPANDED_DOWNSTREAM = "expanded-downstream"
    GROUP_NODE = "group-node"


class EdgeState(str, Enum):
    """Flags carried by an edge that lives in the graph."""
    IN_GRAPH = "in-graph"
    VISIBLE = "visible"
    HIDDEN = "hidden"
    SELECTED = "selected"
    FOCUSED = "focused"


# =============================================================================
# TRAVERSAL
# =============================================================================

class Direction(str, Enum):
    """Direction of a lineage traversal relative to a pivot node."""
    UPSTREAM = "upstream"
    DOWNSTREAM = "downstream"

    @property
    def expanded_state(self) -> NodeState:
        """The node flag set when this direction is expanded."""
        if self is Direction.UPSTREAM:
            return NodeState.EXPANDED_UPSTREAM
        return NodeState.EXPANDED_DOWNSTREAM

    @property
    def short(self) -> str:
        """Short tag used in synthetic ids ("up" / "down")."""
        return "up" if self is Direction.UPSTREAM else "down"

    @property
    def relation(self) -> str:
        """Relation label for edges synthesized in this direction."""
        return "depends_on" if self is Direction.UPSTREAM else "feeds_into"


class ReferenceSource(str, Enum):
    """Where direct neighbours of a node are discovered."""
    METADATA = "metadata"
    COLUMN_LINEAGE = "column_lineage"
    STATIC_EDGE = "static_edge"


# First source yielding at least one match wins
SOURCE_PRIORITY: Tuple[ReferenceSource, ...] = (
    ReferenceSource.METADATA,
    ReferenceSource.COLUMN_LINEAGE,
    ReferenceSource.STATIC_EDGE,
)


class UnresolvedReferencePolicy(str, Enum):
    """What happens to references that match nothing in the catalog."""
    DROP = "drop"
    WARN = "warn"


# =============================================================================
# GOVERNANCE VOCABULARY
# =============================================================================

class Freshness(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    OUTDATED = "outdated"
    UNKNOWN = "unknown"


class CertificationStatus(str, Enum):
    CERTIFIED = "certified"
    PENDING = "pending"
    DEPRECATED = "deprecated"
    NONE = "none"


# =============================================================================
# LAYOUT
# =============================================================================

class LayoutDirection(str, Enum):
    """Flow direction handed to the external layout oracle."""
    RIGHT = "RIGHT"
    LEFT = "LEFT"
    DOWN = "DOWN"
    UP = "UP"
