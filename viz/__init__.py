"""
LINEAGE VISUALIZATION - Render-side data layer

This package provides what a canvas needs from the engine:
- core: render snapshots, state deltas, layout plumbing, Arrow export
"""

from viz.core import (
    VizNode,
    VizEdge,
    GraphSnapshot,
    GraphDelta,
    MutationEvent,
    MutationType,
    LayoutRequest,
    create_snapshot,
    diff_states,
    build_layout_request,
    apply_layout,
    serialize_to_arrow,
    write_parquet,
)

__all__ = [
    "VizNode",
    "VizEdge",
    "GraphSnapshot",
    "GraphDelta",
    "MutationEvent",
    "MutationType",
    "LayoutRequest",
    "create_snapshot",
    "diff_states",
    "build_layout_request",
    "apply_layout",
    "serialize_to_arrow",
    "write_parquet",
]
