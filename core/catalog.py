"""
LINEAGE CATALOG - The read-only universe of known objects

The catalog is supplied once and never mutated. It indexes nodes by id,
fully-qualified name and label (first occurrence wins for the latter two),
and static edges by target and by source.
"""
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Union

import msgspec

from core.exceptions import CatalogError, NodeNotFoundError
from core.schemas import CatalogEdge, CatalogNode


class CatalogDocument(msgspec.Struct, kw_only=True):
    """On-disk catalog layout: {"nodes": [...], "edges": [...]}."""
    nodes: List[CatalogNode] = msgspec.field(default_factory=list)
    edges: List[CatalogEdge] = msgspec.field(default_factory=list)


class Catalog:
    """
    Read-only catalog of lineage objects.

    Usage:
        catalog = Catalog(nodes=[a, b, c], edges=[CatalogEdge(id="c-b", source="c", target="b")])
        catalog.get("a")
        catalog.find_by_name("DB.SCHEMA.A")
    """

    def __init__(
        self,
        nodes: Iterable[CatalogNode] = (),
        edges: Iterable[CatalogEdge] = (),
    ):
        self._nodes: Dict[str, CatalogNode] = {}
        self._by_name: Dict[str, str] = {}
        self._by_label: Dict[str, str] = {}
        self._edges: List[CatalogEdge] = []
        self._edges_by_target: Dict[str, List[CatalogEdge]] = {}
        self._edges_by_source: Dict[str, List[CatalogEdge]] = {}

        for node in nodes:
            self._nodes[node.id] = node
            if node.name:
                self._by_name.setdefault(node.name, node.id)
            if node.label:
                self._by_label.setdefault(node.label, node.id)

        for edge in edges:
            self._edges.append(edge)
            self._edges_by_target.setdefault(edge.target, []).append(edge)
            self._edges_by_source.setdefault(edge.source, []).append(edge)

    # =========================================================================
    # LOADING
    # =========================================================================

    @classmethod
    def from_json(cls, data: Union[str, bytes]) -> "Catalog":
        """
        Decode a catalog document.

        Raises:
            CatalogError: If the document is malformed
        """
        try:
            doc = msgspec.json.decode(data, type=CatalogDocument)
        except (msgspec.DecodeError, msgspec.ValidationError) as exc:
            raise CatalogError(f"Invalid catalog document: {exc}") from exc
        return cls(nodes=doc.nodes, edges=doc.edges)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Catalog":
        """Load a catalog document from a JSON file."""
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            raise CatalogError(f"Cannot read catalog {path}: {exc}") from exc
        return cls.from_json(data)

    def to_json(self) -> bytes:
        doc = CatalogDocument(nodes=list(self._nodes.values()), edges=list(self._edges))
        return msgspec.json.encode(doc)

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[CatalogNode]:
        return iter(self._nodes.values())

    @property
    def ids(self) -> List[str]:
        """Node ids in insertion order."""
        return list(self._nodes)

    @property
    def edges(self) -> List[CatalogEdge]:
        return list(self._edges)

    def get(self, node_id: str) -> Optional[CatalogNode]:
        return self._nodes.get(node_id)

    def require(self, node_id: str) -> CatalogNode:
        """
        Raises:
            NodeNotFoundError: If node_id is not in the catalog
        """
        node = self._nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def find_by_name(self, name: str) -> Optional[str]:
        return self._by_name.get(name)

    def find_by_label(self, label: str) -> Optional[str]:
        return self._by_label.get(label)

    def edges_into(self, node_id: str) -> List[CatalogEdge]:
        """Static edges whose target is node_id (its upstream edges)."""
        return list(self._edges_by_target.get(node_id, ()))

    def edges_out_of(self, node_id: str) -> List[CatalogEdge]:
        """Static edges whose source is node_id (its downstream edges)."""
        return list(self._edges_by_source.get(node_id, ()))
