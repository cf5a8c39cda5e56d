"""
Pytest configuration and shared fixtures for the lineage engine test suite.
"""
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from core.catalog import Catalog
from core.schemas import CatalogEdge, CatalogNode, NodeMetadata
from core.ontology import ObjectType


def make_node(node_id, upstream=(), downstream=(), object_type=ObjectType.TABLE,
              database="DB", schema="PUBLIC", **metadata):
    """Catalog node with name DATABASE.SCHEMA.ID and optional reference lists."""
    return CatalogNode(
        id=node_id,
        label=node_id,
        name=f"{database}.{schema}.{node_id}",
        object_type=object_type,
        database=database,
        schema=schema,
        metadata=NodeMetadata(
            upstream_references=list(upstream),
            downstream_references=list(downstream),
            **metadata,
        ),
    )


def make_edge(source, target, relation="depends_on"):
    return CatalogEdge(id=f"{source}-{target}", source=source, target=target, relation=relation)


@pytest.fixture
def node_factory():
    return make_node


@pytest.fixture
def edge_factory():
    return make_edge


@pytest.fixture
def abc_catalog():
    """
    A declares B upstream in metadata; B has none; static edge C -> B.

    Expanding A must stop at B; expanding B reaches C.
    """
    return Catalog(
        nodes=[make_node("A", upstream=["B"]), make_node("B"), make_node("C")],
        edges=[make_edge("C", "B")],
    )


@pytest.fixture
def cyclic_catalog():
    """X -> Y -> Z -> X through static edges only."""
    return Catalog(
        nodes=[make_node("X"), make_node("Y"), make_node("Z")],
        edges=[make_edge("X", "Y"), make_edge("Y", "Z"), make_edge("Z", "X")],
    )


@pytest.fixture
def shared_catalog():
    """Two pivots P1 and P2 that both declare X upstream."""
    return Catalog(
        nodes=[make_node("P1", upstream=["X"]), make_node("P2", upstream=["X"]), make_node("X")],
    )


@pytest.fixture
def chain_catalog():
    """S1 -> S2 -> T -> D1 -> D2 via static edges."""
    return Catalog(
        nodes=[make_node(n) for n in ("S1", "S2", "T", "D1", "D2")],
        edges=[make_edge("S1", "S2"), make_edge("S2", "T"), make_edge("T", "D1"), make_edge("D1", "D2")],
    )


@pytest.fixture
def store_factory():
    """Build a GraphStore with in-memory persistence and a quiet logger."""
    from core.graph_store import GraphStore
    from infrastructure.config import EngineConfig
    from infrastructure.logger import LoggerConfig, MutationLogger
    from infrastructure.state_store import InMemoryStateStore, StatePersistence

    def build(catalog, **config_values):
        return GraphStore(
            catalog,
            config=EngineConfig(**config_values),
            persistence=StatePersistence(InMemoryStateStore()),
            mutation_logger=MutationLogger(LoggerConfig(enable_file_log=False)),
        )

    return build


@pytest.fixture
def abc_store(store_factory, abc_catalog):
    return store_factory(abc_catalog)
