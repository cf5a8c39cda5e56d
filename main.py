"""
LINEAGE MAIN - Entry Point and CLI

Commands:
    discover - Print the transitive upstream / downstream set of a node
    expand   - Build a graph around a node and print or write its JSON
    states   - List saved graph states
    export   - Export a saved or JSON state to Parquet / Arrow
    share    - Print a shareable URL for a JSON state

Usage:
    # Who feeds ORDERS?
    python main.py discover catalog.json ORDERS --direction upstream

    # Expand both ways and keep the result
    python main.py expand catalog.json ORDERS --both --output graph.json --save "orders lineage"

    # Saved states in the configured store
    python main.py states

    # Columnar export of a state for notebooks
    python main.py export --input graph.json --output ./export --format parquet

    # Share link
    python main.py share graph.json --base-url https://lineage.example.com/view
"""
import sys
import logging
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent))


def _build_store(args, catalog=None):
    from core.catalog import Catalog
    from core.graph_store import GraphStore
    from infrastructure.config import load_config
    from infrastructure.logger import LoggerConfig, MutationLogger
    from infrastructure.state_store import SqliteStateStore, StatePersistence

    config = load_config(args.config)
    if catalog is None:
        catalog = Catalog()
    persistence = StatePersistence(SqliteStateStore(config.store_path))
    mutation_logger = MutationLogger(
        LoggerConfig(enable_file_log=config.enable_file_log, log_path=config.log_path)
    )
    return GraphStore(catalog, config=config, persistence=persistence, mutation_logger=mutation_logger)


def _read_state(path: str):
    from core.codec import decode_state

    return decode_state(Path(path).read_bytes())


def cmd_discover(args):
    """Handle discover command - print transitive lineage of one node."""
    from core.catalog import Catalog
    from core.ontology import Direction
    from core.resolver import RelationshipResolver

    catalog = Catalog.load(args.catalog)
    catalog.require(args.node_id)
    resolver = RelationshipResolver(catalog)
    directions = [Direction(args.direction)] if args.direction else list(Direction)

    for direction in directions:
        discovery = resolver.discover(args.node_id, direction)
        source = discovery.source.value if discovery.source else "none"
        print(f"{direction.value} ({source}): {len(discovery.node_ids)} nodes")
        for node_id in discovery.node_ids:
            node = catalog.get(node_id)
            print(f"  {node_id}  {node.name if node else ''}")


def cmd_expand(args):
    """Handle expand command - build a graph around a node."""
    from core.catalog import Catalog

    catalog = Catalog.load(args.catalog)
    catalog.require(args.node_id)
    store = _build_store(args, catalog)

    store.add_node_by_id(args.node_id)
    if args.both or args.direction in (None, "upstream"):
        store.expand_upstream(args.node_id)
    if args.both or args.direction == "downstream":
        store.expand_downstream(args.node_id)

    text = store.export_state_as_json()
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
        print(f"Wrote {store.node_count()} nodes, {store.edge_count()} edges to {args.output}")
    else:
        print(text)

    if args.save:
        state_id = store.save_state(args.save)
        print(f"Saved as {state_id}")


def cmd_states(args):
    """Handle states command - list saved states."""
    store = _build_store(args)
    saved = store.get_saved_states()
    if not saved:
        print("No saved states.")
        return
    print(f"{'ID':<32} {'NODES':>6} {'EDGES':>6}  NAME")
    print("-" * 70)
    for info in saved:
        print(f"{info.id:<32} {info.node_count:>6} {info.edge_count:>6}  {info.name}")


def cmd_export(args):
    """Handle export command - columnar export of a state."""
    from viz.core import create_snapshot, serialize_to_arrow, write_parquet

    if args.input:
        state = _read_state(args.input)
    else:
        store = _build_store(args)
        loaded = store.load_state_by_id(args.state_id) if args.state_id else store.load_state()
        if not loaded:
            print("No saved state to export")
            sys.exit(1)
        state = store.get_state()

    snapshot = create_snapshot(state, include_hidden=args.include_hidden)
    output_dir = Path(args.output)

    if args.format == "arrow":
        output_dir.mkdir(parents=True, exist_ok=True)
        nodes_bytes, edges_bytes = serialize_to_arrow(snapshot)
        nodes_path, edges_path = output_dir / "nodes.arrow", output_dir / "edges.arrow"
        nodes_path.write_bytes(nodes_bytes)
        edges_path.write_bytes(edges_bytes)
    else:
        nodes_path, edges_path = write_parquet(snapshot, output_dir)

    print(f"Exported {snapshot.node_count} nodes, {snapshot.edge_count} edges")
    print(f"  Nodes: {nodes_path}")
    print(f"  Edges: {edges_path}")


def cmd_share(args):
    """Handle share command - print a share URL for a state file."""
    from core.codec import build_share_url
    from infrastructure.config import load_config

    config = load_config(args.config)
    state = _read_state(args.state_file)
    print(build_share_url(state, args.base_url or config.share_base_url, config.share_param))


def main():
    import argparse

    from core.exceptions import GraphError

    parser = argparse.ArgumentParser(
        description="Lineage graph engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", help="Path to lineage.toml (defaults to $LINEAGE_CONFIG or config/lineage.toml)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # discover command
    discover_parser = subparsers.add_parser("discover", help="Print transitive lineage of a node")
    discover_parser.add_argument("catalog", help="Path to catalog JSON")
    discover_parser.add_argument("node_id", help="Catalog node id")
    discover_parser.add_argument("--direction", choices=["upstream", "downstream"])
    discover_parser.set_defaults(func=cmd_discover)

    # expand command
    expand_parser = subparsers.add_parser("expand", help="Build a graph around a node")
    expand_parser.add_argument("catalog", help="Path to catalog JSON")
    expand_parser.add_argument("node_id", help="Catalog node id")
    expand_parser.add_argument("--direction", choices=["upstream", "downstream"])
    expand_parser.add_argument("--both", action="store_true", help="Expand upstream and downstream")
    expand_parser.add_argument("--output", "-o", help="Write state JSON here instead of stdout")
    expand_parser.add_argument("--save", metavar="NAME", help="Also save the state under NAME")
    expand_parser.set_defaults(func=cmd_expand)

    # states command
    states_parser = subparsers.add_parser("states", help="List saved states")
    states_parser.set_defaults(func=cmd_states)

    # export command
    export_parser = subparsers.add_parser("export", help="Export a state to columnar files")
    export_parser.add_argument("--input", "-i", help="State JSON file (defaults to the saved current state)")
    export_parser.add_argument("--state-id", help="Saved state id to export")
    export_parser.add_argument("--output", "-o", default="./export", help="Output directory")
    export_parser.add_argument("--format", choices=["parquet", "arrow"], default="parquet")
    export_parser.add_argument("--include-hidden", action="store_true")
    export_parser.set_defaults(func=cmd_export)

    # share command
    share_parser = subparsers.add_parser("share", help="Print a share URL for a state file")
    share_parser.add_argument("state_file", help="State JSON file")
    share_parser.add_argument("--base-url", help="Override share_base_url")
    share_parser.set_defaults(func=cmd_share)

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        sys.exit(2)

    try:
        args.func(args)
    except GraphError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
