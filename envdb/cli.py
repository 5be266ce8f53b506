#!/usr/bin/env python3
"""
envdb CLI - administer the node registry.

Usage:
    envdb reconcile
    envdb list [--online]
    envdb show <node_id>
    envdb remove <node_id>
    envdb purge [--include-online]
    envdb status
    envdb serve [--host HOST] [--port PORT]

Examples:
    # Reset stale online flags before the server starts accepting nodes
    envdb reconcile

    # Flag a node for removal, then purge flagged nodes
    envdb remove 7c0d5c8e-4a61-4f1e-9d7a-2b3f8f6c1a90
    envdb purge

    # Serve the read-only inventory API
    envdb --config config/envdb.yaml serve --port 8080
"""

import argparse
import logging
import sys
from typing import List, Optional

from .config import ConfigError, load_config
from .registry.errors import NodeNotFoundError, ReconciliationError, StoreError
from .registry.models import NodeRecord
from .registry.node_store import NodeStore
from .registry.reaper import PendingDeleteReaper
from .registry.reconciler import ConnectionReconciler


def setup_logging(verbose: bool = False, level: str = "INFO"):
    """Configure logging."""
    level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(name)s] %(levelname)s: %(message)s' if verbose else '%(message)s'
    )
    # Quiet down noisy loggers
    if not verbose:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
        logging.getLogger("envdb.registry").setLevel(logging.WARNING)


def format_node(record: NodeRecord) -> str:
    """One-line summary of a node."""
    state = "online" if record.online else "offline"
    if record.pending_delete:
        state += ", pending delete"
    return f"{record.node_id}  {record.name or '-'}  {record.ip_address or '-'}  ({state})"


def list_nodes(store: NodeStore, online_only: bool = False) -> int:
    """Print all nodes."""
    records = store.find_all()
    if online_only:
        records = [r for r in records if r.online]

    print(f"\n📋 Nodes ({len(records)}):")
    print("=" * 50)
    if not records:
        print("  (no nodes)")
    for record in records:
        print(f"  - {format_node(record)}")
    print()
    return 0


def show_node(store: NodeStore, node_id: str) -> int:
    """Print every field of one node."""
    try:
        record = store.find_by_node_id(node_id)
    except NodeNotFoundError:
        print(f"\n❌ Node not found: {node_id}")
        return 1

    print(f"\n📄 Node {record.node_id}:")
    print("=" * 50)
    for key, value in record.model_dump().items():
        print(f"  {key}: {value}")
    print()
    return 0


def remove_node(store: NodeStore, node_id: str) -> int:
    """Flag a node for removal."""
    try:
        store.mark_pending_delete(node_id)
    except NodeNotFoundError:
        print(f"\n❌ Node not found: {node_id}")
        return 1

    print(f"\n🗑  Node {node_id} marked for deletion (run 'purge' to delete it)")
    return 0


def purge_nodes(store: NodeStore, include_online: bool = False) -> int:
    """Hard-delete nodes flagged for removal."""
    reaper = PendingDeleteReaper(store, skip_online=not include_online)
    purged = reaper.run_once()

    print(f"\n🧹 Purged {len(purged)} nodes")
    for node_id in purged:
        print(f"  - {node_id}")
    return 0


def reconcile(store: NodeStore, continue_on_error: bool = False) -> int:
    """Set every online node offline."""
    reconciler = ConnectionReconciler(store, continue_on_error=continue_on_error)
    try:
        report = reconciler.reconcile_online_status()
    except ReconciliationError as e:
        report = e.report
        print(f"\n❌ {e}")
        for node_id, error in report.failed.items():
            print(f"  - {node_id}: {error}")
        return 1

    print(f"\n✅ Reconciled {report.total} nodes")
    print(f"   Set offline: {len(report.corrected)}")
    print(f"   Already offline: {report.skipped}")
    return 0


def show_status(store: NodeStore) -> int:
    """Print record counts."""
    stats = store.get_stats()

    print("\n📊 Registry Status:")
    print("=" * 50)
    print(f"  Database: {store.engine.url.render_as_string(hide_password=True)}")
    print(f"  Nodes: {stats['total_nodes']} total")
    print(f"    - Online: {stats['online_nodes']}")
    print(f"    - Pending delete: {stats['pending_delete_nodes']}")
    return 0


def serve(store: NodeStore, host: str, port: int) -> int:
    """Run the read-only inventory API."""
    import uvicorn

    from .api_gateway.gateway import create_app

    print(f"\n🚀 Serving node inventory at http://{host}:{port}")
    uvicorn.run(create_app(store), host=host, port=port, log_level="info")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="envdb",
        description="envdb CLI - administer the node registry",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s reconcile
  %(prog)s list --online
  %(prog)s show <node_id>
  %(prog)s remove <node_id>
  %(prog)s purge
        """
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("-c", "--config", help="Path to YAML config file")
    parser.add_argument("--database-url", help="SQLAlchemy database URL (overrides config)")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # reconcile command
    reconcile_parser = subparsers.add_parser("reconcile", help="Set every online node offline")
    reconcile_parser.add_argument(
        "--continue-on-error", action="store_true", default=None,
        help="Keep going past per-node failures"
    )

    # list command
    list_parser = subparsers.add_parser("list", help="List known nodes")
    list_parser.add_argument("--online", action="store_true", help="Only online nodes")

    # show command
    show_parser = subparsers.add_parser("show", help="Show one node")
    show_parser.add_argument("node_id", help="Node id")

    # remove command
    remove_parser = subparsers.add_parser("remove", help="Flag a node for deletion")
    remove_parser.add_argument("node_id", help="Node id")

    # purge command
    purge_parser = subparsers.add_parser("purge", help="Delete nodes flagged for deletion")
    purge_parser.add_argument(
        "--include-online", action="store_true",
        help="Also delete flagged nodes that are still online"
    )

    # status command
    subparsers.add_parser("status", help="Show registry status")

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Serve the read-only inventory API")
    serve_parser.add_argument("--host", help="Bind address")
    serve_parser.add_argument("--port", type=int, help="Bind port")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"\n❌ {e}")
        return 2

    setup_logging(args.verbose, config["logging"]["level"])

    if args.database_url:
        config["database"]["url"] = args.database_url

    try:
        store = NodeStore.from_config(config)
    except StoreError as e:
        print(f"\n❌ {e}")
        return 1

    try:
        if args.command == "reconcile":
            continue_on_error = args.continue_on_error
            if continue_on_error is None:
                continue_on_error = config["reconciler"]["continue_on_error"]
            return reconcile(store, continue_on_error)
        elif args.command == "list":
            return list_nodes(store, args.online)
        elif args.command == "show":
            return show_node(store, args.node_id)
        elif args.command == "remove":
            return remove_node(store, args.node_id)
        elif args.command == "purge":
            return purge_nodes(store, args.include_online)
        elif args.command == "status":
            return show_status(store)
        elif args.command == "serve":
            host = args.host or config["api"]["host"]
            port = args.port or config["api"]["port"]
            return serve(store, host, port)
        else:
            parser.print_help()
            return 0
    except (StoreError, NodeNotFoundError) as e:
        print(f"\n❌ Error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
