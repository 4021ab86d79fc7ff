"""
DocVault CLI — Operator commands.

Commands:
- docvault init-db             — Create the documents / folders tables
- docvault repair-permissions  — Give folder creators their missing permission entries
- docvault delete-folder <id>  — Cascading delete of a folder subtree
- docvault tree                — Print the folder tree visible to a user
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional, Tuple

logger = logging.getLogger("docvault.cli")


def main(argv: Optional[list] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="docvault",
        description="DocVault — document versioning and folder permissions",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    def _common(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--config", default=None, help="Path to docvault.yaml (default: auto-discover)")
        sub.add_argument("--db-url", default=None, help="Override database.url")

    def _actor(sub: argparse.ArgumentParser, default_role: str) -> None:
        sub.add_argument("--user", default="system", help="Acting user id (default: system)")
        sub.add_argument("--role", default=default_role, help=f"Acting role (default: {default_role})")

    # docvault init-db
    init_parser = subparsers.add_parser("init-db", help="Create database tables")
    _common(init_parser)

    # docvault repair-permissions
    repair_parser = subparsers.add_parser("repair-permissions", help="Repair folder permission entries")
    _common(repair_parser)
    _actor(repair_parser, "admin")

    # docvault delete-folder
    delete_parser = subparsers.add_parser("delete-folder", help="Delete a folder subtree")
    _common(delete_parser)
    _actor(delete_parser, "admin")
    delete_parser.add_argument("folder_id", help="Folder to delete with all descendants")
    delete_parser.add_argument("--json", action="store_true", help="Print the report as JSON")

    # docvault tree
    tree_parser = subparsers.add_parser("tree", help="Print the accessible folder tree")
    _common(tree_parser)
    _actor(tree_parser, "employee")
    tree_parser.add_argument("--json", action="store_true", help="Print the tree as JSON")

    args = parser.parse_args(argv)

    if args.command == "init-db":
        return cmd_init_db(args)
    elif args.command == "repair-permissions":
        return cmd_repair_permissions(args)
    elif args.command == "delete-folder":
        return cmd_delete_folder(args)
    elif args.command == "tree":
        return cmd_tree(args)
    else:
        parser.print_help()
        return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _setup(args: argparse.Namespace, create_tables: bool = False):
    """Load config, configure logging, register the engine. Returns (config, session_factory)."""
    from docvault.db.session import init_db
    from docvault.engine.config import load_config
    from docvault.engine.logging import init_logging

    config = load_config(args.config)
    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    queue_cfg = config.logging.async_queue
    init_logging(
        log_dir=config.logging.directory,
        flush_interval_ms=queue_cfg.flush_interval_ms,
        flush_batch_size=queue_cfg.flush_batch_size,
        max_queue_size=queue_cfg.max_queue_size,
    )
    factory = init_db(db_url=args.db_url or config.database.url, create_tables=create_tables)
    return config, factory


def _teardown() -> None:
    from docvault.db.session import close_db
    from docvault.engine.logging import shutdown_logging

    shutdown_logging()
    close_db()


def _actor_from(args: argparse.Namespace):
    from docvault.engine.context import ActorContext

    return ActorContext(user_id=args.user, role=args.role, has_document_access=True)


def _stores(factory) -> Tuple:
    from docvault.db.stores import SqlDocumentStore, SqlFolderStore

    return SqlDocumentStore(factory), SqlFolderStore(factory)


def _print_tree(nodes, depth: int = 0) -> List[str]:
    lines: List[str] = []
    for node in nodes:
        marker = " [restricted]" if node.folder.is_restricted else ""
        lines.append(f"{'  ' * depth}- {node.folder.name} ({node.folder.id}){marker}")
        lines.extend(_print_tree(node.children, depth + 1))
    return lines


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_init_db(args: argparse.Namespace) -> int:
    from docvault.engine.errors import DocVaultConfigError

    try:
        config, _ = _setup(args, create_tables=True)
    except DocVaultConfigError as e:
        print(f"[ERROR] {e.message}")
        return 1
    try:
        print(f"[OK] Tables ready at {args.db_url or config.database.url}")
        return 0
    finally:
        _teardown()


def cmd_repair_permissions(args: argparse.Namespace) -> int:
    from docvault.engine.errors import DocVaultError
    from docvault.folders.service import FolderService

    try:
        _, factory = _setup(args)
    except DocVaultError as e:
        print(f"[ERROR] {e.message}")
        return 1
    try:
        _, folder_store = _stores(factory)
        repaired = asyncio.run(FolderService(folder_store).repair_permissions(_actor_from(args)))
        print(f"[OK] Repaired {repaired} folder(s)")
        return 0
    except DocVaultError as e:
        print(f"[ERROR] {e.message}")
        return 1
    finally:
        _teardown()


def cmd_delete_folder(args: argparse.Namespace) -> int:
    from docvault.engine.errors import DocVaultError
    from docvault.folders.deletion import CascadingDeletionOrchestrator
    from docvault.integrations.blob_storage import LocalBlobStorage

    try:
        config, factory = _setup(args)
    except DocVaultError as e:
        print(f"[ERROR] {e.message}")
        return 1
    try:
        document_store, folder_store = _stores(factory)
        orchestrator = CascadingDeletionOrchestrator(
            document_store, folder_store, LocalBlobStorage.from_config(config)
        )
        report = asyncio.run(orchestrator.delete_folder(args.folder_id, _actor_from(args)))
    except DocVaultError as e:
        print(f"[ERROR] {e.message}")
        return 1
    finally:
        _teardown()

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print(
            f"[OK] Deleted {report.folders_deleted} folder(s), {report.documents_deleted} "
            f"document(s), {report.blobs_deleted} blob(s)"
        )
        for failure in report.failures:
            print(f"  [WARN] {failure.kind} {failure.item_id}: {failure.error}")
    return 0 if report.succeeded else 1


def cmd_tree(args: argparse.Namespace) -> int:
    from docvault.engine.errors import DocVaultError
    from docvault.security.permissions import FolderPermissionResolver

    try:
        _, factory = _setup(args)
    except DocVaultError as e:
        print(f"[ERROR] {e.message}")
        return 1
    try:
        _, folder_store = _stores(factory)
        resolver = FolderPermissionResolver(folder_store)
        nodes = asyncio.run(resolver.accessible_folder_tree(args.user, args.role))
    finally:
        _teardown()

    if args.json:
        print(json.dumps([n.to_dict() for n in nodes], indent=2))
    else:
        lines = _print_tree(nodes)
        print("\n".join(lines) if lines else "(no folders)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
