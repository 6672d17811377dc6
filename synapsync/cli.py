"""CLI entrypoints for synapsync commands."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, List

from .agents_md import regenerate_agents_md
from .config import ConfigError, ProjectConfig, ProviderConfig, find_project, save_config
from .constants import CATEGORIES, COGNITIVE_TYPES, SUPPORTED_PROVIDERS, default_provider_paths
from .doctor import run_doctor
from .engine import SyncEngine
from .errors import NotInstalledError, SynapSyncError
from .logging import configure_logging, get_logger
from .models import LinkMethod, SyncProgress, SyncResult
from .project import init_project, purge_project

_logger = get_logger("cli")


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_json_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print machine-readable JSON instead of text.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="synapsync",
        description="Keep a local store of AI cognitives in sync with provider directories.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only log warnings and errors.",
    )
    parser.add_argument(
        "-C",
        "--project",
        default=".",
        help="Path inside the project (defaults to current directory).",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init", help="Initialize a synapsync project.")
    _add_verbose_option(init_parser, suppress_default=True)
    init_parser.add_argument("--name", help="Project name (defaults to the directory name).")
    init_parser.add_argument(
        "--provider",
        action="append",
        dest="providers",
        choices=SUPPORTED_PROVIDERS,
        help="Provider to enable; repeat for several (defaults to claude).",
    )
    init_parser.add_argument(
        "--copy",
        action="store_true",
        help="Copy cognitives into providers instead of symlinking them.",
    )

    sync_parser = subparsers.add_parser(
        "sync",
        help="Reconcile the manifest and provider directories with the store.",
    )
    _add_verbose_option(sync_parser, suppress_default=True)
    sync_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Preview changes without writing anything.",
    )
    sync_parser.add_argument(
        "--type",
        action="append",
        dest="types",
        choices=COGNITIVE_TYPES,
        help="Limit the pass to a cognitive type; repeat for several.",
    )
    sync_parser.add_argument(
        "--category",
        action="append",
        dest="categories",
        choices=CATEGORIES,
        help="Limit the pass to a category; repeat for several.",
    )
    sync_parser.add_argument("--provider", help="Sync only this provider.")
    sync_parser.add_argument(
        "--copy",
        action="store_true",
        help="Copy instead of symlinking for this pass.",
    )
    sync_parser.add_argument(
        "--force",
        action="store_true",
        help="Replace existing provider entries that are not ours.",
    )
    sync_parser.add_argument(
        "--manifest-only",
        action="store_true",
        help="Update the manifest without touching provider directories.",
    )
    _add_json_option(sync_parser)

    status_parser = subparsers.add_parser("status", help="Show how the store differs from the manifest.")
    _add_verbose_option(status_parser, suppress_default=True)
    _add_json_option(status_parser)

    list_parser = subparsers.add_parser("list", help="List installed cognitives.")
    _add_verbose_option(list_parser, suppress_default=True)
    list_parser.add_argument(
        "--type",
        action="append",
        dest="types",
        help=f"Only show this type ({', '.join(COGNITIVE_TYPES)}); repeat for several.",
    )
    list_parser.add_argument(
        "--category",
        action="append",
        dest="categories",
        help="Only show this category; repeat for several.",
    )
    _add_json_option(list_parser)

    uninstall_parser = subparsers.add_parser(
        "uninstall",
        help="Remove a cognitive from providers, the store and the manifest.",
    )
    _add_verbose_option(uninstall_parser, suppress_default=True)
    uninstall_parser.add_argument("name", help="Name of the installed cognitive.")
    uninstall_parser.add_argument(
        "--force",
        action="store_true",
        help="Uninstall without asking; otherwise only a preview is printed.",
    )
    uninstall_parser.add_argument(
        "--keep-files",
        action="store_true",
        help="Keep the cognitive's folder in the store.",
    )

    purge_parser = subparsers.add_parser(
        "purge",
        help="Remove synapsync completely from the project.",
    )
    _add_verbose_option(purge_parser, suppress_default=True)
    purge_parser.add_argument(
        "--force",
        action="store_true",
        help="Purge without asking; otherwise only a preview is printed.",
    )

    providers_parser = subparsers.add_parser("providers", help="List, enable, or disable providers.")
    _add_verbose_option(providers_parser, suppress_default=True)
    providers_parser.add_argument(
        "action",
        nargs="?",
        default="list",
        choices=("list", "enable", "disable"),
    )
    providers_parser.add_argument("name", nargs="?", help="Provider name for enable/disable.")

    clean_parser = subparsers.add_parser("clean", help="Remove broken links from provider directories.")
    _add_verbose_option(clean_parser, suppress_default=True)
    clean_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List broken links without removing them.",
    )
    clean_parser.add_argument("--provider", help="Clean only this provider.")

    doctor_parser = subparsers.add_parser("doctor", help="Diagnose the project setup.")
    _add_verbose_option(doctor_parser, suppress_default=True)
    doctor_parser.add_argument(
        "--fix",
        action="store_true",
        help="Repair problems that can be repaired automatically.",
    )
    _add_json_option(doctor_parser)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP service.")
    _add_verbose_option(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for synapsync commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), quiet=args.quiet)
    project = Path(args.project)

    if args.command == "init":
        _run_init(parser, args, project)
        return
    if args.command == "doctor":
        _run_doctor(parser, args, project)
        return

    config = find_project(project)
    if config is None:
        parser.exit(1, "No synapsync project found. Run `synapsync init` first.\n")

    try:
        if args.command == "sync":
            _run_sync(parser, args, config)
        elif args.command == "status":
            _run_status(args, config)
        elif args.command == "list":
            _run_list(args, config)
        elif args.command == "uninstall":
            _run_uninstall(args, config)
        elif args.command == "purge":
            _run_purge(args, config)
        elif args.command == "providers":
            _run_providers(parser, args, config)
        elif args.command == "clean":
            _run_clean(parser, args, config)
        elif args.command == "serve":
            _run_serve(args, config)
        else:  # pragma: no cover - argparse enforces choices
            parser.exit(1, "Unknown command\n")
    except SynapSyncError as exc:
        parser.exit(1, f"synapsync {args.command} failed: {exc}\nRun with --verbose for more details.\n")


def _run_init(parser: argparse.ArgumentParser, args: argparse.Namespace, project: Path) -> None:
    try:
        config = init_project(
            project,
            name=args.name,
            providers=args.providers or ("claude",),
            method=LinkMethod.COPY if args.copy else LinkMethod.SYMLINK,
        )
    except ConfigError as exc:
        parser.exit(1, f"{exc}\n")
    print(f"Initialized {config.name} at {_relativize(config.root)}")
    print(f"Providers: {', '.join(config.enabled_providers())}")


def _run_sync(parser: argparse.ArgumentParser, args: argparse.Namespace, config: ProjectConfig) -> None:
    engine = SyncEngine.from_config(config)
    result = engine.sync(
        dry_run=args.dry_run,
        types=args.types,
        categories=args.categories,
        provider=args.provider,
        copy=args.copy,
        force=args.force,
        manifest_only=args.manifest_only,
        on_progress=_log_progress,
    )

    if not args.dry_run and result.success:
        regenerate_agents_md(config.root, engine.manifest, config.storage_dir)

    if args.json:
        print(_to_json(result.to_dict()))
    else:
        for line in _format_sync_result(result, dry_run=args.dry_run):
            print(line)

    if not result.success:
        parser.exit(1)


def _format_sync_result(result: SyncResult, *, dry_run: bool) -> List[str]:
    suffix = " (dry-run)" if dry_run else ""
    lines: List[str] = []
    provider_changes = any(
        provider.created or provider.removed for provider in result.provider_results or []
    )
    if not result.actions and not provider_changes and not result.errors:
        return [f"Everything is in sync{suffix}"]

    lines.append(
        f"Sync{suffix}: {result.added} added, {result.updated} updated, "
        f"{result.removed} removed, {result.unchanged} unchanged"
    )
    for action in result.actions:
        lines.append(f"  {action.operation} {action.cognitive}")
    for provider in result.provider_results or []:
        created = sum(1 for outcome in provider.created if outcome.success)
        lines.append(
            f"  {provider.provider} ({provider.method.value}): {created} linked, "
            f"{len(provider.skipped)} current, {len(provider.removed)} removed"
        )
    for error in result.errors:
        lines.append(f"  error: {error.message}")
    return lines


def _run_status(args: argparse.Namespace, config: ProjectConfig) -> None:
    engine = SyncEngine.from_config(config)
    status = engine.get_status()
    providers = {name: engine.get_provider_status(name) for name in engine.enabled_providers}

    if args.json:
        payload = status.to_dict()
        payload["providers"] = {name: vars(value) for name, value in providers.items()}
        print(_to_json(payload))
        return

    print(f"Manifest: {status.manifest} cognitives")
    print(f"Store: {status.filesystem} cognitives")
    if status.in_sync:
        print("Everything is in sync")
    else:
        print(
            f"Out of sync: {status.new_in_filesystem} new, {status.modified} modified, "
            f"{status.removed_from_filesystem} removed"
        )
    for name, provider in providers.items():
        print(f"{name}: {provider.valid} valid, {provider.broken} broken, {provider.orphaned} orphaned")


def _run_list(args: argparse.Namespace, config: ProjectConfig) -> None:
    entries = SyncEngine.from_config(config).list_cognitives(types=args.types, categories=args.categories)

    if args.json:
        print(_to_json([asdict(entry) for entry in entries]))
        return
    if not entries:
        print("No cognitives installed")
        return

    print(f"Installed Cognitives ({len(entries)})")
    for entry in entries:
        print(f"  {entry.name:<24} {entry.type.value:<9} {entry.category:<11} {entry.version}")


def _run_uninstall(args: argparse.Namespace, config: ProjectConfig) -> None:
    engine = SyncEngine.from_config(config)
    entry = engine.manifest.get_cognitive(args.name)
    if entry is None:
        raise NotInstalledError(f"Cognitive '{args.name}' is not installed")

    if not args.force:
        print(f"About to uninstall {entry.name} ({entry.type.value}, {entry.category})")
        if args.keep_files:
            print("  Store files will be kept")
        else:
            print("  Its folder in the store will be deleted")
        print("Re-run with --force to confirm.")
        return

    result = engine.uninstall(args.name, keep_files=args.keep_files)
    regenerate_agents_md(config.root, engine.manifest, config.storage_dir)
    print(f"Uninstalled {result.name}")
    for link in result.removed_links:
        print(f"  removed {_relativize(Path(link))}")


def _run_purge(args: argparse.Namespace, config: ProjectConfig) -> None:
    result = purge_project(config, dry_run=not args.force)
    if result.is_empty:
        print("Nothing to remove")
        return

    if args.force:
        print(f"synapsync completely removed from {_relativize(config.root)}")
    else:
        print(f"This will completely remove synapsync from {_relativize(config.root)}:")
    for path in result.links + result.paths:
        print(f"  {_relativize(Path(path))}")
    if result.gitignore_updated:
        print("  .gitignore (SynapSync block)")
    if not args.force:
        print("Re-run with --force to confirm.")


def _run_providers(parser: argparse.ArgumentParser, args: argparse.Namespace, config: ProjectConfig) -> None:
    if args.action == "list":
        for name in SUPPORTED_PROVIDERS:
            provider = config.sync.providers.get(name)
            state = "enabled" if provider is not None and provider.enabled else "disabled"
            print(f"{name:<10} {state}")
        return

    if not args.name:
        parser.exit(1, f"Provider name required for `providers {args.action}`\n")
    if args.name not in SUPPORTED_PROVIDERS:
        parser.exit(1, f"Unknown provider: {args.name}\n")

    provider = config.sync.providers.setdefault(
        args.name, ProviderConfig(paths=default_provider_paths(args.name))
    )
    provider.enabled = args.action == "enable"
    save_config(config)
    print(f"Provider {args.name} {args.action}d")


def _run_clean(parser: argparse.ArgumentParser, args: argparse.Namespace, config: ProjectConfig) -> None:
    engine = SyncEngine.from_config(config)
    if args.provider is not None and not engine.symlinks.is_known_provider(args.provider):
        parser.exit(1, f"Unknown provider: {args.provider}\n")
    providers = [args.provider] if args.provider else engine.enabled_providers

    suffix = " (dry-run)" if args.dry_run else ""
    for name in providers:
        removed = engine.symlinks.clean_provider(name, dry_run=args.dry_run)
        print(f"{name}: removed {len(removed)} broken links{suffix}")
        for cognitive in removed:
            print(f"  {cognitive}")


def _run_doctor(parser: argparse.ArgumentParser, args: argparse.Namespace, project: Path) -> None:
    config = find_project(project)
    root = config.root if config is not None else project
    report = run_doctor(root, fix=args.fix)

    if args.json:
        print(_to_json(report.to_dict()))
    else:
        for check in report.checks:
            print(f"[{check.status}] {check.name}: {check.message}")
    if not report.healthy:
        parser.exit(1)


def _run_serve(args: argparse.Namespace, config: ProjectConfig) -> None:  # pragma: no cover - integration path
    from .service import run_service

    run_service(args.host, args.port, lambda: SyncEngine.from_config(config))


def _log_progress(progress: SyncProgress) -> None:
    _logger.debug("[%s] %s", progress.phase, progress.message)


def _to_json(payload: Any) -> str:
    return json.dumps(payload, indent=2, default=str)


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
