"""Command line for one-off syncs and multi-forge convergence."""

from __future__ import annotations

import argparse
import asyncio
import sys
import typing as typ
from pathlib import Path

from forgesync.backends import (
    LocalBackend,
    PersistenceError,
    RestForgeBackend,
    build_backend,
    build_remote_backend,
)
from forgesync.common.slug import is_valid_segment, parse_repo_slug
from forgesync.config import (
    ConfigError,
    ConfigLayer,
    ForgesyncSettings,
    directory_layers,
    layer_from_remote_url,
    resolve_config,
)
from forgesync.converge import ConvergeOptions, ConvergenceService
from forgesync.logging import configure_logging, get_logger, log_error, log_warning
from forgesync.model import ForgeTag
from forgesync.secrets import SecretResolutionClient, default_provider
from forgesync.sync import SyncError, SyncOptions, sync

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from forgesync.backends import ForgeBackend
    from forgesync.config import EffectiveConfig
    from forgesync.converge import ConvergeReport
    from forgesync.sync import SyncReport

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_INCOMPLETE = 1
EXIT_ERROR = 2


def _forge_tag(value: str) -> ForgeTag:
    try:
        return ForgeTag.parse(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _repo_ref(value: str) -> tuple[str | None, str]:
    if "/" in value:
        try:
            return parse_repo_slug(value)
        except ValueError as exc:
            raise argparse.ArgumentTypeError(str(exc)) from exc
    if not is_valid_segment(value):
        msg = f"invalid repository name: {value!r}"
        raise argparse.ArgumentTypeError(msg)
    return None, value


def _repo_filter(
    refs: cabc.Sequence[tuple[str | None, str]] | None, org: str
) -> frozenset[str] | None:
    if not refs:
        return None
    foreign = sorted(
        f"{owner}/{name}" for owner, name in refs if owner not in {None, org}
    )
    if foreign:
        raise ConfigError.foreign_repos(foreign, org)
    return frozenset(name for _, name in refs)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--org", default=None, help="Organisation to reconcile")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report planned actions without changing anything",
    )
    parser.add_argument(
        "--delete-missing",
        action="store_true",
        help="Delete target repositories that the source does not declare",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=1,
        help="Number of actions applied at once (default: 1)",
    )
    parser.add_argument(
        "--remote-url",
        default=None,
        help="Git remote URL used to infer the organisation and forge",
    )
    parser.add_argument(
        "--config-dir",
        type=Path,
        default=None,
        help="Directory to search upwards for .forgesync.yaml (default: cwd)",
    )


def build_parser() -> argparse.ArgumentParser:
    """Return the ``forgesync`` argument parser."""
    parser = argparse.ArgumentParser(prog="forgesync", description=__doc__)
    commands = parser.add_subparsers(dest="command", required=True)

    sync_parser = commands.add_parser(
        "sync", help="Make TARGET match SOURCE for one organisation"
    )
    sync_parser.add_argument("source", type=_forge_tag, help="Source backend")
    sync_parser.add_argument("target", type=_forge_tag, help="Target backend")
    sync_parser.add_argument(
        "--repo",
        action="append",
        type=_repo_ref,
        default=None,
        help="Restrict the run to this repository, by name or org/name (repeatable)",
    )
    _add_common_arguments(sync_parser)

    converge_parser = commands.add_parser(
        "converge", help="Converge the local declaration onto remote forges"
    )
    converge_parser.add_argument(
        "--forge",
        type=_forge_tag,
        action="append",
        default=None,
        help="Remote forge to converge (repeatable; default: all configured)",
    )
    _add_common_arguments(converge_parser)
    return parser


def _layers(args: argparse.Namespace) -> list[ConfigLayer]:
    forges = tuple(args.forge) if getattr(args, "forge", None) else None
    layers = [ConfigLayer("command line", org=args.org, forges=forges)]
    if args.remote_url:
        inferred = layer_from_remote_url(args.remote_url)
        if inferred is None:
            log_warning(logger, "Could not infer a forge from %s", args.remote_url)
        else:
            layers.append(inferred)
    layers.extend(directory_layers(args.config_dir or Path.cwd()))
    return layers


def _print_sync_report(report: SyncReport) -> None:
    mode = " (dry run)" if report.dry_run else ""
    print(
        f"sync {report.source_forge} -> {report.target_forge} "
        f"for {report.org}{mode}"
    )
    for result in report.results:
        line = f"  {result.kind} {result.identity.name}: {result.outcome}"
        if result.error:
            line = f"{line} ({result.error})"
        print(line)
    counts = report.outcome_counts()
    print(" ".join(f"{outcome}={count}" for outcome, count in sorted(counts.items())))


def _print_converge_report(report: ConvergeReport) -> None:
    mode = " (dry run)" if report.dry_run else ""
    print(f"converge {report.org}{mode}")
    for forge in report.forges:
        if forge.error is not None:
            print(f"  {forge.forge}: error ({forge.error})")
            continue
        print(
            f"  {forge.forge}: converged={str(forge.converged).lower()} "
            f"drift_detected={str(forge.drift_detected).lower()} "
            f"created={forge.repos_created} updated={forge.repos_updated} "
            f"deleted={forge.repos_deleted} synced={forge.repos_synced} "
            f"failed={forge.repos_failed}"
        )
        for identity in forge.drift:
            print(f"    drift: {identity}")
        for failure in forge.capture_failures:
            print(f"    capture failed: {failure.identity} ({failure.reason})")


async def _close(backends: cabc.Iterable[ForgeBackend]) -> None:
    for backend in backends:
        if isinstance(backend, RestForgeBackend):
            await backend.aclose()


async def _open_local(settings: ForgesyncSettings, org: str) -> LocalBackend:
    local = LocalBackend(state_dir=settings.home, auto_save=True)
    await local.load_or_create(local.path_for(org), org)
    return local


def _secrets(settings: ForgesyncSettings) -> SecretResolutionClient:
    return SecretResolutionClient(
        default_provider(settings.secrets_file),
        secret_ttl_s=settings.secret_ttl_s,
        scope_timeout_s=settings.scope_timeout_s,
    )


async def _run_sync(
    args: argparse.Namespace, settings: ForgesyncSettings, config: EffectiveConfig
) -> int:
    repo_filter = _repo_filter(args.repo, config.org)
    local = await _open_local(settings, config.org)
    secrets = _secrets(settings)
    source = build_backend(
        args.source, local=local, secrets=secrets, base_urls=settings.api_urls
    )
    target = build_backend(
        args.target, local=local, secrets=secrets, base_urls=settings.api_urls
    )
    options = SyncOptions(
        dry_run=args.dry_run,
        delete_missing=args.delete_missing,
        repo_filter=repo_filter,
        max_concurrency=args.concurrency,
    )
    try:
        report = await sync(source, target, config.org, options)
    finally:
        await _close((source, target))

    _print_sync_report(report)
    return EXIT_INCOMPLETE if report.has_failures else EXIT_OK


async def _run_converge(
    args: argparse.Namespace, settings: ForgesyncSettings, config: EffectiveConfig
) -> int:
    local = await _open_local(settings, config.org)
    secrets = _secrets(settings)
    forges = tuple(forge for forge in config.forges if forge.is_remote)
    remotes = {
        forge: build_remote_backend(
            forge, secrets, base_url=settings.api_urls.get(forge)
        )
        for forge in forges
    }
    options = ConvergeOptions(
        forges=forges,
        dry_run=args.dry_run,
        delete_missing=args.delete_missing,
        max_concurrency=args.concurrency,
    )
    try:
        report = await ConvergenceService(local, remotes).converge(config.org, options)
    finally:
        await _close(remotes.values())

    _print_converge_report(report)
    if any(forge.error is not None for forge in report.forges):
        return EXIT_INCOMPLETE
    if not report.dry_run and not report.converged:
        return EXIT_INCOMPLETE
    return EXIT_OK


async def _dispatch(args: argparse.Namespace, settings: ForgesyncSettings) -> int:
    config = resolve_config(_layers(args))
    if args.command == "sync":
        return await _run_sync(args, settings, config)
    return await _run_converge(args, settings, config)


def main(argv: list[str] | None = None) -> int:
    """Run the ``forgesync`` command line.

    Parameters
    ----------
    argv : list[str] | None, optional
        Command-line arguments. ``None`` defaults to ``sys.argv``.

    Returns
    -------
    int
        Exit code: 0 when the run completed cleanly, 1 when some repos failed
        or a forge did not converge, 2 on configuration or listing errors.

    """
    args = build_parser().parse_args(argv)
    try:
        settings = ForgesyncSettings.from_env()
    except ConfigError as exc:
        print(f"forgesync: {exc}", file=sys.stderr)
        return EXIT_ERROR

    level, invalid = configure_logging(settings.log_level)
    if invalid:
        log_warning(
            logger,
            "Invalid FORGESYNC_LOG_LEVEL %r; defaulting to %s",
            settings.log_level,
            level,
        )

    try:
        return asyncio.run(_dispatch(args, settings))
    except (ConfigError, SyncError, PersistenceError, ValueError) as exc:
        log_error(logger, "forgesync %s aborted: %s", args.command, exc)
        print(f"forgesync: {exc}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
