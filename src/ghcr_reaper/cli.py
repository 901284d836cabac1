"""CLI for the untagged package version reaper."""

import argparse
import asyncio
import signal
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path

import httpx
from pydantic import SecretStr

from .config import ReaperConfig, resolve_token
from .exceptions import ConfigurationError
from .factory import Factory, configure_logging
from .models.result import ExitCode, RunSummary
from .services.retry import RetryPolicy


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description=(
            "Delete all untagged versions of GitHub container packages."
        )
    )
    owner = parser.add_mutually_exclusive_group()
    owner.add_argument(
        "--org",
        "--organization",
        dest="organization",
        help="organization owning the packages (conflicts with --user)",
        default=None,
    )
    owner.add_argument(
        "--user",
        help="user owning the packages (conflicts with --org)",
        default=None,
    )
    parser.add_argument(
        "--token",
        type=Path,
        help=(
            "path to a file containing a GitHub token; otherwise the"
            " GITHUB_TOKEN or GHCR_TOKEN environment variable is used"
        ),
        default=None,
    )
    parser.add_argument(
        "-c",
        "--config-file",
        "--file",
        type=Path,
        help="reaper config file (YAML)",
        default=None,
    )
    parser.add_argument(
        "-d",
        "-v",
        "--debug",
        "--verbose",
        dest="debug",
        action="store_true",
        help="Enable debug logging",
        default=None,
    )
    parser.add_argument(
        "-x",
        "-n",
        "--dry-run",
        dest="dry_run",
        action="store_true",
        help="Dry run only: list and classify, but do not delete anything",
        default=None,
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        help="maximum deletion calls in flight at once",
        default=None,
    )
    parser.add_argument(
        "packages",
        nargs="*",
        metavar="PACKAGE",
        help="packages to clean",
    )
    return parser.parse_args(argv)


def _load_config(args: argparse.Namespace) -> ReaperConfig:
    # Anything given on the command line overrides the config file
    overrides = {
        "organization": args.organization,
        "user": args.user,
        "dry_run": args.dry_run,
        "debug": args.debug,
        "concurrency": args.concurrency,
        "packages": args.packages or None,
    }
    return ReaperConfig.load(args.config_file, overrides)


async def _run(
    cfg: ReaperConfig,
    token: SecretStr,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    retry: RetryPolicy | None = None,
) -> RunSummary:
    async with Factory.standalone(
        cfg, token, transport=transport, retry=retry
    ) as factory:
        boc = factory.create_buck_dharma()
        loop = asyncio.get_running_loop()
        handled: list[signal.Signals] = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, boc.cancel)
            except (NotImplementedError, RuntimeError, ValueError):
                continue
            handled.append(sig)
        try:
            summary = await boc.run()
        finally:
            for sig in handled:
                loop.remove_signal_handler(sig)
        boc.report()
        return summary


def main(
    argv: Sequence[str] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    retry: RetryPolicy | None = None,
) -> ExitCode:
    """Run the reaper and return the process exit status."""
    args = _parse_args(argv)
    try:
        cfg = _load_config(args)
        token = resolve_token(args.token, cfg.token, environ)
    except ConfigurationError as e:
        print(f"error: {e}", file=sys.stderr)
        return ExitCode.CONFIGURATION_ERROR
    configure_logging(debug=cfg.debug)
    summary = asyncio.run(
        _run(cfg, token, transport=transport, retry=retry)
    )
    return summary.exit_code


def cowbell() -> None:
    """Don't fear the Reaper."""
    sys.exit(int(main()))
