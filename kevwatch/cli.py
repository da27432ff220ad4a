"""Command-line entry point: one fetch, reconcile, persist, notify cycle."""

import argparse
import logging
import sys
from collections.abc import Callable, Sequence
from pathlib import Path

from .config import AppConfig, find_config, load_config_or_default
from .downloaders import download_kev, load_kev_file, requests_session, save_feed
from .errors import FetchError, NotifyError, PersistenceError
from .models import VulnerabilityRecord
from .notifications import NotificationProvider, load_providers
from .reconcile import reconcile
from .report import render_text
from .state import LedgerStore

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure root logging for a CLI run."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def run_once(
    *,
    config: AppConfig,
    store: LedgerStore,
    fetch: Callable[[], list[VulnerabilityRecord]],
    providers: Sequence[NotificationProvider],
    dry_run: bool = False,
) -> int:
    """Run one reconciliation cycle.

    The ledger is saved before notifications go out, so a failed save
    leaves the previous ledger in place and nothing is sent.  A failed
    notification still leaves its records marked sent.

    Args:
        config: Loaded configuration.
        store: Ledger persistence.
        fetch: Returns the current feed records; raises ``FetchError``.
        providers: Notification providers to send the batch to.
        dry_run: Classify and print the batch without saving or sending.

    Returns:
        Process exit code: 0 on success, 1 on any surfaced failure.
    """
    try:
        records = fetch()
    except FetchError as e:
        logger.error("%s; ledger left untouched", e)
        return 1

    ledger = store.load_or_empty()
    to_notify, ledger_changed = reconcile(records, config.match_config(), ledger)
    stats = ledger.stats()
    print(f"Feed: {len(records)} entries | Ledger: {stats['tracked']} tracked, {stats['sent']} notified")
    print(f"New matches this run: {len(to_notify)}")

    if dry_run:
        if to_notify:
            print(render_text(to_notify))
        print("Dry run: ledger not saved, no notifications sent")
        return 0

    if ledger_changed:
        try:
            store.save(ledger)
        except PersistenceError as e:
            logger.error("%s; no notifications sent, retry the run", e)
            return 1

    if not to_notify:
        return 0

    if not providers:
        logger.warning("%d records matched but no notification provider is configured", len(to_notify))
        print(render_text(to_notify))
        return 0

    exit_code = 0
    for provider in providers:
        try:
            provider.send(to_notify)
            print(f"Notified {len(to_notify)} entries via {provider.name}")
        except NotifyError as e:
            logger.error("%s; records stay marked sent, resend manually if needed", e)
            exit_code = 1
    return exit_code


def _build_fetch(args: argparse.Namespace, config: AppConfig) -> Callable[[], list[VulnerabilityRecord]]:
    def fetch() -> list[VulnerabilityRecord]:
        if args.feed_file:
            records = load_kev_file(args.feed_file)
        else:
            records = download_kev(requests_session(), config.feed_url)
        if args.save_feed:
            try:
                save_feed(args.save_feed, records)
            except OSError as e:
                logger.warning("Could not save feed copy to %s: %s", args.save_feed, e)
        return records

    return fetch


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="kevwatch",
        description="Notify once per CISA KEV entry matching your watchlist.",
    )
    p.add_argument("--config", type=Path, default=None, help="Config file (default: kevwatch.yaml)")
    p.add_argument("--config-dir", type=Path, default=None, help="Directory of extra term files (kevwatch.d/)")
    p.add_argument("--state", type=Path, default=None, help="Ledger file (overrides state_file in config)")
    p.add_argument("--feed-file", type=Path, default=None, help="Read the KEV feed from a local JSON file")
    p.add_argument("--save-feed", type=Path, default=None, help="Also write the fetched feed to this path")
    p.add_argument("--dry-run", action="store_true", help="Print matches without saving or notifying")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return p


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    config = load_config_or_default(args.config or find_config(), args.config_dir)
    store = LedgerStore(args.state or config.state_file)
    providers = [] if args.dry_run else load_providers(config)

    return run_once(
        config=config,
        store=store,
        fetch=_build_fetch(args, config),
        providers=providers,
        dry_run=args.dry_run,
    )


if __name__ == "__main__":
    raise SystemExit(main())
