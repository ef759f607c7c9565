"""
Issuer account setup: CLI entry point.

Runs one account setup pass for an issuer manifest and prints the resulting
status as JSON.  Writing the status back is left to whoever invoked us.

Usage:
  python main.py issuer.json                  # Set up the issuer's ACME account
  python main.py issuer.json --timeout 60     # Give up after 60 seconds
  python main.py issuer.json --store ./keys   # Override SECRET_STORE_PATH
"""
from __future__ import annotations

import argparse
import json
import logging
import sys

import structlog

log = logging.getLogger(__name__)


# ── Logging setup ─────────────────────────────────────────────────────────────


def configure_logging(level: str = "INFO", fmt: str = "console") -> None:
    renderer = (
        structlog.processors.JSONRenderer()
        if fmt == "json"
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
        force=True,
    )


# Defaults until main() applies settings
configure_logging()


# ── Runner ────────────────────────────────────────────────────────────────────


def run_setup(manifest_path: str, store_path: str | None = None, timeout: float | None = None) -> int:
    """Run one setup pass and print the status JSON.  Returns the exit code."""
    from config import settings
    from issuer.context import Context
    from issuer.errors import AccountSetupError
    from issuer.events import LoggingEventSink
    from issuer.models import Issuer
    from issuer.setup import AccountSetup
    from storage.secrets import FilesystemSecretStore

    try:
        with open(manifest_path, encoding="utf-8") as f:
            issuer = Issuer.from_manifest(json.load(f))
    except (OSError, ValueError) as exc:
        log.error("Cannot load issuer manifest %s: %s", manifest_path, exc)
        return 2

    reconciler = AccountSetup(
        store=FilesystemSecretStore(store_path or settings.SECRET_STORE_PATH),
        events=LoggingEventSink(),
        resource_namespace=settings.RESOURCE_NAMESPACE,
    )
    ctx = Context.with_timeout(timeout) if timeout else Context.background()

    log.info("Setting up ACME account for issuer %s/%s", issuer.namespace, issuer.name)
    exit_code = 0
    try:
        status = reconciler.setup(ctx, issuer)
    except AccountSetupError as exc:
        log.error("Account setup failed for %s: %s", issuer.name, exc)
        status = exc.status
        exit_code = 1

    if status is not None:
        print(json.dumps(status.model_dump(mode="json", by_alias=True), indent=2))
    return exit_code


# ── CLI ───────────────────────────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> None:
    from config import settings

    parser = argparse.ArgumentParser(
        description="Ensure an issuer's ACME account key exists and is registered",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py issuer.json
  python main.py issuer.json --timeout 60 --store /var/lib/issuer-secrets
        """,
    )
    parser.add_argument("manifest", help="Path to the issuer manifest (JSON)")
    parser.add_argument(
        "--store",
        metavar="DIR",
        help="Secret store directory (default: SECRET_STORE_PATH)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        metavar="SECONDS",
        help="Abandon the setup pass after this many seconds",
    )
    args = parser.parse_args(argv)

    configure_logging(settings.LOG_LEVEL, settings.LOG_FORMAT)
    sys.exit(run_setup(args.manifest, store_path=args.store, timeout=args.timeout))


if __name__ == "__main__":
    main()
