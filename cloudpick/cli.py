"""Command line interface for cloudpick."""

from __future__ import annotations

import argparse
import json
import logging
import random
import sys
from pathlib import Path
from typing import Any

from .catalog import Catalog, CatalogBuilder
from .config import AppConfig, load_config
from .connectors.google_drive import authorize_drive
from .errors import CloudPickError, ConfigurationError, EmptyCatalog
from .handles import load_handle_listing
from .logging_utils import configure_logging
from .sampler import Sampler
from .service import CatalogService, build_service

LOGGER = logging.getLogger("cloudpick.cli")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config.json"),
        help="Path to the JSON configuration file.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging output.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", help="Interface to bind (overrides server.host).")
    serve.add_argument("--port", type=int, help="Port to bind (overrides server.port).")

    list_cmd = commands.add_parser("list", help="Print the catalog as JSON.")
    list_cmd.add_argument(
        "--handles",
        type=Path,
        help="Build the catalog from a `megacmd find --show-handles` listing instead of the backend.",
    )
    list_cmd.add_argument(
        "--stats", action="store_true", help="Only print file and folder counts."
    )

    pick = commands.add_parser("pick", help="Print a random batch of files.")
    pick.add_argument("--count", type=int, help="Batch size (defaults to sampling.batch_size).")
    pick.add_argument("--handles", type=Path, help="Sample from a handle listing file.")
    pick.add_argument("--seed", type=int, help="Seed for reproducible picks.")

    link = commands.add_parser("link", help="Mint a fresh link for one file.")
    link.add_argument("path", nargs="?", help="Full path of the file in the catalog.")
    link.add_argument("--identifier", help="Backend identifier of the file.")

    authorize = commands.add_parser(
        "authorize", help="Run the Google Drive OAuth flow and cache the token."
    )
    authorize.add_argument(
        "--headless",
        action="store_true",
        help=(
            "Use the console flow, prompting for the verification code or redirected "
            "URL even when a browser is available."
        ),
    )
    return parser.parse_args(argv)


def _emit(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2) + "\n")


def _catalog(args: argparse.Namespace, service: CatalogService) -> Catalog:
    if getattr(args, "handles", None) is not None:
        return CatalogBuilder().build(load_handle_listing(args.handles))
    return service.refresh()


def _run(args: argparse.Namespace, config: AppConfig) -> int:
    if args.command == "serve":
        from .server import create_app

        app = create_app(config)
        host = args.host or config.server.host
        port = args.port or config.server.port
        LOGGER.info("Serving cloudpick (%s) on %s:%s", config.provider, host, port)
        app.run(host=host, port=port)
        return 0

    if args.command == "authorize":
        if config.google_drive is None:
            raise ConfigurationError("google_drive section is missing from the configuration.")
        authorize_drive(config.google_drive, force_console_oauth=args.headless)
        return 0

    service = build_service(config)
    try:
        if args.command == "list":
            catalog = _catalog(args, service)
            _emit(catalog.stats() if args.stats else catalog.to_dict())
            return 0

        if args.command == "pick":
            catalog = _catalog(args, service)
            seed = args.seed if args.seed is not None else config.sampling.seed
            sampler = Sampler(random.Random(seed))
            count = args.count if args.count is not None else config.sampling.batch_size
            try:
                batch = sampler.pick_batch(catalog, count)
            except EmptyCatalog as exc:
                LOGGER.warning("%s", exc.message)
                _emit({"files": [], "current": None, "empty": True})
                return 0
            _emit(batch.to_dict())
            return 0

        if args.command == "link":
            if not args.path and not args.identifier:
                LOGGER.error("A file path or --identifier is required")
                return 2
            link = service.resolve({"path": args.path, "identifier": args.identifier})
            _emit(link.to_dict())
            return 0
    finally:
        service.close()

    raise ValueError(f"Unknown command: {args.command}")  # pragma: no cover


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    config = load_config(args.config)
    configure_logging(
        args.verbose,
        config.logging.directory,
        keep_days=config.logging.keep_days,
    )
    try:
        return _run(args, config)
    except ConfigurationError as exc:
        LOGGER.error("%s %s", exc.message, exc.details or "")
        return 2
    except CloudPickError as exc:
        LOGGER.error("%s: %s %s", exc.kind, exc.message, exc.details or "")
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
