"""
Command line entry point.

    python -m tenantmigrate worker                 poll the request queue
    python -m tenantmigrate once                   process one pending request
    python -m tenantmigrate init-schema --region R create the tables in a region

Settings come from TENANTMIGRATE_* environment variables (see
tenantmigrate.config.MigrationSettings).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence

from tenantmigrate.config import MigrationSettings
from tenantmigrate.creator import MigrationCreator
from tenantmigrate.repositories.requests import SQLMigrationRequestRepository
from tenantmigrate.runner import MigrationRunner
from tenantmigrate.schema import create_schema
from tenantmigrate.storage.local import LocalBlobStoreFactory
from tenantmigrate.stores.factory import StoreFactory
from tenantmigrate.worker import MigrationWorker

logger = logging.getLogger("tenantmigrate")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tenantmigrate", description="Tenant user migration worker")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("worker", help="Process migration requests until interrupted")
    commands.add_parser("once", help="Process a single pending migration request")

    init_schema = commands.add_parser("init-schema", help="Create the tables of a region's store")
    init_schema.add_argument("--region", default="", help="Region name (default: the home region)")
    return parser


def build_worker(settings: MigrationSettings, stores: StoreFactory) -> MigrationWorker:
    config = settings.to_config()
    blobs = LocalBlobStoreFactory(settings.storage_root)
    enable_tracing = settings.enable_tracing
    return MigrationWorker(
        SQLMigrationRequestRepository(stores.engine(), enable_tracing=enable_tracing),
        MigrationCreator(stores, blobs, settings.work_dir, config=config, enable_tracing=enable_tracing),
        MigrationRunner(stores, blobs, config=config, enable_tracing=enable_tracing),
        from_alias=settings.from_alias,
        from_region=settings.from_region,
        to_region=settings.to_region,
        to_alias=settings.to_alias,
        poll_interval_seconds=settings.poll_interval_seconds,
        enable_tracing=enable_tracing,
    )


async def _run(args: argparse.Namespace, settings: MigrationSettings) -> int:
    stores = StoreFactory(settings.region_urls(), echo=settings.echo_sql)
    try:
        if args.command == "init-schema":
            await create_schema(stores.engine(args.region))
            return 0

        worker = build_worker(settings, stores)
        if args.command == "once":
            request = await worker.process_next()
            if request is None:
                logger.info("No pending migration requests")
                return 0
            return 0 if request.alias else 1

        worker.register_signals()
        try:
            await worker.run()
        finally:
            worker.unregister_signals()
        return 0
    finally:
        await stores.dispose()


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = MigrationSettings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(_run(args, settings))


if __name__ == "__main__":
    sys.exit(main())
