"""Command-line entry point for provisioning a mock node's store.

Resolves the data-source configuration for an instance name the same way
MockServices.with_database does, prints the descriptor (without the
password), opens the store, applies the schema changesets and closes it.
Useful for checking a provider file or preparing a server-backed store
before a test run.
"""

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from typing import Any

from ledgermock.adapters.store.provisioning import provision_database
from ledgermock.config import Settings, load_settings, resolve_data_source_config
from ledgermock.core.errors import ConfigurationError, ProvisioningError


# Attributes every LogRecord has; anything else arrived through ``extra``.
_RECORD_ATTRIBUTES = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with ``extra={...}`` fields as keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, value) for key, value in vars(record).items() if key not in _RECORD_ATTRIBUTES
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(log_level: str, log_format: str) -> None:
    """Configure logging to stderr.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: Log format (json, text).
    """
    level = getattr(logging, log_level, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    if log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
    logging.basicConfig(level=level, handlers=[handler])


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ledgermock-provision",
        description="Resolve, open and migrate the store of a mock node.",
    )
    parser.add_argument(
        "instance_name",
        nargs="?",
        default=None,
        help="Mock node name (usually its organisation). Random when omitted.",
    )
    parser.add_argument(
        "--postfix",
        default=None,
        help="Suffix appended to the in-memory instance name",
    )
    parser.add_argument(
        "--env-file",
        default=None,
        help="Path to a .env file with LEDGERMOCK_ settings",
    )
    parser.add_argument(
        "--no-migrate",
        action="store_true",
        help="Open the store without applying schema changesets",
    )
    return parser


async def provision(
    settings: Settings,
    instance_name: str | None,
    postfix: str | None = None,
    run_migration: bool = True,
) -> None:
    """Resolve configuration, provision the store and close it again.

    Raises:
        ConfigurationError: If the data-source configuration is invalid.
        ProvisioningError: If the store cannot be opened or migrated.
    """
    logger = logging.getLogger(__name__)
    config = resolve_data_source_config(instance_name, postfix, settings=settings)
    print(config.describe())

    persistence, result = await provision_database(config, run_migration=run_migration)
    try:
        tables = await persistence.list_tables()
        if result is not None:
            logger.info(
                f"Migration: {len(result.executed)} executed, "
                f"{len(result.marked_ran)} marked ran, "
                f"{len(result.already_applied)} already applied"
            )
        print(f"tables: {', '.join(tables)}")
    finally:
        await persistence.close()


def main(argv: Sequence[str] | None = None) -> None:
    """Application entry point.

    Exit codes:
        0: Store provisioned
        1: Configuration or provisioning error
        130: Interrupted by user (SIGINT/KeyboardInterrupt)
    """
    args = build_parser().parse_args(argv)
    logger = logging.getLogger(__name__)

    try:
        settings = load_settings(args.env_file)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    configure_logging(settings.log_level, settings.log_format)

    try:
        asyncio.run(
            provision(
                settings,
                args.instance_name,
                args.postfix,
                run_migration=not args.no_migrate,
            )
        )
    except KeyboardInterrupt:
        logger.warning("Provisioning interrupted by user (SIGINT)")
        sys.exit(130)
    except (ConfigurationError, ProvisioningError) as e:
        logger.error(f"Provisioning failed: {e}")
        sys.exit(1)
    sys.exit(0)


if __name__ == "__main__":
    main()
